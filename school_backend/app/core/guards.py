"""
Security guards for role-based access control.

Writes to vouchers, payments, structures and student records are ADMIN only;
reads are open to ADMIN and ACCOUNTANT.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from school_backend.app.models.enums import UserRole
from school_backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.get("/fees/defaulters")
        async def defaulters(current_user: dict = Depends(require_role(STAFF_ROLES))):
            ...
    
    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")
        
        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )
        
        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )
        
        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        
        return current_user
    
    return role_checker


ADMIN_ONLY = [UserRole.ADMIN]
STAFF_ROLES = [UserRole.ADMIN, UserRole.ACCOUNTANT]

require_admin = require_role(ADMIN_ONLY)
require_staff = require_role(STAFF_ROLES)
