"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Any, Dict, Optional
from school_backend.app.core.security import is_strong_password
from school_backend.app.models.enums import UserRole

PASSWORD_RULE = "Password must be at least 8 characters and contain an uppercase letter, a lowercase letter and a digit"


def _check_strength(value: str) -> str:
    if not is_strong_password(value):
        raise ValueError(PASSWORD_RULE)
    return value


class UserRegister(BaseModel):
    """
    Schema for staff registration.
    
    Used by POST /auth/register (ADMIN only).
    """
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., description=PASSWORD_RULE)
    role: UserRole = Field(default=UserRole.ACCOUNTANT, description="User role (defaults to ACCOUNTANT)")
    
    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_strength(value)


class UserLogin(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., description=PASSWORD_RULE)
    
    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_strength(value)


class UserResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime
    
    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.
    
    Returned by a successful login.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserResponse


class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int]
    actor_email: Optional[str]
    action: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta_data: Optional[Dict[str, Any]] = None
    ip_address: Optional[str]
    timestamp: datetime
    
    class Config:
        from_attributes = True
