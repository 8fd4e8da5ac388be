"""
Authentication API endpoints.

Login with Redis-backed lockout, staff account management and logout.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from school_backend.app.db.session import get_db
from school_backend.app.models.user import User
from school_backend.app.schemas.auth import AuditLogResponse, ChangePasswordRequest, UserRegister, UserLogin, TokenResponse, UserResponse
from school_backend.app.schemas.common import ApiResponse, ok
from school_backend.app.core.config import settings
from school_backend.app.core.exceptions import AuthenticationError, ConflictError, ResourceNotFoundError, TooManyAttemptsError, ValidationError
from school_backend.app.core.security import get_password_hash, verify_password
from school_backend.app.core.jwt import create_access_token
from school_backend.app.core.dependencies import get_current_user
from school_backend.app.core.guards import require_admin
from school_backend.app.core.login_throttle import throttle_key, ensure_not_locked, register_failure, clear_failures
from school_backend.app.core.token_revocation import revoke_token, revoke_all_user_tokens
from school_backend.app.services.audit import log_event, log_user_action, get_audit_trail, AuditAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", message="User not found")
    return user


@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.
    
    Failed attempts are counted per email and client IP. Once the limit is
    reached the pair is locked out and login answers 429 until the lock expires.
    """
    ip_address = request.client.host if request.client else None
    key = throttle_key(credentials.email, ip_address)
    await ensure_not_locked(key)
    
    result = await db.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()
    
    if not user or not verify_password(credentials.password, user.hashed_password):
        attempts = await register_failure(key)
        locked = attempts >= settings.login_max_attempts
        await log_event(
            db=db,
            action=AuditAction.LOGIN_LOCKED if locked else AuditAction.LOGIN_FAILED,
            actor_id=user.id if user else None,
            actor_email=credentials.email,
            ip_address=ip_address,
            metadata={"reason": "User not found" if not user else "Invalid password", "attempts": attempts}
        )
        await db.commit()
        if locked:
            raise TooManyAttemptsError(retry_after=settings.login_lockout_seconds)
        raise AuthenticationError("Invalid email or password")
    
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )
    
    await clear_failures(key)
    
    access_token = create_access_token(data={
        "sub": user.email,
        "user_id": user.id,
        "role": user.role.value,
    })
    
    await log_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        actor_id=user.id,
        actor_email=user.email,
        ip_address=ip_address
    )
    await db.commit()
    
    return ok(
        TokenResponse(access_token=access_token, user=UserResponse.model_validate(user)),
        "Login successful"
    )


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a staff account (ADMIN only)."""
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        raise ConflictError("Email already registered")
    
    new_user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        role=user_data.role,
        is_active=True,
    )
    db.add(new_user)
    await db.flush()
    
    await log_user_action(
        db, current_user, AuditAction.USER_CREATED,
        entity_type="user", entity_id=new_user.id,
        metadata={"email": new_user.email, "role": new_user.role.value}
    )
    await db.commit()
    
    return ok(UserResponse.model_validate(new_user), "User registered successfully")


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await _get_user(db, current_user["user_id"])
    return ok(UserResponse.model_validate(user))


@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(
    payload: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Change the caller's password.
    
    The token used for the request is revoked.
    """
    user = await _get_user(db, current_user["user_id"])
    
    if not verify_password(payload.current_password, user.hashed_password):
        raise AuthenticationError("Current password is incorrect")
    if payload.current_password == payload.new_password:
        raise ValidationError("New password must be different from the current password")
    
    user.hashed_password = get_password_hash(payload.new_password)
    await log_user_action(db, current_user, AuditAction.PASSWORD_CHANGED, entity_type="user", entity_id=user.id)
    await db.commit()
    
    await revoke_token(current_user["token"], user.id)
    return ok(None, "Password changed successfully. Please log in again.")


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await revoke_token(current_user["token"], current_user["user_id"])
    await log_user_action(db, current_user, AuditAction.TOKEN_REVOKED, entity_type="user", entity_id=current_user["user_id"])
    await db.commit()
    return ok(None, "Logged out successfully")


@router.get("/users", response_model=ApiResponse[list[UserResponse]])
async def list_users(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return ok([UserResponse.model_validate(u) for u in result.scalars().all()])


@router.delete("/users/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a staff account (ADMIN only, never your own)."""
    if user_id == current_user["user_id"]:
        raise ValidationError("You cannot delete your own account")
    
    user = await _get_user(db, user_id)
    email = user.email
    await db.delete(user)
    await log_user_action(
        db, current_user, AuditAction.USER_DELETED,
        entity_type="user", entity_id=user_id, metadata={"email": email}
    )
    await db.commit()
    
    await revoke_all_user_tokens(user_id)
    logger.info("User %s deleted by %s", email, current_user.get("sub"))
    return ok(None, "User deleted successfully")


@router.get("/audit-logs", response_model=ApiResponse[list[AuditLogResponse]])
async def audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = Query(None, gt=0),
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Security and financial events, most recent first (ADMIN only)."""
    logs = await get_audit_trail(db, entity_type=entity_type, entity_id=entity_id, action=action, limit=limit)
    return ok([AuditLogResponse.model_validate(entry) for entry in logs])
