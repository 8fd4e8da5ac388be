"""
Audit logging service for security events and changes to financial records.

Events are added to the caller's session and land with the caller's commit,
so an audit row exists exactly when the change it describes does.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from school_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGIN_LOCKED = "LOGIN_LOCKED"
    USER_CREATED = "USER_CREATED"
    USER_DELETED = "USER_DELETED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    
    # Fee vouchers
    FEE_VOUCHER_GENERATED = "FEE_VOUCHER_GENERATED"
    FEE_VOUCHERS_BULK_GENERATED = "FEE_VOUCHERS_BULK_GENERATED"
    FEE_VOUCHER_ITEMS_UPDATED = "FEE_VOUCHER_ITEMS_UPDATED"
    FEE_VOUCHER_DELETED = "FEE_VOUCHER_DELETED"
    FEE_PAYMENT_RECORDED = "FEE_PAYMENT_RECORDED"
    FEE_PAYMENT_DELETED = "FEE_PAYMENT_DELETED"
    
    # Salary vouchers
    SALARY_VOUCHER_GENERATED = "SALARY_VOUCHER_GENERATED"
    SALARY_VOUCHERS_BULK_GENERATED = "SALARY_VOUCHERS_BULK_GENERATED"
    SALARY_ADJUSTMENT_ADDED = "SALARY_ADJUSTMENT_ADDED"
    SALARY_VOUCHER_DELETED = "SALARY_VOUCHER_DELETED"
    SALARY_PAYMENT_RECORDED = "SALARY_PAYMENT_RECORDED"
    
    # Students and discounts
    STUDENT_ENROLLED = "STUDENT_ENROLLED"
    STUDENT_WITHDRAWN = "STUDENT_WITHDRAWN"
    STUDENT_TRANSFERRED = "STUDENT_TRANSFERRED"
    STUDENT_PROMOTED = "STUDENT_PROMOTED"
    STUDENT_EXPELLED = "STUDENT_EXPELLED"
    DISCOUNT_APPLIED = "DISCOUNT_APPLIED"
    DISCOUNT_REMOVED = "DISCOUNT_REMOVED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Add an event to the audit log.
    
    Args:
        db: Database session; the caller commits
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_email: Email of actor
        entity_type: Kind of record touched, e.g. "fee_voucher"
        entity_id: ID of that record
        metadata: Additional context as JSON
        ip_address: IP address of the request
        
    Returns:
        Pending AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
        ip_address=ip_address
    )
    
    db.add(audit_log)
    await db.flush()
    
    return audit_log


async def log_user_action(
    db: AsyncSession,
    current_user: dict,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an action taken by the authenticated user."""
    return await log_event(
        db=db,
        action=action,
        actor_id=current_user.get("user_id"),
        actor_email=current_user.get("sub"),
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
    
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    
    if action:
        query = query.where(AuditLog.action == action)
    
    query = query.limit(limit)
    
    result = await db.execute(query)
    return list(result.scalars().all())
