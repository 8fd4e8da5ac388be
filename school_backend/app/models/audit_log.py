"""
Audit Log Database Model.

Tracks security events and every change to financial records.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from school_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.
    
    Events logged:
    - LOGIN_SUCCESS / LOGIN_FAILED / LOGIN_LOCKED
    - USER_CREATED / USER_DELETED / PASSWORD_CHANGED
    - FEE_VOUCHER_GENERATED / FEE_VOUCHER_DELETED / FEE_PAYMENT_RECORDED / FEE_PAYMENT_DELETED
    - SALARY_VOUCHER_GENERATED / SALARY_PAYMENT_RECORDED
    - DISCOUNT_APPLIED / DISCOUNT_REMOVED / STUDENT_PROMOTED
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_email = Column(String(255), nullable=True)
    
    action = Column(String(100), nullable=False, index=True)
    
    # What the action touched
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True, index=True)
    
    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)
    
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email}, entity={self.entity_type}:{self.entity_id})>"
