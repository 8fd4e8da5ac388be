"""
Per student, per class fee discount.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from school_backend.app.db.session import Base
from school_backend.app.models.enums import DiscountType


class Discount(Base):
    """
    One discount per (student, class); writes are upserts.
    
    Promotion with ``reset_discount`` removes the rows of the class the
    student is leaving.
    """
    __tablename__ = "student_discounts"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", name="uq_student_discounts_student_class"),
        CheckConstraint("discount_value > 0", name="ck_student_discounts_positive"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=True)
    applied_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Discount(student_id={self.student_id}, class_id={self.class_id}, {self.discount_type.value}={self.discount_value})>"
