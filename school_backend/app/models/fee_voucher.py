"""
Fee voucher, line items and payments.

A voucher has no status column. Status comes from summing items and
payments every time it is read.
"""

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from school_backend.app.db.session import Base


class FeeVoucher(Base):
    """
    Monthly fee voucher of one enrollment.
    
    ``month`` is always stored as the first day of its calendar month, which
    lets the unique constraint stand for "one voucher per enrollment per month".
    """
    __tablename__ = "fee_vouchers"
    __table_args__ = (
        UniqueConstraint("student_class_history_id", "month", name="uq_fee_vouchers_enrollment_month"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_class_history_id = Column(
        Integer, ForeignKey("student_class_history.id"), nullable=False, index=True
    )
    month = Column(Date, nullable=False, index=True)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    enrollment = relationship("Enrollment", lazy="selectin")
    items = relationship(
        "FeeVoucherItem",
        back_populates="voucher",
        lazy="selectin",
        order_by="FeeVoucherItem.id",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "FeePayment",
        back_populates="voucher",
        lazy="selectin",
        order_by="FeePayment.id",
        cascade="all, delete-orphan",
    )
    
    def __repr__(self):
        return f"<FeeVoucher(id={self.id}, enrollment={self.student_class_history_id}, month={self.month})>"


class FeeVoucherItem(Base):
    __tablename__ = "fee_voucher_items"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    voucher_id = Column(Integer, ForeignKey("fee_vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    item_type = Column(String(50), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    
    voucher = relationship("FeeVoucher", back_populates="items")
    
    def __repr__(self):
        return f"<FeeVoucherItem(voucher_id={self.voucher_id}, {self.item_type}={self.amount})>"


class FeePayment(Base):
    __tablename__ = "fee_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_fee_payments_positive"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    voucher_id = Column(Integer, ForeignKey("fee_vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    voucher = relationship("FeeVoucher", back_populates="payments")
    
    def __repr__(self):
        return f"<FeePayment(id={self.id}, voucher_id={self.voucher_id}, amount={self.amount})>"
