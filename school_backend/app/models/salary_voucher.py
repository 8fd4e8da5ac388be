"""
Salary voucher, adjustments and payments.

Parallel to the fee side, keyed on (faculty, month). ``base_salary`` is a
snapshot of the structure in force when the voucher was generated.
"""

from sqlalchemy import Column, Integer, Numeric, Date, DateTime, Enum, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from school_backend.app.db.session import Base
from school_backend.app.models.enums import AdjustmentType, CalcType


class SalaryVoucher(Base):
    __tablename__ = "salary_vouchers"
    __table_args__ = (
        UniqueConstraint("faculty_id", "month", name="uq_salary_vouchers_faculty_month"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    faculty_id = Column(Integer, ForeignKey("faculty.id"), nullable=False, index=True)
    month = Column(Date, nullable=False, index=True)
    base_salary = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    faculty = relationship("Faculty", lazy="selectin")
    adjustments = relationship(
        "SalaryAdjustment",
        back_populates="voucher",
        lazy="selectin",
        order_by="SalaryAdjustment.id",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "SalaryPayment",
        back_populates="voucher",
        lazy="selectin",
        order_by="SalaryPayment.id",
        cascade="all, delete-orphan",
    )
    
    def __repr__(self):
        return f"<SalaryVoucher(id={self.id}, faculty_id={self.faculty_id}, month={self.month})>"


class SalaryAdjustment(Base):
    __tablename__ = "salary_adjustments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_salary_adjustments_positive"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    voucher_id = Column(Integer, ForeignKey("salary_vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(AdjustmentType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    calc_type = Column(Enum(CalcType), nullable=False, default=CalcType.FLAT)
    
    voucher = relationship("SalaryVoucher", back_populates="adjustments")


class SalaryPayment(Base):
    __tablename__ = "salary_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_salary_payments_positive"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    voucher_id = Column(Integer, ForeignKey("salary_vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    voucher = relationship("SalaryVoucher", back_populates="payments")
