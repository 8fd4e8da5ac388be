"""
Fee structure versions.

Rows are append-only. The structure in force for a month is the row with the
latest ``effective_from`` on or before that month.
"""

from sqlalchemy import Column, Integer, Numeric, Date, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from school_backend.app.db.session import Base


class FeeStructureVersion(Base):
    __tablename__ = "class_fee_structure"
    __table_args__ = (
        UniqueConstraint("class_id", "effective_from", name="uq_fee_structure_class_effective"),
        CheckConstraint("admission_fee >= 0 AND monthly_fee >= 0 AND paper_fund >= 0", name="ck_fee_structure_non_negative"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_from = Column(Date, nullable=False)
    
    admission_fee = Column(Numeric(12, 2), nullable=False, default=0)
    monthly_fee = Column(Numeric(12, 2), nullable=False, default=0)
    paper_fund = Column(Numeric(12, 2), nullable=False, default=0)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<FeeStructureVersion(class_id={self.class_id}, effective_from={self.effective_from}, monthly={self.monthly_fee})>"
