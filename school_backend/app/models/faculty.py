"""
Faculty members and their salary structure versions.
"""

from sqlalchemy import Column, Integer, String, Boolean, Numeric, Date, DateTime, Enum, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from school_backend.app.db.session import Base
from school_backend.app.models.enums import Gender


class Faculty(Base):
    __tablename__ = "faculty"
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    father_or_husband = Column(String(200), nullable=True)
    cnic = Column(String(13), unique=True, nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    gender = Column(Enum(Gender), nullable=True)
    role = Column(String(100), nullable=True)
    subject = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Faculty(id={self.id}, name='{self.name}', active={self.is_active})>"


class SalaryStructureVersion(Base):
    """Append-only; same effective-dated lookup as fee structures."""
    __tablename__ = "salary_structure"
    __table_args__ = (
        UniqueConstraint("faculty_id", "effective_from", name="uq_salary_structure_faculty_effective"),
        CheckConstraint("base_salary >= 0", name="ck_salary_structure_non_negative"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    faculty_id = Column(Integer, ForeignKey("faculty.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_from = Column(Date, nullable=False)
    base_salary = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<SalaryStructureVersion(faculty_id={self.faculty_id}, effective_from={self.effective_from}, base={self.base_salary})>"
