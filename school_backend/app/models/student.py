"""
Student and guardian models.

A student is in exactly one of three states:

    active      is_active=True,  is_expelled=False
    inactive    is_active=False, is_expelled=False
    expelled    is_active=False, is_expelled=True
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from school_backend.app.db.session import Base


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint("NOT (is_active AND is_expelled)", name="ck_students_active_not_expelled"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    roll_no = Column(String(50), unique=True, nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    bay_form = Column(String(30), nullable=True)
    caste = Column(String(100), nullable=True)
    previous_school = Column(String(200), nullable=True)
    
    is_active = Column(Boolean, default=True, nullable=False)
    is_expelled = Column(Boolean, default=False, nullable=False)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    guardian_links = relationship(
        "StudentGuardian",
        back_populates="student",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    
    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.name}', active={self.is_active}, expelled={self.is_expelled})>"


class Guardian(Base):
    __tablename__ = "guardians"
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    cnic = Column(String(13), unique=True, nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    occupation = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Guardian(id={self.id}, name='{self.name}', cnic={self.cnic})>"


class StudentGuardian(Base):
    """Link between a student and a guardian, with the guardian's relation to the student."""
    __tablename__ = "student_guardians"
    
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), primary_key=True)
    guardian_id = Column(Integer, ForeignKey("guardians.id", ondelete="CASCADE"), primary_key=True, index=True)
    relation = Column(String(50), nullable=True)
    
    student = relationship("Student", back_populates="guardian_links")
    guardian = relationship("Guardian", lazy="selectin")
