"""
Enrollment ledger.

One row per stay of a student in a class/section. The open row
(``end_date IS NULL``) is the current enrollment; a partial unique index
keeps it to at most one per student.
"""

from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from school_backend.app.db.session import Base


class Enrollment(Base):
    __tablename__ = "student_class_history"
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    student = relationship("Student", lazy="selectin")
    school_class = relationship("SchoolClass", lazy="selectin")
    section = relationship("Section", lazy="selectin")
    
    __table_args__ = (
        Index(
            "uq_student_class_history_open",
            "student_id",
            unique=True,
            postgresql_where=end_date.is_(None),
            sqlite_where=end_date.is_(None),
        ),
    )
    
    @property
    def is_open(self) -> bool:
        return self.end_date is None
    
    def __repr__(self):
        return f"<Enrollment(id={self.id}, student_id={self.student_id}, class_id={self.class_id}, open={self.end_date is None})>"
