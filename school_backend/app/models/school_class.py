"""
Class and section models.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from school_backend.app.db.session import Base
from school_backend.app.models.enums import ClassType


class SchoolClass(Base):
    """
    A class (grade) of the school or the college wing.
    
    Classes are never hard deleted; deleting one deactivates it.
    """
    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("class_type", "name", name="uq_classes_type_name"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    class_type = Column(Enum(ClassType), nullable=False, default=ClassType.SCHOOL)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    sections = relationship("Section", back_populates="school_class", lazy="selectin", order_by="Section.name")
    
    def __repr__(self):
        return f"<SchoolClass(id={self.id}, name='{self.name}', type='{self.class_type.value}')>"


class Section(Base):
    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("class_id", "name", name="uq_sections_class_name"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    school_class = relationship("SchoolClass", back_populates="sections")
    
    def __repr__(self):
        return f"<Section(id={self.id}, class_id={self.class_id}, name='{self.name}')>"
