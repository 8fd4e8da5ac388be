"""
Class, section and fee structure schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from school_backend.app.models.enums import ClassType
from school_backend.app.schemas.common import Money


class FeeStructureIn(BaseModel):
    admission_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    monthly_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    paper_fund: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    effective_from: Optional[date] = Field(None, description="Defaults to today")


class FeeStructureResponse(BaseModel):
    id: int
    class_id: int
    effective_from: date
    admission_fee: Money
    monthly_fee: Money
    paper_fund: Money
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ClassCreate(BaseModel):
    class_type: ClassType = ClassType.SCHOOL
    name: str = Field(..., min_length=1, max_length=100)
    fee_structure: Optional[FeeStructureIn] = None


class ClassUpdate(BaseModel):
    class_type: Optional[ClassType] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class SectionCreate(BaseModel):
    class_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=50)


class SectionUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)


class SectionResponse(BaseModel):
    id: int
    class_id: int
    name: str
    student_count: int = 0
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ClassResponse(BaseModel):
    id: int
    class_type: ClassType
    name: str
    is_active: bool
    created_at: Optional[datetime] = None
    student_count: int = 0
    sections: List[SectionResponse] = []
    current_fee_structure: Optional[FeeStructureResponse] = None
