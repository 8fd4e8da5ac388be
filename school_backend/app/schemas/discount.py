"""
Discount schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from school_backend.app.models.enums import DiscountType
from school_backend.app.schemas.common import Money


def _check_percentage(discount_type: Optional[DiscountType], value: Optional[Decimal]) -> None:
    if discount_type == DiscountType.PERCENTAGE and value is not None and value > 100:
        raise ValueError("Percentage discount cannot exceed 100")


class DiscountCreate(BaseModel):
    student_id: int = Field(..., gt=0)
    class_id: int = Field(..., gt=0)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=255)
    
    @model_validator(mode="after")
    def percentage_in_range(self):
        _check_percentage(self.discount_type, self.discount_value)
        return self


class DiscountUpdate(BaseModel):
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=255)


class DiscountResponse(BaseModel):
    id: int
    student_id: int
    class_id: int
    discount_type: DiscountType
    discount_value: Money
    reason: Optional[str]
    applied_by: Optional[int]
    created_at: Optional[datetime] = None
    student_name: Optional[str] = None
    class_name: Optional[str] = None
    
    class Config:
        from_attributes = True
