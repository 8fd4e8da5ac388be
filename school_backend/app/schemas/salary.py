"""
Faculty, salary structure and salary voucher schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from school_backend.app.domain.vouchers.salary_engine import (
    AdjustmentLine,
    adjustment_value,
    salary_voucher_totals,
)
from school_backend.app.models.enums import AdjustmentType, CalcType, Gender, VoucherStatus
from school_backend.app.models.salary_voucher import SalaryVoucher
from school_backend.app.schemas.common import Money
from school_backend.app.schemas.student import CNIC_PATTERN


class FacultyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    father_or_husband: Optional[str] = Field(None, max_length=200)
    cnic: Optional[str] = Field(None, pattern=CNIC_PATTERN)
    phone: Optional[str] = Field(None, max_length=30)
    gender: Optional[Gender] = None
    role: Optional[str] = Field(None, max_length=100)
    subject: Optional[str] = Field(None, max_length=100)
    base_salary: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    effective_from: Optional[date] = Field(None, description="Start of the first salary structure, defaults to today")
    
    def faculty_fields(self) -> dict:
        return self.model_dump(exclude={"base_salary", "effective_from"})


class FacultyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    father_or_husband: Optional[str] = Field(None, max_length=200)
    cnic: Optional[str] = Field(None, pattern=CNIC_PATTERN)
    phone: Optional[str] = Field(None, max_length=30)
    gender: Optional[Gender] = None
    role: Optional[str] = Field(None, max_length=100)
    subject: Optional[str] = Field(None, max_length=100)


class SalaryStructureIn(BaseModel):
    base_salary: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    effective_from: Optional[date] = Field(None, description="Defaults to today")


class SalaryStructureResponse(BaseModel):
    id: int
    faculty_id: int
    effective_from: date
    base_salary: Money
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class FacultyResponse(BaseModel):
    id: int
    name: str
    father_or_husband: Optional[str]
    cnic: Optional[str]
    phone: Optional[str]
    gender: Optional[Gender]
    role: Optional[str]
    subject: Optional[str]
    is_active: bool
    created_at: Optional[datetime] = None
    current_salary: Optional[Money] = None
    
    class Config:
        from_attributes = True


class AdjustmentIn(BaseModel):
    type: AdjustmentType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    calc_type: CalcType = CalcType.FLAT
    
    def to_line(self) -> AdjustmentLine:
        return AdjustmentLine(type=self.type, amount=self.amount, calc_type=self.calc_type)


class GenerateSalaryRequest(BaseModel):
    faculty_id: int = Field(..., gt=0)
    month: date
    adjustments: List[AdjustmentIn] = Field(default_factory=list)


class BulkSalaryRequest(BaseModel):
    month: date
    faculty_ids: Optional[List[int]] = None


class SalaryPaymentRequest(BaseModel):
    voucher_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_date: Optional[date] = None


class SalaryAdjustmentResponse(BaseModel):
    id: int
    type: AdjustmentType
    amount: Money
    calc_type: CalcType
    calculated_amount: Money


class SalaryPaymentResponse(BaseModel):
    id: int
    voucher_id: int
    amount: Money
    payment_date: date
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class SalaryVoucherSummary(BaseModel):
    voucher_id: int
    faculty_id: int
    faculty_name: str
    faculty_role: Optional[str] = None
    month: date
    base_salary: Money
    net_salary: Money
    paid_amount: Money
    due_amount: Money
    status: VoucherStatus
    created_at: Optional[datetime] = None
    
    @classmethod
    def header_fields(cls, voucher: SalaryVoucher) -> dict:
        totals = salary_voucher_totals(voucher)
        return {
            "voucher_id": voucher.id,
            "faculty_id": voucher.faculty_id,
            "faculty_name": voucher.faculty.name,
            "faculty_role": voucher.faculty.role,
            "month": voucher.month,
            "base_salary": voucher.base_salary,
            "net_salary": totals.total,
            "paid_amount": totals.paid,
            "due_amount": totals.due,
            "status": totals.status,
            "created_at": voucher.created_at,
        }
    
    @classmethod
    def from_voucher(cls, voucher: SalaryVoucher) -> "SalaryVoucherSummary":
        return cls(**cls.header_fields(voucher))


class SalaryVoucherResponse(SalaryVoucherSummary):
    adjustments: List[SalaryAdjustmentResponse]
    payments: List[SalaryPaymentResponse]
    
    @classmethod
    def from_voucher(cls, voucher: SalaryVoucher) -> "SalaryVoucherResponse":
        return cls(
            **cls.header_fields(voucher),
            adjustments=[
                SalaryAdjustmentResponse(
                    id=adj.id,
                    type=adj.type,
                    amount=adj.amount,
                    calc_type=adj.calc_type,
                    calculated_amount=adjustment_value(voucher.base_salary, adj),
                )
                for adj in voucher.adjustments
            ],
            payments=[SalaryPaymentResponse.model_validate(p) for p in voucher.payments],
        )


class SalaryPaymentReceipt(BaseModel):
    payment: SalaryPaymentResponse
    voucher_status: SalaryVoucherSummary


class FacultyStats(BaseModel):
    total_faculty: int
    active_faculty: int
    inactive_faculty: int
    total_monthly_salary: Money
