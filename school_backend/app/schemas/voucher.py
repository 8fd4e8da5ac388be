"""
Fee voucher and fee payment schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from school_backend.app.domain.vouchers.discounts import FeeLine
from school_backend.app.domain.vouchers.fee_engine import fee_voucher_totals
from school_backend.app.domain.vouchers.status import VoucherTotals
from school_backend.app.models.enums import FeeItemType, VoucherStatus
from school_backend.app.models.fee_voucher import FeePayment, FeeVoucher
from school_backend.app.schemas.common import Money


class FeeItemIn(BaseModel):
    """A custom voucher line such as ARREARS or TRANSPORT."""
    item_type: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    
    @field_validator("item_type")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        return value.strip().upper()
    
    @model_validator(mode="after")
    def discount_is_negative(self):
        if self.item_type == FeeItemType.DISCOUNT.value and self.amount > 0:
            raise ValueError("DISCOUNT amount must be zero or negative")
        return self
    
    def to_line(self) -> FeeLine:
        return FeeLine(self.item_type, self.amount)


class GenerateVoucherRequest(BaseModel):
    student_id: int = Field(..., gt=0)
    month: date = Field(..., description="Any day of the month being billed")
    custom_items: List[FeeItemIn] = Field(default_factory=list)
    due_date: Optional[date] = Field(None, description="Defaults to the configured due day of the month")


class BulkGenerateRequest(BaseModel):
    class_id: int = Field(..., gt=0)
    section_id: Optional[int] = Field(None, gt=0)
    month: date


class UpdateItemsRequest(BaseModel):
    items: List[FeeItemIn] = Field(..., min_length=1)


class RecordPaymentRequest(BaseModel):
    voucher_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_date: Optional[date] = None


class FeeVoucherItemResponse(BaseModel):
    id: int
    item_type: str
    amount: Money
    
    class Config:
        from_attributes = True


class FeePaymentResponse(BaseModel):
    id: int
    voucher_id: int
    amount: Money
    payment_date: date
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class VoucherStatusResponse(BaseModel):
    voucher_id: int
    total_fee: Money
    paid_amount: Money
    due_amount: Money
    status: VoucherStatus
    
    @classmethod
    def from_totals(cls, voucher_id: int, totals: VoucherTotals) -> "VoucherStatusResponse":
        return cls(
            voucher_id=voucher_id,
            total_fee=totals.total,
            paid_amount=totals.paid,
            due_amount=totals.due,
            status=totals.status,
        )


class FeeVoucherSummary(BaseModel):
    """List row: voucher header and its derived balance."""
    voucher_id: int
    month: date
    due_date: Optional[date]
    student_id: int
    student_name: str
    roll_no: Optional[str] = None
    class_id: int
    class_name: str
    section_id: int
    section_name: str
    total_fee: Money
    paid_amount: Money
    due_amount: Money
    status: VoucherStatus
    created_at: Optional[datetime] = None
    
    @classmethod
    def header_fields(cls, voucher: FeeVoucher) -> dict:
        enrollment = voucher.enrollment
        totals = fee_voucher_totals(voucher)
        return {
            "voucher_id": voucher.id,
            "month": voucher.month,
            "due_date": voucher.due_date,
            "student_id": enrollment.student_id,
            "student_name": enrollment.student.name,
            "roll_no": enrollment.student.roll_no,
            "class_id": enrollment.class_id,
            "class_name": enrollment.school_class.name,
            "section_id": enrollment.section_id,
            "section_name": enrollment.section.name,
            "total_fee": totals.total,
            "paid_amount": totals.paid,
            "due_amount": totals.due,
            "status": totals.status,
            "created_at": voucher.created_at,
        }
    
    @classmethod
    def from_voucher(cls, voucher: FeeVoucher) -> "FeeVoucherSummary":
        return cls(**cls.header_fields(voucher))


class FeeVoucherResponse(FeeVoucherSummary):
    items: List[FeeVoucherItemResponse]
    payments: List[FeePaymentResponse]
    
    @classmethod
    def from_voucher(cls, voucher: FeeVoucher) -> "FeeVoucherResponse":
        return cls(
            **cls.header_fields(voucher),
            items=[FeeVoucherItemResponse.model_validate(item) for item in voucher.items],
            payments=[FeePaymentResponse.model_validate(payment) for payment in voucher.payments],
        )


class PaymentReceiptResponse(BaseModel):
    payment: FeePaymentResponse
    voucher_status: VoucherStatusResponse


class PaymentListItem(FeePaymentResponse):
    """Payment row with the voucher it settles."""
    month: date
    student_id: int
    student_name: str
    class_name: str
    section_name: str
    
    @classmethod
    def from_payment(cls, payment: FeePayment, voucher: FeeVoucher) -> "PaymentListItem":
        enrollment = voucher.enrollment
        return cls(
            id=payment.id,
            voucher_id=payment.voucher_id,
            amount=payment.amount,
            payment_date=payment.payment_date,
            created_at=payment.created_at,
            month=voucher.month,
            student_id=enrollment.student_id,
            student_name=enrollment.student.name,
            class_name=enrollment.school_class.name,
            section_name=enrollment.section.name,
        )


class BulkItemResult(BaseModel):
    student_id: Optional[int] = None
    faculty_id: Optional[int] = None
    student_name: Optional[str] = None
    faculty_name: Optional[str] = None
    voucher_id: Optional[int] = None
    total_fee: Optional[Money] = None
    net_salary: Optional[Money] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class BulkSummary(BaseModel):
    total: int
    generated: int
    skipped: int
    failed: int


class BulkDetails(BaseModel):
    generated: List[BulkItemResult]
    skipped: List[BulkItemResult]
    failed: List[BulkItemResult]


class BulkGenerateResponse(BaseModel):
    summary: BulkSummary
    details: BulkDetails
