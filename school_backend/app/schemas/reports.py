"""
Read-side fee and salary rollup schemas.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel

from school_backend.app.schemas.common import Money
from school_backend.app.schemas.voucher import FeeVoucherSummary
from school_backend.app.schemas.salary import SalaryVoucherSummary


class GuardianContact(BaseModel):
    name: str
    phone: Optional[str] = None
    relation: Optional[str] = None


class Defaulter(BaseModel):
    student_id: int
    student_name: str
    roll_no: Optional[str] = None
    phone: Optional[str] = None
    class_id: int
    class_name: str
    section_id: int
    section_name: str
    total_vouchers: int
    total_fee: Money
    paid_amount: Money
    due_amount: Money
    guardians: List[GuardianContact] = []


class DefaultersSummary(BaseModel):
    total_defaulters: int
    total_due_amount: Money


class DefaultersResponse(BaseModel):
    summary: DefaultersSummary
    defaulters: List[Defaulter]


class FeeHistorySummary(BaseModel):
    total_vouchers: int
    paid_vouchers: int
    partial_vouchers: int
    unpaid_vouchers: int
    total_fee: Money
    total_paid: Money
    total_due: Money


class StudentFeeHistory(BaseModel):
    student_id: int
    student_name: str
    summary: FeeHistorySummary
    vouchers: List[FeeVoucherSummary]


class StudentDue(BaseModel):
    student_id: int
    student_name: str
    pending_vouchers: int
    total_due: Money
    oldest_due_month: Optional[date] = None


class FeeStats(BaseModel):
    total_vouchers: int
    paid_vouchers: int
    partial_vouchers: int
    unpaid_vouchers: int
    total_fee: Money
    total_collected: Money
    total_due: Money
    total_payments: int
    collection_rate: float


class SalaryStats(BaseModel):
    total_vouchers: int
    paid_vouchers: int
    partial_vouchers: int
    unpaid_vouchers: int
    total_net_salary: Money
    total_paid: Money
    total_due: Money


class UnpaidSalaries(BaseModel):
    total_unpaid: int
    total_due: Money
    vouchers: List[SalaryVoucherSummary]
