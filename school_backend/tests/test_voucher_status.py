"""
Derived status, money rounding and discount arithmetic.
"""

from decimal import Decimal

from school_backend.app.domain.vouchers.discounts import FeeLine, compute_discount_amount
from school_backend.app.domain.vouchers.salary_engine import AdjustmentLine, compute_net_salary
from school_backend.app.domain.vouchers.status import VoucherTotals, derive_status, round_money
from school_backend.app.models.enums import AdjustmentType, CalcType, DiscountType, VoucherStatus


def test_status_follows_payments():
    assert derive_status(Decimal("3500"), Decimal("0")) == VoucherStatus.UNPAID
    assert derive_status(Decimal("3500"), Decimal("0.01")) == VoucherStatus.PARTIAL
    assert derive_status(Decimal("3500"), Decimal("3499.99")) == VoucherStatus.PARTIAL
    assert derive_status(Decimal("3500"), Decimal("3500.00")) == VoucherStatus.PAID


def test_zero_total_voucher_is_paid():
    """A voucher fully discounted to zero needs no payment."""
    assert derive_status(Decimal("0"), Decimal("0")) == VoucherStatus.PAID


def test_round_money_half_up():
    assert round_money("10.005") == Decimal("10.01")
    assert round_money(Decimal("2.344")) == Decimal("2.34")
    assert round_money(7) == Decimal("7.00")


def test_totals_compute_due():
    totals = VoucherTotals.compute(Decimal("3500"), [Decimal("1000"), Decimal("500.50")])
    
    assert totals.paid == Decimal("1500.50")
    assert totals.due == Decimal("1999.50")
    assert totals.status == VoucherStatus.PARTIAL


def test_percentage_discount_on_charged_lines():
    lines = [FeeLine("MONTHLY", Decimal("3000")), FeeLine("PAPER_FUND", Decimal("500"))]
    
    amount = compute_discount_amount(DiscountType.PERCENTAGE, Decimal("10"), lines)
    
    assert amount == Decimal("-350.00")


def test_flat_discount_never_exceeds_charges():
    lines = [FeeLine("MONTHLY", Decimal("3000"))]
    
    assert compute_discount_amount(DiscountType.FLAT, Decimal("1000"), lines) == Decimal("-1000.00")
    assert compute_discount_amount(DiscountType.FLAT, Decimal("5000"), lines) == Decimal("-3000.00")


def test_existing_discount_lines_are_not_discounted_again():
    lines = [FeeLine("MONTHLY", Decimal("2000")), FeeLine("DISCOUNT", Decimal("-500"))]
    
    amount = compute_discount_amount(DiscountType.PERCENTAGE, Decimal("50"), lines)
    
    assert amount == Decimal("-1000.00")


def test_net_salary_percentages_apply_to_base():
    adjustments = [
        AdjustmentLine(AdjustmentType.BONUS, Decimal("10"), CalcType.PERCENTAGE),
        AdjustmentLine(AdjustmentType.BONUS, Decimal("10"), CalcType.PERCENTAGE),
        AdjustmentLine(AdjustmentType.ADVANCE, Decimal("2000"), CalcType.FLAT),
    ]
    
    assert compute_net_salary(Decimal("50000"), adjustments) == Decimal("58000.00")
