"""
Voucher status derivation.

Status is a pure function of the voucher total and the sum of its payments.
It is recomputed on every read and never written to a column, so it cannot
drift away from the items and payments it summarises.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from school_backend.app.models.enums import VoucherStatus

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def round_money(value: Number) -> Decimal:
    """Round to whole cents, half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Number]) -> Decimal:
    return round_money(sum((round_money(v) for v in values), ZERO))


def derive_status(total: Number, paid: Number) -> VoucherStatus:
    """
    PAID once payments cover the total, PARTIAL while something but not
    everything is paid, UNPAID before the first payment.
    """
    total = round_money(total)
    paid = round_money(paid)
    
    if paid >= total:
        return VoucherStatus.PAID
    if paid > ZERO:
        return VoucherStatus.PARTIAL
    return VoucherStatus.UNPAID


@dataclass(frozen=True)
class VoucherTotals:
    total: Decimal
    paid: Decimal
    due: Decimal
    status: VoucherStatus
    
    @classmethod
    def compute(cls, total: Number, payments: Iterable[Number]) -> "VoucherTotals":
        total = round_money(total)
        paid = sum_money(payments)
        return cls(
            total=total,
            paid=paid,
            due=round_money(total - paid),
            status=derive_status(total, paid),
        )
