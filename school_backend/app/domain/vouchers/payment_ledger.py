"""
Payment Ledger (Domain Logic).

Payments are append-only rows against a voucher. The balance check and the
insert run under a row lock on the voucher, so two concurrent payments can
never both pass the check and overpay it.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError, ValidationError
from school_backend.app.domain.vouchers.fee_engine import fee_voucher_totals, load_fee_voucher
from school_backend.app.domain.vouchers.salary_engine import load_salary_voucher, salary_voucher_totals
from school_backend.app.domain.vouchers.status import VoucherTotals, ZERO, round_money
from school_backend.app.models.fee_voucher import FeePayment, FeeVoucher
from school_backend.app.models.salary_voucher import SalaryPayment, SalaryVoucher

logger = logging.getLogger(__name__)


@dataclass
class PaymentReceipt:
    payment: Union[FeePayment, SalaryPayment]
    totals: VoucherTotals


def _check_amount(amount: Decimal, due: Decimal) -> Decimal:
    amount = round_money(amount)
    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than zero")
    if amount > due:
        raise InvalidStateError(
            f"Payment amount ({amount}) exceeds due amount ({due})",
            details={"amount": amount, "due_amount": due},
        )
    return amount


async def _lock_voucher(db: AsyncSession, model, voucher_id: int, label: str) -> None:
    result = await db.execute(
        select(model.id).where(model.id == voucher_id).with_for_update()
    )
    if result.scalar_one_or_none() is None:
        raise ResourceNotFoundError(label, voucher_id, message=f"{label} not found")


class PaymentLedger:
    
    @staticmethod
    async def record_fee_payment(
        db: AsyncSession,
        voucher_id: int,
        amount: Decimal,
        payment_date: Optional[date] = None,
    ) -> PaymentReceipt:
        """
        Record a payment against a fee voucher.
        
        The due amount is recomputed after the voucher row is locked. An
        overpayment raises InvalidStateError and writes nothing.
        """
        await _lock_voucher(db, FeeVoucher, voucher_id, "Voucher")
        voucher = await load_fee_voucher(db, voucher_id)
        
        amount = _check_amount(amount, fee_voucher_totals(voucher).due)
        payment = FeePayment(amount=amount, payment_date=payment_date or date.today())
        voucher.payments.append(payment)
        await db.flush()
        
        totals = fee_voucher_totals(voucher)
        logger.info(
            "Fee payment %s of %s recorded on voucher %s (%s)",
            payment.id, amount, voucher_id, totals.status.value,
        )
        return PaymentReceipt(payment=payment, totals=totals)
    
    @staticmethod
    async def record_salary_payment(
        db: AsyncSession,
        voucher_id: int,
        amount: Decimal,
        payment_date: Optional[date] = None,
    ) -> PaymentReceipt:
        await _lock_voucher(db, SalaryVoucher, voucher_id, "Salary voucher")
        voucher = await load_salary_voucher(db, voucher_id)
        
        amount = _check_amount(amount, salary_voucher_totals(voucher).due)
        payment = SalaryPayment(amount=amount, payment_date=payment_date or date.today())
        voucher.payments.append(payment)
        await db.flush()
        
        totals = salary_voucher_totals(voucher)
        logger.info(
            "Salary payment %s of %s recorded on voucher %s (%s)",
            payment.id, amount, voucher_id, totals.status.value,
        )
        return PaymentReceipt(payment=payment, totals=totals)
    
    @staticmethod
    async def delete_fee_payment(db: AsyncSession, payment_id: int) -> FeePayment:
        """
        Admin correction: remove a recorded fee payment.
        
        The voucher's status follows automatically since it is derived.
        """
        payment = await db.get(FeePayment, payment_id)
        if payment is None:
            raise ResourceNotFoundError("Payment", payment_id, message="Payment not found")
        
        await db.delete(payment)
        await db.flush()
        logger.warning("Fee payment %s of %s on voucher %s deleted", payment.id, payment.amount, payment.voucher_id)
        return payment
