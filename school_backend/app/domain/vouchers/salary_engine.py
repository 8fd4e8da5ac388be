"""
Salary Voucher Engine (Domain Logic).

Same lifecycle as fee vouchers, keyed on (faculty, month). The voucher keeps
a snapshot of the base salary in force for the month; adjustments are given
explicitly at generation time or added later while nothing has been paid.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import (
    AppException,
    InvalidStateError,
    ResourceNotFoundError,
    UNIQUE_VIOLATION,
    classify_integrity_error,
)
from school_backend.app.domain.structures.resolver import StructureResolver
from school_backend.app.domain.vouchers.fee_engine import BulkOutcome, DuplicateVoucherError, month_end, normalize_month
from school_backend.app.domain.vouchers.status import VoucherTotals, ZERO, round_money
from school_backend.app.models.enums import AdjustmentType, CalcType
from school_backend.app.models.faculty import Faculty
from school_backend.app.models.salary_voucher import SalaryAdjustment, SalaryVoucher

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AdjustmentLine:
    type: AdjustmentType
    amount: Decimal
    calc_type: CalcType = CalcType.FLAT


def adjustment_value(base_salary: Decimal, adjustment) -> Decimal:
    """Money value of one adjustment. Percentages always apply to the base salary."""
    if adjustment.calc_type == CalcType.PERCENTAGE:
        return round_money(Decimal(base_salary) * Decimal(adjustment.amount) / HUNDRED)
    return round_money(adjustment.amount)


def compute_net_salary(base_salary: Decimal, adjustments: Iterable) -> Decimal:
    """base + bonuses - advances, with no chaining between percentage adjustments."""
    net = round_money(base_salary)
    for adjustment in adjustments:
        value = adjustment_value(base_salary, adjustment)
        if adjustment.type == AdjustmentType.BONUS:
            net += value
        else:
            net -= value
    return round_money(net)


def salary_voucher_totals(voucher: SalaryVoucher) -> VoucherTotals:
    return VoucherTotals.compute(
        compute_net_salary(voucher.base_salary, voucher.adjustments),
        [payment.amount for payment in voucher.payments],
    )


async def load_salary_voucher(db: AsyncSession, voucher_id: int) -> SalaryVoucher:
    result = await db.execute(
        select(SalaryVoucher)
        .where(SalaryVoucher.id == voucher_id)
        .execution_options(populate_existing=True)
    )
    voucher = result.scalar_one_or_none()
    if voucher is None:
        raise ResourceNotFoundError("Salary voucher", voucher_id, message="Salary voucher not found")
    return voucher


class SalaryVoucherEngine:
    
    @staticmethod
    async def generate(
        db: AsyncSession,
        faculty_id: int,
        month: date,
        adjustments: Sequence[AdjustmentLine] = (),
    ) -> SalaryVoucher:
        """
        Generate the salary voucher of a faculty member for a month.
        
        Raises:
            ResourceNotFoundError: Unknown faculty member, or no salary structure for the month.
            InvalidStateError: Faculty member is inactive.
            DuplicateVoucherError: Voucher already exists for the month.
        """
        month = normalize_month(month)
        
        result = await db.execute(
            select(Faculty).where(Faculty.id == faculty_id).with_for_update()
        )
        faculty = result.scalar_one_or_none()
        if faculty is None:
            raise ResourceNotFoundError("Faculty member", faculty_id, message="Faculty member not found")
        if not faculty.is_active:
            raise InvalidStateError("Cannot generate salary for inactive faculty member")
        
        duplicate_message = f"Salary voucher already exists for {faculty.name} for the specified month"
        existing = await db.execute(
            select(SalaryVoucher.id).where(
                SalaryVoucher.faculty_id == faculty_id,
                SalaryVoucher.month == month,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateVoucherError(
                duplicate_message,
                details={"faculty_id": faculty_id, "month": month.isoformat()},
            )
        
        structure = await StructureResolver.resolve_salary_structure(db, faculty_id, month_end(month))
        
        voucher = SalaryVoucher(
            faculty_id=faculty_id,
            month=month,
            base_salary=round_money(structure.base_salary),
            adjustments=[
                SalaryAdjustment(
                    type=line.type,
                    amount=round_money(line.amount),
                    calc_type=line.calc_type,
                )
                for line in adjustments
            ],
            payments=[],
        )
        db.add(voucher)
        try:
            await db.flush()
        except IntegrityError as exc:
            if classify_integrity_error(exc) == UNIQUE_VIOLATION:
                raise DuplicateVoucherError(
                    duplicate_message,
                    details={"faculty_id": faculty_id, "month": month.isoformat()},
                ) from exc
            raise
        
        logger.info("Salary voucher %s generated for faculty %s, month %s", voucher.id, faculty_id, month.isoformat())
        return await load_salary_voucher(db, voucher.id)
    
    @staticmethod
    async def generate_bulk(
        db: AsyncSession,
        month: date,
        faculty_ids: Optional[Sequence[int]] = None,
    ) -> BulkOutcome:
        """Generate vouchers for every active faculty member (or the given ones)."""
        month = normalize_month(month)
        
        query = select(Faculty.id, Faculty.name).where(Faculty.is_active.is_(True)).order_by(Faculty.name)
        if faculty_ids:
            query = query.where(Faculty.id.in_(faculty_ids))
        
        members = (await db.execute(query)).all()
        if not members:
            raise ResourceNotFoundError("Faculty member", message="No active faculty members found")
        
        outcome = BulkOutcome()
        for faculty_id, name in members:
            entry = {"faculty_id": faculty_id, "faculty_name": name}
            try:
                async with db.begin_nested():
                    voucher = await SalaryVoucherEngine.generate(db, faculty_id, month)
                outcome.generated.append({
                    **entry,
                    "voucher_id": voucher.id,
                    "net_salary": salary_voucher_totals(voucher).total,
                })
            except DuplicateVoucherError:
                outcome.skipped.append({**entry, "reason": "Voucher already exists for this month"})
            except AppException as exc:
                outcome.failed.append({**entry, "error": exc.message})
            except SQLAlchemyError as exc:
                logger.exception("Bulk salary voucher generation failed for faculty %s", faculty_id)
                outcome.failed.append({**entry, "error": str(exc.__class__.__name__)})
        
        logger.info(
            "Bulk salary vouchers for %s: %s generated, %s skipped, %s failed",
            month.isoformat(), len(outcome.generated), len(outcome.skipped), len(outcome.failed),
        )
        return outcome
    
    @staticmethod
    async def add_adjustment(db: AsyncSession, voucher_id: int, line: AdjustmentLine) -> SalaryVoucher:
        await db.execute(
            select(SalaryVoucher.id).where(SalaryVoucher.id == voucher_id).with_for_update()
        )
        voucher = await load_salary_voucher(db, voucher_id)
        if salary_voucher_totals(voucher).paid > ZERO:
            raise InvalidStateError("Cannot add adjustments to a voucher that has payments")
        
        voucher.adjustments.append(
            SalaryAdjustment(type=line.type, amount=round_money(line.amount), calc_type=line.calc_type)
        )
        await db.flush()
        return await load_salary_voucher(db, voucher_id)
    
    @staticmethod
    async def delete(db: AsyncSession, voucher_id: int) -> None:
        await db.execute(
            select(SalaryVoucher.id).where(SalaryVoucher.id == voucher_id).with_for_update()
        )
        voucher = await load_salary_voucher(db, voucher_id)
        if voucher.payments:
            raise InvalidStateError("Cannot delete voucher with payments. Only unpaid vouchers can be deleted.")
        await db.delete(voucher)
        await db.flush()
