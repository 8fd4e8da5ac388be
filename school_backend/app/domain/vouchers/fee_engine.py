"""
Fee Voucher Engine (Domain Logic).

Generates monthly fee vouchers from an enrollment and the fee structure in
force for the month. Writes are flushed, never committed; the caller owns the
transaction.

Invariants:
- One voucher per (enrollment, calendar month), backed by a unique constraint.
- ADMISSION is charged only on the first voucher of an enrollment.
- Items are snapshots; later structure versions never change them.
- Items can be added only while nothing has been paid.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.config import settings
from school_backend.app.core.exceptions import (
    AppException,
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    UNIQUE_VIOLATION,
    classify_integrity_error,
)
from school_backend.app.domain.structures.resolver import StructureResolver
from school_backend.app.domain.vouchers.discounts import FeeLine, check_discount_bound
from school_backend.app.domain.vouchers.status import VoucherTotals, ZERO, round_money, sum_money
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.enums import FeeItemType
from school_backend.app.models.fee_structure import FeeStructureVersion
from school_backend.app.models.fee_voucher import FeeVoucher, FeeVoucherItem
from school_backend.app.models.student import Student

logger = logging.getLogger(__name__)


class DuplicateVoucherError(ConflictError):
    """A voucher already exists for the subject and month."""


def normalize_month(value: date) -> date:
    """First day of the calendar month of ``value``."""
    return value.replace(day=1)


def month_end(month: date) -> date:
    """Last day of the calendar month of ``month``; structures in force by then apply."""
    return month.replace(day=calendar.monthrange(month.year, month.month)[1])


def due_date_for(month: date) -> date:
    last_day = calendar.monthrange(month.year, month.month)[1]
    return month.replace(day=max(1, min(settings.voucher_due_day, last_day)))


def fee_voucher_totals(voucher: FeeVoucher) -> VoucherTotals:
    return VoucherTotals.compute(
        sum_money(item.amount for item in voucher.items),
        [payment.amount for payment in voucher.payments],
    )


def structure_lines(structure: FeeStructureVersion, include_admission: bool) -> List[FeeLine]:
    """Non-zero lines of a fee structure, in voucher order."""
    components = [
        (FeeItemType.ADMISSION, structure.admission_fee if include_admission else ZERO),
        (FeeItemType.MONTHLY, structure.monthly_fee),
        (FeeItemType.PAPER_FUND, structure.paper_fund),
    ]
    return [
        FeeLine(item_type.value, round_money(amount))
        for item_type, amount in components
        if amount and round_money(amount) > ZERO
    ]


async def load_fee_voucher(db: AsyncSession, voucher_id: int) -> FeeVoucher:
    """Fetch a voucher with items and payments freshly loaded."""
    result = await db.execute(
        select(FeeVoucher)
        .where(FeeVoucher.id == voucher_id)
        .execution_options(populate_existing=True)
    )
    voucher = result.scalar_one_or_none()
    if voucher is None:
        raise ResourceNotFoundError("Voucher", voucher_id, message="Voucher not found")
    return voucher


@dataclass
class VoucherPlan:
    """Everything generation needs, resolved and checked, before anything is written."""
    enrollment: Enrollment
    month: date
    structure: FeeStructureVersion
    base_lines: List[FeeLine]
    
    @property
    def student(self) -> Student:
        return self.enrollment.student


@dataclass
class BulkOutcome:
    generated: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    
    @property
    def total(self) -> int:
        return len(self.generated) + len(self.skipped) + len(self.failed)
    
    def as_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "total": self.total,
                "generated": len(self.generated),
                "skipped": len(self.skipped),
                "failed": len(self.failed),
            },
            "details": {
                "generated": self.generated,
                "skipped": self.skipped,
                "failed": self.failed,
            },
        }


class FeeVoucherEngine:
    
    @staticmethod
    async def prepare(db: AsyncSession, student_id: int, month: date) -> VoucherPlan:
        """
        Resolve and check everything a new voucher depends on.
        
        1. Open enrollment of the student (row locked until the transaction ends)
        2. Student is active
        3. No voucher yet for (enrollment, month)
        4. Fee structure in force by the end of the month
        
        Raises:
            ResourceNotFoundError: No open enrollment, or no fee structure.
            InvalidStateError: Student is not active.
            DuplicateVoucherError: Voucher already exists for the month.
        """
        month = normalize_month(month)
        
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.student_id == student_id, Enrollment.end_date.is_(None))
            .with_for_update()
        )
        enrollment = result.scalar_one_or_none()
        if enrollment is None:
            raise ResourceNotFoundError(
                "Enrollment", student_id, message="Student is not currently enrolled in any class"
            )
        
        if not enrollment.student.is_active:
            raise InvalidStateError("Student is not active")
        
        existing = await db.execute(
            select(FeeVoucher.id).where(
                FeeVoucher.student_class_history_id == enrollment.id,
                FeeVoucher.month == month,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateVoucherError(
                f"Voucher already exists for {enrollment.student.name} for the specified month",
                details={"student_id": student_id, "month": month.isoformat()},
            )
        
        structure = await StructureResolver.resolve_fee_structure(db, enrollment.class_id, month_end(month))
        
        prior_vouchers = await db.execute(
            select(func.count(FeeVoucher.id)).where(
                FeeVoucher.student_class_history_id == enrollment.id
            )
        )
        is_first_voucher = (prior_vouchers.scalar() or 0) == 0
        
        return VoucherPlan(
            enrollment=enrollment,
            month=month,
            structure=structure,
            base_lines=structure_lines(structure, include_admission=is_first_voucher),
        )
    
    @staticmethod
    async def issue(
        db: AsyncSession,
        plan: VoucherPlan,
        custom_lines: Sequence[FeeLine] = (),
        due_date: Optional[date] = None,
    ) -> FeeVoucher:
        """
        Write the voucher of a prepared plan: structure lines, then custom lines verbatim.
        
        A concurrent writer that got there first trips the unique constraint,
        which surfaces as DuplicateVoucherError.
        """
        lines = [*plan.base_lines, *custom_lines]
        check_discount_bound(lines)
        
        voucher = FeeVoucher(
            student_class_history_id=plan.enrollment.id,
            month=plan.month,
            due_date=due_date or due_date_for(plan.month),
            items=[
                FeeVoucherItem(item_type=line.item_type, amount=round_money(line.amount))
                for line in lines
            ],
            payments=[],
        )
        db.add(voucher)
        
        try:
            await db.flush()
        except IntegrityError as exc:
            if classify_integrity_error(exc) == UNIQUE_VIOLATION:
                raise DuplicateVoucherError(
                    f"Voucher already exists for {plan.student.name} for the specified month",
                    details={"student_id": plan.student.id, "month": plan.month.isoformat()},
                ) from exc
            raise
        
        return voucher
    
    @staticmethod
    async def generate(
        db: AsyncSession,
        student_id: int,
        month: date,
        custom_lines: Sequence[FeeLine] = (),
        composer=None,
        due_date: Optional[date] = None,
    ) -> FeeVoucher:
        """
        Generate the fee voucher of a student for a month.
        
        ``composer`` (e.g. FeeItemComposer) may extend the custom lines once the
        structure lines are known; without one the custom lines go in unchanged.
        """
        plan = await FeeVoucherEngine.prepare(db, student_id, month)
        
        lines = list(custom_lines)
        if composer is not None:
            lines = await composer.compose(
                db, plan.student.id, plan.enrollment.class_id, plan.base_lines, lines
            )
        
        voucher = await FeeVoucherEngine.issue(db, plan, lines, due_date)
        logger.info(
            "Fee voucher %s generated for student %s, month %s",
            voucher.id, student_id, plan.month.isoformat(),
        )
        return await load_fee_voucher(db, voucher.id)
    
    @staticmethod
    async def generate_bulk(
        db: AsyncSession,
        class_id: int,
        month: date,
        section_id: Optional[int] = None,
        composer=None,
    ) -> BulkOutcome:
        """
        Generate vouchers for every active student enrolled in a class/section.
        
        Each student runs in its own savepoint. A duplicate is reported as
        skipped and any other failure as failed; neither stops the batch.
        """
        month = normalize_month(month)
        await StructureResolver.resolve_fee_structure(db, class_id, month_end(month))
        
        query = (
            select(Enrollment.student_id, Student.name)
            .join(Student, Student.id == Enrollment.student_id)
            .where(
                Enrollment.class_id == class_id,
                Enrollment.end_date.is_(None),
                Student.is_active.is_(True),
            )
            .order_by(Student.name)
        )
        if section_id is not None:
            query = query.where(Enrollment.section_id == section_id)
        
        students = (await db.execute(query)).all()
        if not students:
            raise ResourceNotFoundError(
                "Student", message="No active students found in this class/section"
            )
        
        outcome = BulkOutcome()
        for student_id, student_name in students:
            entry = {"student_id": student_id, "student_name": student_name}
            try:
                async with db.begin_nested():
                    voucher = await FeeVoucherEngine.generate(db, student_id, month, composer=composer)
                outcome.generated.append({
                    **entry,
                    "voucher_id": voucher.id,
                    "total_fee": fee_voucher_totals(voucher).total,
                })
            except DuplicateVoucherError:
                outcome.skipped.append({**entry, "reason": "Voucher already exists for this month"})
            except AppException as exc:
                outcome.failed.append({**entry, "error": exc.message})
            except SQLAlchemyError as exc:
                logger.exception("Bulk fee voucher generation failed for student %s", student_id)
                outcome.failed.append({**entry, "error": str(exc.__class__.__name__)})
        
        logger.info(
            "Bulk fee vouchers for class %s section %s month %s: %s generated, %s skipped, %s failed",
            class_id, section_id, month.isoformat(),
            len(outcome.generated), len(outcome.skipped), len(outcome.failed),
        )
        return outcome
    
    @staticmethod
    async def add_items(db: AsyncSession, voucher_id: int, lines: Sequence[FeeLine]) -> FeeVoucher:
        """
        Append items to a voucher that has no payments yet.
        
        Raises:
            InvalidStateError: The voucher already has payments.
            ValidationError: The DISCOUNT lines would exceed the charges.
        """
        await db.execute(
            select(FeeVoucher.id).where(FeeVoucher.id == voucher_id).with_for_update()
        )
        voucher = await load_fee_voucher(db, voucher_id)
        if fee_voucher_totals(voucher).paid > ZERO:
            raise InvalidStateError("Cannot modify items for a voucher that has payments")
        
        existing = [FeeLine(item.item_type, item.amount) for item in voucher.items]
        check_discount_bound(existing + list(lines))
        
        for line in lines:
            voucher.items.append(FeeVoucherItem(item_type=line.item_type, amount=round_money(line.amount)))
        await db.flush()
        
        return await load_fee_voucher(db, voucher_id)
    
    @staticmethod
    async def delete(db: AsyncSession, voucher_id: int) -> None:
        await db.execute(
            select(FeeVoucher.id).where(FeeVoucher.id == voucher_id).with_for_update()
        )
        voucher = await load_fee_voucher(db, voucher_id)
        if voucher.payments:
            raise InvalidStateError(
                "Cannot delete voucher with payments. Delete payments first."
            )
        await db.delete(voucher)
        await db.flush()
