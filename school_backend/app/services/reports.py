"""
Report Service.

Read-only rollups over vouchers, payments and expenses. Nothing here writes;
every balance goes through the same status derivation as the vouchers
themselves.
"""

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.domain.enrollment.lifecycle import get_student
from school_backend.app.domain.vouchers.fee_engine import fee_voucher_totals
from school_backend.app.domain.vouchers.salary_engine import salary_voucher_totals
from school_backend.app.domain.vouchers.status import ZERO, round_money
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.enums import VoucherStatus
from school_backend.app.models.expense import Expense
from school_backend.app.models.fee_voucher import FeePayment, FeeVoucher, FeeVoucherItem
from school_backend.app.models.salary_voucher import SalaryVoucher
from school_backend.app.models.student import Student
from school_backend.app.schemas.reports import (
    Defaulter, DefaultersResponse, DefaultersSummary, FeeHistorySummary, FeeStats,
    GuardianContact, SalaryStats, StudentDue, StudentFeeHistory, UnpaidSalaries,
)
from school_backend.app.schemas.expense import ExpenseSummary, MonthlyExpense
from school_backend.app.schemas.salary import SalaryVoucherSummary
from school_backend.app.schemas.voucher import FeeVoucherSummary


def fee_balance_columns():
    """
    Per-voucher total and paid amounts as outer-joinable subqueries.
    
    Returns (items_subquery, payments_subquery, total_expr, paid_expr).
    """
    items = (
        select(FeeVoucherItem.voucher_id.label("voucher_id"), func.sum(FeeVoucherItem.amount).label("total"))
        .group_by(FeeVoucherItem.voucher_id)
        .subquery()
    )
    payments = (
        select(FeePayment.voucher_id.label("voucher_id"), func.sum(FeePayment.amount).label("paid"))
        .group_by(FeePayment.voucher_id)
        .subquery()
    )
    return items, payments, func.coalesce(items.c.total, 0), func.coalesce(payments.c.paid, 0)


def status_clause(status: VoucherStatus, total, paid):
    """SQL form of derive_status, for filtering lists by status."""
    if status == VoucherStatus.PAID:
        return paid >= total
    if status == VoucherStatus.PARTIAL:
        return and_(paid > 0, paid < total)
    return and_(paid <= 0, paid < total)


def _count_statuses(statuses) -> Dict[VoucherStatus, int]:
    counts = {status: 0 for status in VoucherStatus}
    for status in statuses:
        counts[status] += 1
    return counts


class ReportService:
    
    @staticmethod
    async def get_defaulters(
        db: AsyncSession,
        class_id: Optional[int] = None,
        section_id: Optional[int] = None,
        min_due_amount: Decimal = ZERO,
    ) -> DefaultersResponse:
        """Active, currently enrolled students whose vouchers are not fully paid."""
        query = (
            select(FeeVoucher)
            .join(Enrollment, FeeVoucher.student_class_history_id == Enrollment.id)
            .join(Student, Student.id == Enrollment.student_id)
            .where(Enrollment.end_date.is_(None), Student.is_active.is_(True))
        )
        if class_id:
            query = query.where(Enrollment.class_id == class_id)
        if section_id:
            query = query.where(Enrollment.section_id == section_id)
        
        vouchers = (await db.execute(query)).scalars().all()
        
        rows: Dict[int, dict] = {}
        for voucher in vouchers:
            enrollment = voucher.enrollment
            totals = fee_voucher_totals(voucher)
            row = rows.setdefault(enrollment.student_id, {
                "enrollment": enrollment,
                "count": 0,
                "total": ZERO,
                "paid": ZERO,
            })
            row["count"] += 1
            row["total"] += totals.total
            row["paid"] += totals.paid
        
        defaulters: List[Defaulter] = []
        for student_id, row in rows.items():
            due = round_money(row["total"] - row["paid"])
            if due <= ZERO or due < min_due_amount:
                continue
            enrollment = row["enrollment"]
            student = enrollment.student
            defaulters.append(Defaulter(
                student_id=student_id,
                student_name=student.name,
                roll_no=student.roll_no,
                phone=student.phone,
                class_id=enrollment.class_id,
                class_name=enrollment.school_class.name,
                section_id=enrollment.section_id,
                section_name=enrollment.section.name,
                total_vouchers=row["count"],
                total_fee=round_money(row["total"]),
                paid_amount=round_money(row["paid"]),
                due_amount=due,
                guardians=[
                    GuardianContact(name=link.guardian.name, phone=link.guardian.phone, relation=link.relation)
                    for link in student.guardian_links
                ],
            ))
        
        defaulters.sort(key=lambda d: (-d.due_amount, d.student_name))
        return DefaultersResponse(
            summary=DefaultersSummary(
                total_defaulters=len(defaulters),
                total_due_amount=round_money(sum((d.due_amount for d in defaulters), ZERO)),
            ),
            defaulters=defaulters,
        )
    
    @staticmethod
    async def _student_vouchers(db: AsyncSession, student_id: int) -> Tuple[Student, List[FeeVoucher]]:
        student = await get_student(db, student_id)
        result = await db.execute(
            select(FeeVoucher)
            .join(Enrollment, FeeVoucher.student_class_history_id == Enrollment.id)
            .where(Enrollment.student_id == student_id)
            .order_by(FeeVoucher.month.desc(), FeeVoucher.id.desc())
        )
        return student, list(result.scalars().all())
    
    @staticmethod
    async def get_student_fee_history(db: AsyncSession, student_id: int) -> StudentFeeHistory:
        student, vouchers = await ReportService._student_vouchers(db, student_id)
        
        summaries = [FeeVoucherSummary.from_voucher(v) for v in vouchers]
        counts = _count_statuses(s.status for s in summaries)
        total = round_money(sum((s.total_fee for s in summaries), ZERO))
        paid = round_money(sum((s.paid_amount for s in summaries), ZERO))
        
        return StudentFeeHistory(
            student_id=student.id,
            student_name=student.name,
            summary=FeeHistorySummary(
                total_vouchers=len(summaries),
                paid_vouchers=counts[VoucherStatus.PAID],
                partial_vouchers=counts[VoucherStatus.PARTIAL],
                unpaid_vouchers=counts[VoucherStatus.UNPAID],
                total_fee=total,
                total_paid=paid,
                total_due=round_money(total - paid),
            ),
            vouchers=summaries,
        )
    
    @staticmethod
    async def get_student_due(db: AsyncSession, student_id: int) -> StudentDue:
        student, vouchers = await ReportService._student_vouchers(db, student_id)
        
        pending = [(v, fee_voucher_totals(v)) for v in vouchers]
        pending = [(v, t) for v, t in pending if t.due > ZERO]
        
        return StudentDue(
            student_id=student.id,
            student_name=student.name,
            pending_vouchers=len(pending),
            total_due=round_money(sum((t.due for _, t in pending), ZERO)),
            oldest_due_month=min((v.month for v, _ in pending), default=None),
        )
    
    @staticmethod
    async def get_fee_stats(
        db: AsyncSession,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        class_id: Optional[int] = None,
    ) -> FeeStats:
        query = select(FeeVoucher)
        if class_id:
            query = query.join(Enrollment, FeeVoucher.student_class_history_id == Enrollment.id).where(
                Enrollment.class_id == class_id
            )
        if from_date:
            query = query.where(FeeVoucher.month >= from_date)
        if to_date:
            query = query.where(FeeVoucher.month <= to_date)
        
        vouchers = (await db.execute(query)).scalars().all()
        totals = [fee_voucher_totals(v) for v in vouchers]
        counts = _count_statuses(t.status for t in totals)
        
        total_fee = round_money(sum((t.total for t in totals), ZERO))
        collected = round_money(sum((t.paid for t in totals), ZERO))
        
        return FeeStats(
            total_vouchers=len(totals),
            paid_vouchers=counts[VoucherStatus.PAID],
            partial_vouchers=counts[VoucherStatus.PARTIAL],
            unpaid_vouchers=counts[VoucherStatus.UNPAID],
            total_fee=total_fee,
            total_collected=collected,
            total_due=round_money(total_fee - collected),
            total_payments=sum(len(v.payments) for v in vouchers),
            collection_rate=round(float(collected / total_fee * 100), 2) if total_fee > ZERO else 0.0,
        )
    
    @staticmethod
    async def _salary_vouchers(db: AsyncSession, month: Optional[date]) -> List[SalaryVoucher]:
        query = select(SalaryVoucher).order_by(SalaryVoucher.month.desc(), SalaryVoucher.id)
        if month:
            query = query.where(SalaryVoucher.month == month.replace(day=1))
        return list((await db.execute(query)).scalars().all())
    
    @staticmethod
    async def get_unpaid_salaries(db: AsyncSession, month: Optional[date] = None) -> UnpaidSalaries:
        vouchers = await ReportService._salary_vouchers(db, month)
        unpaid = [SalaryVoucherSummary.from_voucher(v) for v in vouchers]
        unpaid = [s for s in unpaid if s.status != VoucherStatus.PAID]
        
        return UnpaidSalaries(
            total_unpaid=len(unpaid),
            total_due=round_money(sum((s.due_amount for s in unpaid), ZERO)),
            vouchers=unpaid,
        )
    
    @staticmethod
    async def get_salary_stats(db: AsyncSession, month: Optional[date] = None) -> SalaryStats:
        vouchers = await ReportService._salary_vouchers(db, month)
        totals = [salary_voucher_totals(v) for v in vouchers]
        counts = _count_statuses(t.status for t in totals)
        net = round_money(sum((t.total for t in totals), ZERO))
        paid = round_money(sum((t.paid for t in totals), ZERO))
        
        return SalaryStats(
            total_vouchers=len(totals),
            paid_vouchers=counts[VoucherStatus.PAID],
            partial_vouchers=counts[VoucherStatus.PARTIAL],
            unpaid_vouchers=counts[VoucherStatus.UNPAID],
            total_net_salary=net,
            total_paid=paid,
            total_due=round_money(net - paid),
        )
    
    @staticmethod
    async def get_expense_summary(
        db: AsyncSession,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> ExpenseSummary:
        conditions = []
        if from_date:
            conditions.append(Expense.expense_date >= from_date)
        if to_date:
            conditions.append(Expense.expense_date <= to_date)
        
        totals_query = select(
            func.count(Expense.id),
            func.sum(Expense.amount),
            func.min(Expense.amount),
            func.max(Expense.amount),
        ).where(*conditions)
        count, total, lowest, highest = (await db.execute(totals_query)).one()
        
        rows = await db.execute(
            select(Expense.expense_date, Expense.amount).where(*conditions).order_by(Expense.expense_date)
        )
        monthly: "OrderedDict[str, list]" = OrderedDict()
        for expense_date, amount in rows.all():
            bucket = monthly.setdefault(expense_date.strftime("%Y-%m"), [0, ZERO])
            bucket[0] += 1
            bucket[1] += round_money(amount)
        
        total = round_money(total or 0)
        return ExpenseSummary(
            total_expenses=count or 0,
            total_amount=total,
            average_amount=round_money(total / count) if count else ZERO,
            min_amount=round_money(lowest or 0),
            max_amount=round_money(highest or 0),
            monthly=[
                MonthlyExpense(month=key, count=n, total=round_money(amount))
                for key, (n, amount) in monthly.items()
            ],
        )
