"""
Fee Payment and Fee Report API Endpoints.

Payments are recorded against a single voucher under a row lock; reports
derive every balance from items and payments at read time.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.vouchers.fee_engine import fee_voucher_totals, load_fee_voucher
from school_backend.app.domain.vouchers.payment_ledger import PaymentLedger
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.fee_voucher import FeePayment, FeeVoucher
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.reports import DefaultersResponse, FeeStats, StudentDue, StudentFeeHistory
from school_backend.app.schemas.voucher import (
    FeePaymentResponse,
    PaymentListItem,
    PaymentReceiptResponse,
    RecordPaymentRequest,
    VoucherStatusResponse,
)
from school_backend.app.services.audit import AuditAction, log_user_action
from school_backend.app.services.reports import ReportService

router = APIRouter(prefix="/fees", tags=["Fees"])


@router.post("/payment", response_model=ApiResponse[PaymentReceiptResponse], status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: RecordPaymentRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a fee payment.
    
    Partial payments are allowed; an amount above the voucher's due amount is
    rejected and nothing is written.
    """
    receipt = await PaymentLedger.record_fee_payment(db, payload.voucher_id, payload.amount, payload.payment_date)
    await log_user_action(
        db, current_user, AuditAction.FEE_PAYMENT_RECORDED,
        entity_type="fee_voucher", entity_id=payload.voucher_id,
        metadata={"payment_id": receipt.payment.id, "amount": float(receipt.payment.amount)}
    )
    await db.commit()
    
    return ok(
        PaymentReceiptResponse(
            payment=FeePaymentResponse.model_validate(receipt.payment),
            voucher_status=VoucherStatusResponse.from_totals(payload.voucher_id, receipt.totals),
        ),
        "Payment recorded successfully"
    )


@router.get("/payments", response_model=PaginatedResponse[PaymentListItem])
async def list_payments(
    student_id: Optional[int] = Query(None, gt=0),
    class_id: Optional[int] = Query(None, gt=0),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(FeePayment, FeeVoucher)
        .join(FeeVoucher, FeePayment.voucher_id == FeeVoucher.id)
        .join(Enrollment, FeeVoucher.student_class_history_id == Enrollment.id)
    )
    if student_id:
        query = query.where(Enrollment.student_id == student_id)
    if class_id:
        query = query.where(Enrollment.class_id == class_id)
    if from_date:
        query = query.where(FeePayment.payment_date >= from_date)
    if to_date:
        query = query.where(FeePayment.payment_date <= to_date)
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    
    query = query.order_by(FeePayment.payment_date.desc(), FeePayment.id.desc()).offset((page - 1) * limit).limit(limit)
    rows = (await db.execute(query)).all()
    
    return paginated([PaymentListItem.from_payment(payment, voucher) for payment, voucher in rows], page, limit, count)


@router.get("/voucher/{voucher_id}/payments", response_model=ApiResponse[List[FeePaymentResponse]])
async def voucher_payments(
    voucher_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    voucher = await load_fee_voucher(db, voucher_id)
    return ok([FeePaymentResponse.model_validate(p) for p in voucher.payments])


@router.delete("/payment/{payment_id}", response_model=ApiResponse[VoucherStatusResponse])
async def delete_payment(
    payment_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Remove a payment recorded in error. Returns the voucher's new balance."""
    payment = await PaymentLedger.delete_fee_payment(db, payment_id)
    await log_user_action(
        db, current_user, AuditAction.FEE_PAYMENT_DELETED,
        entity_type="fee_voucher", entity_id=payment.voucher_id,
        metadata={"payment_id": payment_id, "amount": float(payment.amount)}
    )
    await db.commit()
    
    voucher = await load_fee_voucher(db, payment.voucher_id)
    return ok(VoucherStatusResponse.from_totals(voucher.id, fee_voucher_totals(voucher)), "Payment deleted successfully")


@router.get("/defaulters", response_model=ApiResponse[DefaultersResponse])
async def defaulters(
    class_id: Optional[int] = Query(None, gt=0),
    section_id: Optional[int] = Query(None, gt=0),
    min_due_amount: Decimal = Query(Decimal("0"), ge=0),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Currently enrolled active students with an outstanding balance, largest first."""
    return ok(await ReportService.get_defaulters(db, class_id, section_id, min_due_amount))


@router.get("/student/{student_id}", response_model=ApiResponse[StudentFeeHistory])
async def student_fee_history(
    student_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_student_fee_history(db, student_id))


@router.get("/student/{student_id}/due", response_model=ApiResponse[StudentDue])
async def student_due(
    student_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_student_due(db, student_id))


@router.get("/stats", response_model=ApiResponse[FeeStats])
async def fee_stats(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    class_id: Optional[int] = Query(None, gt=0),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_fee_stats(db, from_date, to_date, class_id))
