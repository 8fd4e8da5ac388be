"""
Salary Voucher API Endpoints.

Monthly salary vouchers of faculty members: generation, adjustments,
payments and rollups. Writes are ADMIN only.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.vouchers.fee_engine import normalize_month
from school_backend.app.domain.vouchers.payment_ledger import PaymentLedger
from school_backend.app.domain.vouchers.salary_engine import SalaryVoucherEngine, load_salary_voucher
from school_backend.app.models.enums import VoucherStatus
from school_backend.app.models.salary_voucher import SalaryVoucher
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.reports import SalaryStats, UnpaidSalaries
from school_backend.app.schemas.salary import (
    AdjustmentIn,
    BulkSalaryRequest,
    GenerateSalaryRequest,
    SalaryPaymentReceipt,
    SalaryPaymentRequest,
    SalaryPaymentResponse,
    SalaryVoucherResponse,
    SalaryVoucherSummary,
)
from school_backend.app.schemas.voucher import BulkGenerateResponse
from school_backend.app.services.audit import AuditAction, log_user_action
from school_backend.app.services.reports import ReportService

router = APIRouter(prefix="/salaries", tags=["Salaries"])


@router.post("/generate", response_model=ApiResponse[SalaryVoucherResponse], status_code=status.HTTP_201_CREATED)
async def generate_salary(
    payload: GenerateSalaryRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    voucher = await SalaryVoucherEngine.generate(
        db, payload.faculty_id, payload.month, [adj.to_line() for adj in payload.adjustments]
    )
    await log_user_action(
        db, current_user, AuditAction.SALARY_VOUCHER_GENERATED,
        entity_type="salary_voucher", entity_id=voucher.id,
        metadata={"faculty_id": payload.faculty_id, "month": voucher.month.isoformat()}
    )
    await db.commit()
    
    return ok(SalaryVoucherResponse.from_voucher(voucher), "Salary voucher generated successfully")


@router.post(
    "/generate-bulk",
    response_model=ApiResponse[BulkGenerateResponse],
    response_model_exclude_none=True,
)
async def generate_bulk(
    payload: BulkSalaryRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Generate salary vouchers for all active faculty, or only the listed ones."""
    outcome = await SalaryVoucherEngine.generate_bulk(db, payload.month, payload.faculty_ids)
    await log_user_action(
        db, current_user, AuditAction.SALARY_VOUCHERS_BULK_GENERATED,
        entity_type="salary_voucher",
        metadata={
            "month": normalize_month(payload.month).isoformat(),
            "generated": len(outcome.generated),
            "skipped": len(outcome.skipped),
            "failed": len(outcome.failed),
        }
    )
    await db.commit()
    
    return ok(
        BulkGenerateResponse.model_validate(outcome.as_dict()),
        f"Generated {len(outcome.generated)} salary voucher(s)"
    )


@router.get("/vouchers", response_model=PaginatedResponse[SalaryVoucherSummary])
async def list_salary_vouchers(
    faculty_id: Optional[int] = Query(None, gt=0),
    month: Optional[date] = None,
    voucher_status: Optional[VoucherStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    List salary vouchers.
    
    Net salary depends on percentage adjustments, so the status filter is
    applied after the totals are derived.
    """
    query = select(SalaryVoucher).order_by(SalaryVoucher.month.desc(), SalaryVoucher.id.desc())
    if faculty_id:
        query = query.where(SalaryVoucher.faculty_id == faculty_id)
    if month:
        query = query.where(SalaryVoucher.month == normalize_month(month))
    
    summaries = [SalaryVoucherSummary.from_voucher(v) for v in (await db.execute(query)).scalars().all()]
    if voucher_status:
        summaries = [s for s in summaries if s.status == voucher_status]
    
    start = (page - 1) * limit
    return paginated(summaries[start:start + limit], page, limit, len(summaries))


@router.get("/unpaid", response_model=ApiResponse[UnpaidSalaries])
async def unpaid_salaries(
    month: Optional[date] = None,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_unpaid_salaries(db, month))


@router.get("/stats", response_model=ApiResponse[SalaryStats])
async def salary_stats(
    month: Optional[date] = None,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_salary_stats(db, month))


@router.get("/voucher/{voucher_id}", response_model=ApiResponse[SalaryVoucherResponse])
async def get_salary_voucher(
    voucher_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    voucher = await load_salary_voucher(db, voucher_id)
    return ok(SalaryVoucherResponse.from_voucher(voucher))


@router.post("/voucher/{voucher_id}/adjustment", response_model=ApiResponse[SalaryVoucherResponse])
async def add_adjustment(
    voucher_id: int,
    payload: AdjustmentIn,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Add a bonus or advance. Refused once anything has been paid."""
    voucher = await SalaryVoucherEngine.add_adjustment(db, voucher_id, payload.to_line())
    await log_user_action(
        db, current_user, AuditAction.SALARY_ADJUSTMENT_ADDED,
        entity_type="salary_voucher", entity_id=voucher_id,
        metadata=payload.model_dump(mode="json")
    )
    await db.commit()
    
    return ok(SalaryVoucherResponse.from_voucher(voucher), "Adjustment added successfully")


@router.post("/payment", response_model=ApiResponse[SalaryPaymentReceipt], status_code=status.HTTP_201_CREATED)
async def record_salary_payment(
    payload: SalaryPaymentRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    receipt = await PaymentLedger.record_salary_payment(db, payload.voucher_id, payload.amount, payload.payment_date)
    await log_user_action(
        db, current_user, AuditAction.SALARY_PAYMENT_RECORDED,
        entity_type="salary_voucher", entity_id=payload.voucher_id,
        metadata={"payment_id": receipt.payment.id, "amount": float(receipt.payment.amount)}
    )
    await db.commit()
    
    voucher = await load_salary_voucher(db, payload.voucher_id)
    return ok(
        SalaryPaymentReceipt(
            payment=SalaryPaymentResponse.model_validate(receipt.payment),
            voucher_status=SalaryVoucherSummary.from_voucher(voucher),
        ),
        "Salary payment recorded successfully"
    )


@router.delete("/voucher/{voucher_id}", response_model=ApiResponse[None])
async def delete_salary_voucher(
    voucher_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await SalaryVoucherEngine.delete(db, voucher_id)
    await log_user_action(
        db, current_user, AuditAction.SALARY_VOUCHER_DELETED,
        entity_type="salary_voucher", entity_id=voucher_id
    )
    await db.commit()
    
    return ok(None, "Salary voucher deleted successfully")
