"""
Fee Voucher API Endpoints.

Generation (single and bulk), listing with derived status, item updates and
deletion of unpaid vouchers. Writes are ADMIN only.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.vouchers.discounts import FeeItemComposer
from school_backend.app.domain.vouchers.fee_engine import FeeVoucherEngine, load_fee_voucher, normalize_month
from school_backend.app.models.enrollment import Enrollment
from school_backend.app.models.enums import VoucherStatus
from school_backend.app.models.fee_voucher import FeeVoucher
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.voucher import (
    BulkGenerateRequest,
    BulkGenerateResponse,
    FeeVoucherResponse,
    FeeVoucherSummary,
    GenerateVoucherRequest,
    UpdateItemsRequest,
)
from school_backend.app.services.audit import AuditAction, log_user_action
from school_backend.app.services.reports import fee_balance_columns, status_clause

router = APIRouter(prefix="/vouchers", tags=["Fee Vouchers"])


@router.post("/generate", response_model=ApiResponse[FeeVoucherResponse], status_code=status.HTTP_201_CREATED)
async def generate_voucher(
    payload: GenerateVoucherRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Generate the fee voucher of one student for a month.
    
    Lines come from the class fee structure in force for the month, the
    request's custom items and the student's discount for the class.
    """
    voucher = await FeeVoucherEngine.generate(
        db,
        payload.student_id,
        payload.month,
        custom_lines=[item.to_line() for item in payload.custom_items],
        composer=FeeItemComposer,
        due_date=payload.due_date,
    )
    await log_user_action(
        db, current_user, AuditAction.FEE_VOUCHER_GENERATED,
        entity_type="fee_voucher", entity_id=voucher.id,
        metadata={"student_id": payload.student_id, "month": voucher.month.isoformat()}
    )
    await db.commit()
    
    return ok(FeeVoucherResponse.from_voucher(voucher), "Voucher generated successfully")


@router.post(
    "/generate-bulk",
    response_model=ApiResponse[BulkGenerateResponse],
    response_model_exclude_none=True,
)
async def generate_bulk(
    payload: BulkGenerateRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Generate vouchers for every active student of a class or section."""
    outcome = await FeeVoucherEngine.generate_bulk(
        db,
        payload.class_id,
        payload.month,
        section_id=payload.section_id,
        composer=FeeItemComposer,
    )
    await log_user_action(
        db, current_user, AuditAction.FEE_VOUCHERS_BULK_GENERATED,
        entity_type="class", entity_id=payload.class_id,
        metadata={
            "section_id": payload.section_id,
            "month": normalize_month(payload.month).isoformat(),
            "generated": len(outcome.generated),
            "skipped": len(outcome.skipped),
            "failed": len(outcome.failed),
        }
    )
    await db.commit()
    
    return ok(
        BulkGenerateResponse.model_validate(outcome.as_dict()),
        f"Generated {len(outcome.generated)} voucher(s)"
    )


@router.get("", response_model=PaginatedResponse[FeeVoucherSummary])
async def list_vouchers(
    student_id: Optional[int] = Query(None, gt=0),
    class_id: Optional[int] = Query(None, gt=0),
    section_id: Optional[int] = Query(None, gt=0),
    month: Optional[date] = Query(None, description="Any day of the month"),
    from_month: Optional[date] = None,
    to_month: Optional[date] = None,
    voucher_status: Optional[VoucherStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    items, payments, total, paid = fee_balance_columns()
    
    query = (
        select(FeeVoucher)
        .join(Enrollment, FeeVoucher.student_class_history_id == Enrollment.id)
        .outerjoin(items, items.c.voucher_id == FeeVoucher.id)
        .outerjoin(payments, payments.c.voucher_id == FeeVoucher.id)
    )
    if student_id:
        query = query.where(Enrollment.student_id == student_id)
    if class_id:
        query = query.where(Enrollment.class_id == class_id)
    if section_id:
        query = query.where(Enrollment.section_id == section_id)
    if month:
        query = query.where(FeeVoucher.month == normalize_month(month))
    if from_month:
        query = query.where(FeeVoucher.month >= normalize_month(from_month))
    if to_month:
        query = query.where(FeeVoucher.month <= normalize_month(to_month))
    if voucher_status:
        query = query.where(status_clause(voucher_status, total, paid))
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    
    query = query.order_by(FeeVoucher.month.desc(), FeeVoucher.id.desc()).offset((page - 1) * limit).limit(limit)
    vouchers = (await db.execute(query)).scalars().all()
    
    return paginated([FeeVoucherSummary.from_voucher(v) for v in vouchers], page, limit, count)


@router.get("/{voucher_id}", response_model=ApiResponse[FeeVoucherResponse])
async def get_voucher(
    voucher_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    voucher = await load_fee_voucher(db, voucher_id)
    return ok(FeeVoucherResponse.from_voucher(voucher))


@router.put("/{voucher_id}/items", response_model=ApiResponse[FeeVoucherResponse])
async def update_items(
    voucher_id: int,
    payload: UpdateItemsRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Append items to a voucher. Refused once anything has been paid."""
    voucher = await FeeVoucherEngine.add_items(db, voucher_id, [item.to_line() for item in payload.items])
    await log_user_action(
        db, current_user, AuditAction.FEE_VOUCHER_ITEMS_UPDATED,
        entity_type="fee_voucher", entity_id=voucher_id,
        metadata={"items": [item.model_dump(mode="json") for item in payload.items]}
    )
    await db.commit()
    
    return ok(FeeVoucherResponse.from_voucher(voucher), "Voucher items updated successfully")


@router.delete("/{voucher_id}", response_model=ApiResponse[None])
async def delete_voucher(
    voucher_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a voucher that has no payments."""
    await FeeVoucherEngine.delete(db, voucher_id)
    await log_user_action(
        db, current_user, AuditAction.FEE_VOUCHER_DELETED,
        entity_type="fee_voucher", entity_id=voucher_id
    )
    await db.commit()
    
    return ok(None, "Voucher deleted successfully")
