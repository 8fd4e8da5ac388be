"""
Expense API Endpoints.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from school_backend.app.core.guards import require_admin, require_staff
from school_backend.app.db.session import get_db
from school_backend.app.domain.vouchers.status import round_money
from school_backend.app.models.expense import Expense
from school_backend.app.schemas.common import ApiResponse, PaginatedResponse, ok, paginated
from school_backend.app.schemas.expense import (
    DailyExpense,
    ExpenseBulkCreate,
    ExpenseBulkFailure,
    ExpenseBulkResponse,
    ExpenseCreate,
    ExpenseResponse,
    ExpenseSummary,
    ExpenseUpdate,
)
from school_backend.app.services.reports import ReportService

router = APIRouter(prefix="/expenses", tags=["Expenses"])


async def get_expense(db: AsyncSession, expense_id: int) -> Expense:
    expense = await db.get(Expense, expense_id)
    if expense is None:
        raise ResourceNotFoundError("Expense", expense_id, message="Expense not found")
    return expense


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ()))
    return f"{field}: {error.get('msg')}" if field else error.get("msg", "Invalid expense")


@router.get("/summary", response_model=ApiResponse[ExpenseSummary])
async def expense_summary(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(await ReportService.get_expense_summary(db, from_date, to_date))


@router.get("/daily", response_model=ApiResponse[List[DailyExpense]])
async def daily_expenses(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(Expense.expense_date, func.count(Expense.id), func.sum(Expense.amount))
        .group_by(Expense.expense_date)
        .order_by(Expense.expense_date.desc())
    )
    if from_date:
        query = query.where(Expense.expense_date >= from_date)
    if to_date:
        query = query.where(Expense.expense_date <= to_date)
    
    rows = (await db.execute(query)).all()
    return ok([DailyExpense(expense_date=day, count=count, total=round_money(total)) for day, count, total in rows])


@router.get("/top", response_model=ApiResponse[List[ExpenseResponse]])
async def top_expenses(
    limit: int = Query(10, ge=1, le=100),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Expense).order_by(Expense.amount.desc(), Expense.id).limit(limit)
    if from_date:
        query = query.where(Expense.expense_date >= from_date)
    if to_date:
        query = query.where(Expense.expense_date <= to_date)
    return ok([ExpenseResponse.model_validate(e) for e in (await db.execute(query)).scalars().all()])


@router.post("/bulk", response_model=ApiResponse[ExpenseBulkResponse], status_code=status.HTTP_201_CREATED)
async def bulk_create_expenses(
    payload: ExpenseBulkCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create many expenses at once.
    
    Rows are validated one by one; invalid rows are reported and the valid
    ones are still created.
    """
    created: List[Expense] = []
    failed: List[ExpenseBulkFailure] = []
    
    for index, row in enumerate(payload.expenses):
        try:
            data = ExpenseCreate.model_validate(row)
        except PydanticValidationError as exc:
            title = row.get("title")
            failed.append(ExpenseBulkFailure(
                index=index,
                title=title if isinstance(title, str) else None,
                error=_first_error(exc),
            ))
            continue
        expense = Expense(title=data.title, amount=round_money(data.amount), expense_date=data.expense_date)
        db.add(expense)
        created.append(expense)
    
    await db.commit()
    
    return ok(
        ExpenseBulkResponse(
            created=[ExpenseResponse.model_validate(e) for e in created],
            failed=failed,
        ),
        f"Created {len(created)} expense(s), {len(failed)} failed"
    )


@router.post("", response_model=ApiResponse[ExpenseResponse], status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    expense = Expense(title=payload.title, amount=round_money(payload.amount), expense_date=payload.expense_date)
    db.add(expense)
    await db.commit()
    return ok(ExpenseResponse.model_validate(expense), "Expense created successfully")


@router.get("", response_model=PaginatedResponse[ExpenseResponse])
async def list_expenses(
    search: Optional[str] = Query(None, min_length=1, description="Title contains"),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    if from_date and to_date and from_date > to_date:
        raise ValidationError("from_date must not be after to_date")
    
    query = select(Expense)
    if search:
        query = query.where(Expense.title.ilike(f"%{search}%"))
    if from_date:
        query = query.where(Expense.expense_date >= from_date)
    if to_date:
        query = query.where(Expense.expense_date <= to_date)
    if min_amount is not None:
        query = query.where(Expense.amount >= min_amount)
    if max_amount is not None:
        query = query.where(Expense.amount <= max_amount)
    
    count = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    expenses = (await db.execute(
        query.order_by(Expense.expense_date.desc(), Expense.id.desc()).offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    
    return paginated([ExpenseResponse.model_validate(e) for e in expenses], page, limit, count)


@router.get("/{expense_id}", response_model=ApiResponse[ExpenseResponse])
async def get_expense_by_id(
    expense_id: int,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return ok(ExpenseResponse.model_validate(await get_expense(db, expense_id)))


@router.put("/{expense_id}", response_model=ApiResponse[ExpenseResponse])
async def update_expense(
    expense_id: int,
    payload: ExpenseUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    expense = await get_expense(db, expense_id)
    update_data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not update_data:
        raise ValidationError("No fields to update")
    
    for field, value in update_data.items():
        setattr(expense, field, round_money(value) if field == "amount" else value)
    await db.commit()
    
    return ok(ExpenseResponse.model_validate(expense), "Expense updated successfully")


@router.delete("/{expense_id}", response_model=ApiResponse[None])
async def delete_expense(
    expense_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    expense = await get_expense(db, expense_id)
    await db.delete(expense)
    await db.commit()
    return ok(None, "Expense deleted successfully")
