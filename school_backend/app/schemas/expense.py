"""
Expense schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from school_backend.app.schemas.common import Money


class ExpenseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    expense_date: date


class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    expense_date: Optional[date] = None


class ExpenseBulkCreate(BaseModel):
    """Items are validated one by one so a bad row does not reject the batch."""
    expenses: List[Dict[str, Any]] = Field(..., min_length=1, max_length=500)


class ExpenseResponse(BaseModel):
    id: int
    title: str
    amount: Money
    expense_date: date
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ExpenseBulkFailure(BaseModel):
    index: int
    title: Optional[str] = None
    error: str


class ExpenseBulkResponse(BaseModel):
    created: List[ExpenseResponse]
    failed: List[ExpenseBulkFailure]


class MonthlyExpense(BaseModel):
    month: str
    count: int
    total: Money


class ExpenseSummary(BaseModel):
    total_expenses: int
    total_amount: Money
    average_amount: Money
    min_amount: Money
    max_amount: Money
    monthly: List[MonthlyExpense]


class DailyExpense(BaseModel):
    expense_date: date
    count: int
    total: Money
