"""Expense CRUD endpoints."""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Expense
from schemas import ExpenseCreate, ExpenseUpdate, ExpenseOut, envelope, pagination, dump, dump_many
from .common import get_owned_or_404, apply_sort, commit_or_500


router = APIRouter(prefix="/api/expenses", tags=["Expenses"])

SORT_FIELDS = {
    "date": "date",
    "amount": "amount",
    "category": "category",
    "createdAt": "created_at",
}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(
    body: ExpenseCreate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    expense = Expense(user_id=user_id, **body.model_dump())
    db.add(expense)
    commit_or_500(db, "Failed to create expense")
    db.refresh(expense)
    return envelope(dump(ExpenseOut, expense), message="Expense created successfully")


@router.get("")
async def list_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    sort_by: Literal["date", "amount", "category", "createdAt"] = Query("date", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """List expenses with optional category and date range filters."""
    query = db.query(Expense).filter(Expense.user_id == user_id)
    if category:
        query = query.filter(Expense.category == category)
    if start_date:
        query = query.filter(Expense.date >= start_date)
    if end_date:
        query = query.filter(Expense.date <= end_date)

    total = query.count()
    expenses = (
        apply_sort(query, Expense, sort_by, sort_order, SORT_FIELDS)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return envelope(dump_many(ExpenseOut, expenses), pagination=pagination(page, limit, total))


@router.get("/{expense_id}")
async def get_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    expense = get_owned_or_404(db, Expense, expense_id, user_id, "Expense")
    return envelope(dump(ExpenseOut, expense))


@router.put("/{expense_id}")
async def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    expense = get_owned_or_404(db, Expense, expense_id, user_id, "Expense")

    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(expense, field, value)

    commit_or_500(db, "Failed to update expense")
    db.refresh(expense)
    return envelope(dump(ExpenseOut, expense), message="Expense updated successfully")


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    expense = get_owned_or_404(db, Expense, expense_id, user_id, "Expense")
    db.delete(expense)
    commit_or_500(db, "Failed to delete expense")
    return envelope(message="Expense deleted successfully")
