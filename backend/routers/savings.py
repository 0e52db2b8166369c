"""Savings endpoints: record, list, delete, summary and analytics."""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Saving, Goal
from schemas import SavingCreate, SavingOut, SavingType, envelope, pagination, dump, dump_many
from services.analytics import savings_summary, savings_analytics
from services.observability import timed_block
from .common import get_owned_or_404, apply_sort, commit_or_500


router = APIRouter(prefix="/api/savings", tags=["Savings"])

SORT_FIELDS = {
    "date": "date",
    "amount": "amount",
    "type": "type",
    "createdAt": "created_at",
}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_saving(
    body: SavingCreate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    data = body.model_dump()
    data["date"] = data["date"] or date.today()
    saving = Saving(user_id=user_id, **data)
    db.add(saving)
    commit_or_500(db, "Failed to record saving")
    db.refresh(saving)
    return envelope(dump(SavingOut, saving), message="Saving recorded successfully")


@router.get("")
async def list_savings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[SavingType] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    sort_by: Literal["date", "amount", "type", "createdAt"] = Query("date", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    query = db.query(Saving).filter(Saving.user_id == user_id)
    if type:
        query = query.filter(Saving.type == type)
    if start_date:
        query = query.filter(Saving.date >= start_date)
    if end_date:
        query = query.filter(Saving.date <= end_date)

    total = query.count()
    savings = (
        apply_sort(query, Saving, sort_by, sort_order, SORT_FIELDS)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return envelope(dump_many(SavingOut, savings), pagination=pagination(page, limit, total))


@router.get("/summary")
async def get_savings_summary(
    period: int = Query(30, ge=1, le=3650, description="Window in days"),
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """Total saved in the window, monthly average, per-type breakdown and six-month trend."""
    savings = db.query(Saving).filter(Saving.user_id == user_id).all()
    with timed_block("savings.summary"):
        summary = savings_summary(savings, period_days=period)
    return envelope(summary)


@router.get("/analytics")
async def get_savings_analytics(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    savings = db.query(Saving).filter(Saving.user_id == user_id).all()
    goals = (
        db.query(Goal)
        .filter(Goal.user_id == user_id, Goal.is_active.is_(True))
        .order_by(Goal.priority.desc(), Goal.target_date.asc())
        .all()
    )
    with timed_block("savings.analytics"):
        analytics = savings_analytics(savings, goals)
    return envelope(analytics)


@router.get("/{saving_id}")
async def get_saving(
    saving_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    saving = get_owned_or_404(db, Saving, saving_id, user_id, "Saving record")
    return envelope(dump(SavingOut, saving))


@router.delete("/{saving_id}")
async def delete_saving(
    saving_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    saving = get_owned_or_404(db, Saving, saving_id, user_id, "Saving record")
    db.delete(saving)
    commit_or_500(db, "Failed to delete saving record")
    return envelope(message="Saving record deleted successfully")
