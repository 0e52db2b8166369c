"""Dashboard overview and spending analytics."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Expense, Saving, Goal, Insight, Transaction, Wallet
from schemas import ExpenseOut, TransactionOut, envelope, dump_many
from services.analytics import spending_analytics
from services.observability import timed_block


router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("")
async def get_dashboard(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """
    Everything the home screen needs in one call.

    Reads only; a user without a wallet sees a null balance rather than
    having one opened.
    """
    today = date.today()
    month_start = today.replace(day=1)

    wallet = db.query(Wallet).filter(Wallet.user_id == user_id).first()

    month_spent = (
        db.query(func.coalesce(func.sum(Expense.amount), 0))
        .filter(Expense.user_id == user_id, Expense.date >= month_start)
        .scalar()
    )
    total_saved = (
        db.query(func.coalesce(func.sum(Saving.amount), 0))
        .filter(Saving.user_id == user_id)
        .scalar()
    )

    active_goals = (
        db.query(Goal)
        .filter(Goal.user_id == user_id, Goal.is_active.is_(True))
        .all()
    )
    goal_target = sum(float(g.target) for g in active_goals)
    goal_saved = sum(float(g.saved or 0) for g in active_goals)

    unread = (
        db.query(Insight)
        .filter(Insight.user_id == user_id, Insight.is_read.is_(False))
        .count()
    )

    recent_expenses = (
        db.query(Expense)
        .filter(Expense.user_id == user_id)
        .order_by(Expense.date.desc(), Expense.created_at.desc())
        .limit(5)
        .all()
    )
    recent_transactions = (
        db.query(Transaction)
        .filter(or_(Transaction.sender_user_id == user_id, Transaction.receiver_user_id == user_id))
        .order_by(Transaction.created_at.desc())
        .limit(5)
        .all()
    )

    return envelope({
        "wallet": (
            {"balance": float(wallet.balance), "currency": wallet.currency} if wallet else None
        ),
        "monthlyExpenses": round(float(month_spent), 2),
        "totalSaved": round(float(total_saved), 2),
        "goals": {
            "active": len(active_goals),
            "target": round(goal_target, 2),
            "saved": round(goal_saved, 2),
            "progress": round(min(goal_saved / goal_target * 100, 100.0), 1) if goal_target else 0.0,
        },
        "unreadInsights": unread,
        "recentExpenses": dump_many(ExpenseOut, recent_expenses),
        "recentTransactions": dump_many(TransactionOut, recent_transactions),
    })


@router.get("/analytics")
async def get_analytics(
    months: int = Query(6, ge=2, le=24),
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """Monthly totals, category breakdown and changes, savings trend and a next-month projection."""
    expenses = db.query(Expense).filter(Expense.user_id == user_id).all()
    savings = db.query(Saving).filter(Saving.user_id == user_id).all()

    with timed_block("dashboard.analytics"):
        analytics = spending_analytics(expenses, savings, date.today(), months=months)
    return envelope(analytics)
