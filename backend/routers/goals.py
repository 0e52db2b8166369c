"""Savings goal endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Goal, Saving
from schemas import GoalCreate, GoalUpdate, GoalContribution, GoalOut, envelope, dump, dump_many
from services.analytics import goal_progress
from services.observability import logger
from .common import get_owned_or_404, commit_or_500


router = APIRouter(prefix="/api/goals", tags=["Goals"])


def _ordered(query):
    return query.order_by(Goal.priority.desc(), Goal.target_date.asc(), Goal.id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_goal(
    body: GoalCreate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    goal = Goal(user_id=user_id, **body.model_dump())
    db.add(goal)
    commit_or_500(db, "Failed to create goal")
    db.refresh(goal)
    return envelope(dump(GoalOut, goal), message="Goal created successfully")


@router.get("")
async def list_goals(
    active: Optional[bool] = None,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """Goals ordered by priority (highest first), then nearest target date."""
    query = db.query(Goal).filter(Goal.user_id == user_id)
    if active is not None:
        query = query.filter(Goal.is_active.is_(active))
    return envelope(dump_many(GoalOut, _ordered(query).all()))


@router.get("/progress")
async def get_goal_progress(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    goals = _ordered(
        db.query(Goal).filter(Goal.user_id == user_id, Goal.is_active.is_(True))
    ).all()
    today = date.today()
    return envelope([{**goal_progress(g, today), "priority": g.priority} for g in goals])


@router.get("/{goal_id}")
async def get_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    goal = get_owned_or_404(db, Goal, goal_id, user_id, "Goal")
    return envelope(dump(GoalOut, goal))


@router.put("/{goal_id}")
async def update_goal(
    goal_id: str,
    body: GoalUpdate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    goal = get_owned_or_404(db, Goal, goal_id, user_id, "Goal")

    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(goal, field, value)

    commit_or_500(db, "Failed to update goal")
    db.refresh(goal)
    return envelope(dump(GoalOut, goal), message="Goal updated successfully")


@router.delete("/{goal_id}")
async def delete_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    goal = get_owned_or_404(db, Goal, goal_id, user_id, "Goal")
    db.delete(goal)
    commit_or_500(db, "Failed to delete goal")
    return envelope(message="Goal deleted successfully")


@router.post("/{goal_id}/add")
async def add_to_goal(
    goal_id: str,
    body: GoalContribution,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """Add money to a goal and record it as a GOAL_CONTRIBUTION saving in one commit."""
    goal = get_owned_or_404(db, Goal, goal_id, user_id, "Goal")

    db.query(Goal).filter(Goal.id == goal.id).update(
        {Goal.saved: Goal.saved + body.amount}, synchronize_session=False
    )
    db.add(Saving(
        user_id=user_id,
        amount=body.amount,
        type="GOAL_CONTRIBUTION",
        description=f"Contribution to {goal.name}",
        date=date.today(),
    ))
    commit_or_500(db, "Failed to add to goal")
    db.refresh(goal)

    logger.info("Goal contribution", user=user_id[:8], goal=goal.id[:8], amount=str(body.amount))
    return envelope(dump(GoalOut, goal), message=f"Added ${body.amount:.2f} to {goal.name}")
