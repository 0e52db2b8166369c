"""Insight endpoints: stored insights, read state and AI generation."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from dependencies import get_ai_service
from models import Insight
from schemas import InsightCreate, InsightUpdate, InsightOut, envelope, pagination, dump, dump_many
from services.ai_service import AIService
from services.insight_generator import InsightGenerator, map_insight_type, map_priority_to_impact
from .common import get_owned_or_404, apply_sort, commit_or_500


router = APIRouter(prefix="/api/insights", tags=["Insights"])

SORT_FIELDS = {
    "createdAt": "created_at",
    "type": "type",
    "impact": "impact",
}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_insight(
    body: InsightCreate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    insight = Insight(
        user_id=user_id,
        type=map_insight_type(body.type),
        title=body.title,
        description=body.description,
        impact=map_priority_to_impact(body.priority),
    )
    db.add(insight)
    commit_or_500(db, "Failed to create insight")
    db.refresh(insight)
    return envelope(dump(InsightOut, insight), message="Insight created successfully")


@router.get("")
async def list_insights(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = None,
    is_read: Optional[bool] = Query(None, alias="isRead"),
    sort_by: Literal["createdAt", "type", "impact"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    query = db.query(Insight).filter(Insight.user_id == user_id)
    if type:
        query = query.filter(Insight.type == map_insight_type(type))
    if is_read is not None:
        query = query.filter(Insight.is_read.is_(is_read))

    total = query.count()
    insights = (
        apply_sort(query, Insight, sort_by, sort_order, SORT_FIELDS)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return envelope(dump_many(InsightOut, insights), pagination=pagination(page, limit, total))


@router.get("/unread-count")
async def get_unread_count(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    count = (
        db.query(Insight)
        .filter(Insight.user_id == user_id, Insight.is_read.is_(False))
        .count()
    )
    return envelope({"unreadCount": count})


@router.get("/generate")
async def generate_insights(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
):
    """
    Generate insights from the user's expenses, savings and goals.

    Uses the AI service when configured, otherwise deterministic
    rule-based insights built from the same aggregated data.
    """
    generator = InsightGenerator(db, ai_service)
    created = await generator.generate(user_id)
    return envelope(
        dump_many(InsightOut, created),
        message=f"Generated {len(created)} AI-powered insights",
    )


@router.put("/mark-all-read")
async def mark_all_read(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    updated = (
        db.query(Insight)
        .filter(Insight.user_id == user_id, Insight.is_read.is_(False))
        .update({Insight.is_read: True}, synchronize_session=False)
    )
    commit_or_500(db, "Failed to mark all insights as read")
    return envelope({"updated": updated}, message="All insights marked as read")


@router.get("/{insight_id}")
async def get_insight(
    insight_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    insight = get_owned_or_404(db, Insight, insight_id, user_id, "Insight")
    return envelope(dump(InsightOut, insight))


@router.put("/{insight_id}")
async def update_insight(
    insight_id: str,
    body: InsightUpdate,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    insight = get_owned_or_404(db, Insight, insight_id, user_id, "Insight")

    changes = body.model_dump(exclude_unset=True)
    if changes.get("type") is not None:
        changes["type"] = map_insight_type(changes["type"])
    for field, value in changes.items():
        if value is not None:
            setattr(insight, field, value)

    commit_or_500(db, "Failed to update insight")
    db.refresh(insight)
    return envelope(dump(InsightOut, insight), message="Insight updated successfully")


@router.delete("/{insight_id}")
async def delete_insight(
    insight_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    insight = get_owned_or_404(db, Insight, insight_id, user_id, "Insight")
    db.delete(insight)
    commit_or_500(db, "Failed to delete insight")
    return envelope(message="Insight deleted successfully")


@router.put("/{insight_id}/read")
async def mark_as_read(
    insight_id: str,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    insight = get_owned_or_404(db, Insight, insight_id, user_id, "Insight")
    insight.is_read = True
    commit_or_500(db, "Failed to mark insight as read")
    db.refresh(insight)
    return envelope(dump(InsightOut, insight), message="Insight marked as read")
