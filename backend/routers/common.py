"""Helpers shared by the CRUD routers."""

from typing import Type

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session as DBSession

from services.observability import logger


def get_owned_or_404(db: DBSession, model: Type, obj_id: str, user_id: str, label: str):
    """
    Load a row by id that belongs to user_id.

    Raises:
        HTTPException: 404 "<label> not found" if missing or owned by someone else.
    """
    obj = db.query(model).filter(model.id == obj_id, model.user_id == user_id).first()
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return obj


def apply_sort(query: Query, model: Type, sort_by: str, sort_order: str, allowed: dict) -> Query:
    """
    Order query by a whitelisted field.

    Args:
        allowed: Wire name (e.g. "createdAt") -> model attribute name.
    """
    column = getattr(model, allowed.get(sort_by, next(iter(allowed.values()))))
    ordering = column.asc() if sort_order == "asc" else column.desc()
    return query.order_by(ordering, model.id)


def commit_or_500(db: DBSession, failure_message: str) -> None:
    """Commit, rolling back and raising an opaque 500 on store errors."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database commit failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_message)
