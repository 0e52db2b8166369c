"""Pydantic request/response schemas and the JSON envelope helpers.

Wire format uses camelCase keys (receiverPhone, targetDate, isRead);
Python code uses snake_case. Both spellings are accepted on input.
"""

import math
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Literal


SAVING_TYPES = ("MANUAL", "GOAL_CONTRIBUTION", "ROUND_UP", "AUTOMATIC", "OTHER")
INSIGHT_TYPES = ("SAVING", "SPENDING", "BUDGET", "GOAL", "INVESTMENT", "GENERAL")
IMPACTS = ("LOW", "MEDIUM", "HIGH")

SavingType = Literal["MANUAL", "GOAL_CONTRIBUTION", "ROUND_UP", "AUTOMATIC", "OTHER"]
Impact = Literal["LOW", "MEDIUM", "HIGH"]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# =============================================================================
# Envelope
# =============================================================================

def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Build the success envelope: {success: true, data, message?}."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


def error_envelope(error: str, **extra) -> dict:
    """Build the failure envelope: {success: false, error}."""
    return {"success": False, "error": error, **extra}


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def dump(schema: type[BaseModel], obj: Any) -> dict:
    """Serialize an ORM object through a response schema to camelCase JSON."""
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def dump_many(schema: type[BaseModel], objs) -> list[dict]:
    return [dump(schema, o) for o in objs]


# =============================================================================
# Auth Schemas
# =============================================================================

class RegisterRequest(CamelModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserOut(CamelModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# Wallet / Ledger Schemas
# =============================================================================

class WalletOperationRequest(CamelModel):
    """Body for deposit and withdraw. Amount sign is checked by the ledger."""
    amount: Decimal
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = Field(None, max_length=255)


class TransferRequest(WalletOperationRequest):
    receiver_phone: Optional[str] = Field(None, max_length=32)


class WalletOut(CamelModel):
    id: str
    user_id: str
    balance: float
    currency: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionOut(CamelModel):
    id: str
    amount: float
    currency: str
    type: str
    status: str
    description: Optional[str] = None
    sender_wallet_id: Optional[str] = None
    sender_user_id: Optional[str] = None
    receiver_wallet_id: Optional[str] = None
    receiver_user_id: Optional[str] = None
    created_at: datetime


# =============================================================================
# Expense Schemas
# =============================================================================

class ExpenseCreate(CamelModel):
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=255)
    date: date
    notes: Optional[str] = Field(None, max_length=1000)


class ExpenseUpdate(CamelModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=14, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[dt.date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ExpenseOut(CamelModel):
    id: str
    amount: float
    category: str
    description: str
    date: date
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Saving Schemas
# =============================================================================

class SavingCreate(CamelModel):
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    type: SavingType = "MANUAL"
    description: Optional[str] = Field(None, max_length=255)
    date: Optional[dt.date] = None


class SavingOut(CamelModel):
    id: str
    amount: float
    type: str
    description: Optional[str] = None
    date: date
    created_at: Optional[datetime] = None


# =============================================================================
# Goal Schemas
# =============================================================================

class GoalCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    target: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    saved: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    target_date: date
    priority: int = Field(3, ge=1, le=5)
    emoji: Optional[str] = Field(None, max_length=16)
    category: Optional[str] = Field(None, max_length=50)
    is_active: bool = True


class GoalUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    target: Optional[Decimal] = Field(None, gt=0, max_digits=14, decimal_places=2)
    saved: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    target_date: Optional[date] = None
    priority: Optional[int] = Field(None, ge=1, le=5)
    emoji: Optional[str] = Field(None, max_length=16)
    category: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None


class GoalContribution(CamelModel):
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class GoalOut(CamelModel):
    id: str
    name: str
    target: float
    saved: float
    target_date: date
    priority: Optional[int] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Insight Schemas
# =============================================================================

class InsightCreate(CamelModel):
    type: str = Field("SAVING", max_length=30)
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1, max_length=2000)
    priority: Optional[int] = Field(None, ge=1, le=5)


class InsightUpdate(CamelModel):
    type: Optional[str] = Field(None, max_length=30)
    title: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    impact: Optional[Impact] = None
    is_read: Optional[bool] = None


class InsightOut(CamelModel):
    id: str
    type: str
    title: str
    description: str
    impact: str
    is_read: bool = False
    created_at: Optional[datetime] = None


# =============================================================================
# Chat Schemas
# =============================================================================

class ChatRequest(CamelModel):
    """Request schema for chat endpoint."""
    message: Optional[str] = Field(None, max_length=2000, description="User's message")
    context: Optional[str] = Field(None, max_length=4000, description="Extra context prepended to the prompt")


class ChatResponse(CamelModel):
    reply: str
    source: Literal["ai", "fallback"] = "ai"


class HealthResponse(BaseModel):
    status: str
    database: str
    openai: str
