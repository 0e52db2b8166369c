"""
SQLAlchemy ORM models for PiggyBank.

Includes:
    - User (auth + phone directory)
    - Wallet, Transaction (ledger)
    - Expense, Saving, Goal
    - Insight

All rows are owned by a user and every query is scoped by user_id.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Date, DateTime,
    ForeignKey, Text, Index
)
from sqlalchemy.orm import relationship
from database import Base


def new_id() -> str:
    return uuid.uuid4().hex


# Money columns: two decimal places, stored as exact decimals
Money = Numeric(14, 2)


class User(Base):
    """Registered user. The phone number is the transfer-recipient lookup key."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    wallet = relationship("Wallet", back_populates="user", uselist=False)
    expenses = relationship("Expense", back_populates="user", cascade="all, delete-orphan")
    savings = relationship("Saving", back_populates="user", cascade="all, delete-orphan")
    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan")
    insights = relationship("Insight", back_populates="user", cascade="all, delete-orphan")


class Wallet(Base):
    """Per-user balance. Changed only by deposit, withdraw and transfer."""
    __tablename__ = "wallets"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Money, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="wallet")


class Transaction(Base):
    """Immutable ledger record for a balance-affecting event."""
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=new_id)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False)
    type = Column(String, nullable=False)  # DEPOSIT|WITHDRAWAL|TRANSFER
    status = Column(String, nullable=False, default="COMPLETED")
    description = Column(String)

    sender_wallet_id = Column(String, ForeignKey("wallets.id"))
    sender_user_id = Column(String, ForeignKey("users.id"))
    receiver_wallet_id = Column(String, ForeignKey("wallets.id"))
    receiver_user_id = Column(String, ForeignKey("users.id"))

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_transactions_sender_created", "sender_user_id", "created_at"),
        Index("ix_transactions_receiver_created", "receiver_user_id", "created_at"),
    )


class Expense(Base):
    """A single spend entry."""
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    category = Column(String, nullable=False)
    description = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="expenses")


class Saving(Base):
    """Money put aside, manually or as a goal contribution."""
    __tablename__ = "savings"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    type = Column(String, nullable=False)  # MANUAL|GOAL_CONTRIBUTION|ROUND_UP|AUTOMATIC|OTHER
    description = Column(String)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="savings")


class Goal(Base):
    """Savings goal."""
    __tablename__ = "goals"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    target = Column(Money, nullable=False)
    saved = Column(Money, nullable=False, default=0)
    target_date = Column(Date, nullable=False)
    priority = Column(Integer, default=3)  # 1=lowest .. 5=highest
    emoji = Column(String)
    category = Column(String)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="goals")


class Insight(Base):
    """AI-generated (or user-created) financial insight."""
    __tablename__ = "insights"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # SAVING|SPENDING|BUDGET|GOAL|INVESTMENT|GENERAL
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    impact = Column(String, nullable=False, default="MEDIUM")  # LOW|MEDIUM|HIGH
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="insights")
