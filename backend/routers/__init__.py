"""API routers, one per resource."""

from . import accounts, payments, expenses, savings, goals, insights, dashboard, chat

__all__ = [
    "accounts",
    "payments",
    "expenses",
    "savings",
    "goals",
    "insights",
    "dashboard",
    "chat",
]
