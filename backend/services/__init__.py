"""Backend services: the wallet ledger, analytics, insights and the chat assistant."""

from .ai_service import AIService, AIServiceError
from .wallet_ledger import WalletLedger, LedgerError, LedgerErrorKind, TransferResult
from .insight_generator import InsightGenerator
from .chat_service import ChatService
from .analytics import spending_analytics, savings_summary, savings_analytics, goal_progress

__all__ = [
    "AIService",
    "AIServiceError",
    "WalletLedger",
    "LedgerError",
    "LedgerErrorKind",
    "TransferResult",
    "InsightGenerator",
    "ChatService",
    "spending_analytics",
    "savings_summary",
    "savings_analytics",
    "goal_progress",
]
