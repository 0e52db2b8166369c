"""FastAPI dependencies shared by the routers.

Collaborators are built once in main.create_app() and kept on app.state;
these functions hand them to route handlers.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session as DBSession

from auth import get_settings
from config import Settings
from database import get_db
from services.ai_service import AIService
from services.wallet_ledger import WalletLedger


def get_ai_service(request: Request) -> AIService:
    """
    Dependency: Provide the AIService instance.

    Returns:
        AIService: Configured OpenAI wrapper service.
    """
    return request.app.state.ai_service


def get_ledger(
    db: DBSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WalletLedger:
    return WalletLedger(
        db,
        starting_balance=settings.wallet_starting_balance,
        default_currency=settings.wallet_default_currency,
    )
