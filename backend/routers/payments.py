"""
Wallet and transfer endpoints.

Ledger refusals arrive as LedgerError; LEDGER_ERROR_STATUS is the only
place their kinds become HTTP status codes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from auth import get_current_user
from dependencies import get_ledger
from schemas import (
    WalletOperationRequest, TransferRequest, WalletOut, TransactionOut,
    envelope, pagination, dump, dump_many,
)
from services.wallet_ledger import WalletLedger, LedgerError, LedgerErrorKind


router = APIRouter(prefix="/api/payments", tags=["Payments"])


LEDGER_ERROR_STATUS = {
    LedgerErrorKind.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.INSUFFICIENT_FUNDS: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.MISSING_RECIPIENT: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.SELF_TRANSFER: status.HTTP_400_BAD_REQUEST,
    LedgerErrorKind.RECIPIENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LedgerErrorKind.STORE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def ledger_http_error(error: LedgerError, failure_message: str) -> HTTPException:
    """
    Translate a LedgerError into the HTTP response.

    Client errors keep their message; store failures are reported with
    the opaque failure_message (details are already logged by the ledger).
    """
    detail = error.message if error.is_client_error else failure_message
    return HTTPException(status_code=LEDGER_ERROR_STATUS[error.kind], detail=detail)


@router.get("/wallet", summary="Get (or open) the current user's wallet")
async def get_wallet(
    user_id: str = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    try:
        wallet = ledger.get_or_create_wallet(user_id)
    except LedgerError as e:
        raise ledger_http_error(e, "Failed to get wallet")

    return envelope({**dump(WalletOut, wallet), "stats": ledger.get_wallet_stats(user_id)})


@router.get("/transactions", summary="List ledger records for the current user")
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    records, total = ledger.list_transactions(user_id, page=page, limit=limit)
    return envelope(dump_many(TransactionOut, records), pagination=pagination(page, limit, total))


@router.post("/deposit", status_code=status.HTTP_201_CREATED, summary="Deposit into the wallet")
async def deposit(
    body: WalletOperationRequest,
    user_id: str = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    try:
        wallet = ledger.deposit(user_id, body.amount, body.currency, body.description)
    except LedgerError as e:
        raise ledger_http_error(e, "Failed to deposit")

    return envelope(dump(WalletOut, wallet), message="Deposit successful")


@router.post("/withdraw", summary="Withdraw from the wallet")
async def withdraw(
    body: WalletOperationRequest,
    user_id: str = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    try:
        wallet = ledger.withdraw(user_id, body.amount, body.currency, body.description)
    except LedgerError as e:
        raise ledger_http_error(e, "Failed to withdraw")

    return envelope(dump(WalletOut, wallet), message="Withdrawal successful")


@router.post("/transfer", summary="Transfer to another user by phone number")
async def transfer(
    body: TransferRequest,
    user_id: str = Depends(get_current_user),
    ledger: WalletLedger = Depends(get_ledger),
):
    """
    Move money to the user owning receiverPhone.

    Phone numbers are matched leniently: spacing, punctuation and a missing
    or present +1 country code are tolerated.
    """
    try:
        result = ledger.transfer(
            user_id, body.amount, body.receiver_phone, body.currency, body.description
        )
    except LedgerError as e:
        raise ledger_http_error(e, "Failed to transfer")

    return envelope(
        {
            "senderWallet": dump(WalletOut, result.sender_wallet),
            "receiverWallet": dump(WalletOut, result.receiver_wallet),
            "transaction": dump(TransactionOut, result.transaction),
        },
        message="Transfer successful",
    )
