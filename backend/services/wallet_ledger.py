"""
Module: wallet_ledger.py
Description: Per-user wallet balances and the ledger of money movement.

Operations:
    - get_or_create_wallet: lazily opens a wallet with the starting balance
    - deposit / withdraw: single-wallet balance changes plus one record
    - transfer: debit + credit + record committed as one store transaction
    - list_transactions: records where the user is sender or receiver

Every operation reports refusals as a LedgerError carrying a LedgerErrorKind.
Mapping kinds to HTTP status codes happens in routers/payments.py only.

Usage:
    ledger = WalletLedger(db, starting_balance=Decimal("1000"))
    result = ledger.transfer(user_id, Decimal("25"), "+1 555 010 0100")
"""

import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from models import User, Wallet, Transaction
from .observability import logger, metrics, timed, log_ledger_rejected


CENT = Decimal("0.01")
# Largest value a Money (Numeric(14,2)) column holds
MAX_AMOUNT = Decimal("999999999999.99")
AMOUNT_TOO_LARGE = "Amount exceeds the maximum of 999,999,999,999.99"
BALANCE_TOO_LARGE = "Resulting balance would exceed the maximum of 999,999,999,999.99"
NON_DIGITS = re.compile(r"\D+")


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"


COMPLETED = "COMPLETED"


class LedgerErrorKind(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    MISSING_RECIPIENT = "MissingRecipient"
    RECIPIENT_NOT_FOUND = "RecipientNotFound"
    SELF_TRANSFER = "SelfTransfer"
    STORE_FAILURE = "StoreFailure"


ERROR_MESSAGES = {
    LedgerErrorKind.INVALID_AMOUNT: "Amount must be greater than 0",
    LedgerErrorKind.INSUFFICIENT_FUNDS: "Insufficient funds",
    LedgerErrorKind.MISSING_RECIPIENT: "Receiver phone number is required",
    LedgerErrorKind.RECIPIENT_NOT_FOUND: "Receiver not found",
    LedgerErrorKind.SELF_TRANSFER: "Cannot transfer to your own phone number",
    LedgerErrorKind.STORE_FAILURE: "Ledger store unavailable",
}


class LedgerError(Exception):
    """A ledger operation was refused or could not be stored."""

    def __init__(self, kind: LedgerErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def is_client_error(self) -> bool:
        return self.kind != LedgerErrorKind.STORE_FAILURE


@dataclass
class TransferResult:
    sender_wallet: Wallet
    receiver_wallet: Wallet
    transaction: Transaction


# =============================================================================
# Phone Matching
# =============================================================================

def normalize_phone_candidates(raw: Optional[str]) -> list[str]:
    """
    Build the set of spellings tried for an exact phone match.

    Includes the trimmed input, its digits, "+digits", and for ten-digit
    numbers the "1" and "+1" country-code forms. Order is stable.
    """
    if not raw:
        return []

    trimmed = str(raw).strip()
    if not trimmed:
        return []
    digits = NON_DIGITS.sub("", trimmed)

    candidates = [trimmed]
    if digits:
        candidates += [digits, f"+{digits}"]
    if len(digits) == 10:
        candidates += [f"1{digits}", f"+1{digits}"]

    return list(dict.fromkeys(candidates))


def last_ten_digits(raw: Optional[str]) -> Optional[str]:
    """Last ten digits of raw when it holds at least ten, else None."""
    digits = NON_DIGITS.sub("", raw or "")
    return digits[-10:] if len(digits) >= 10 else None


# =============================================================================
# Ledger
# =============================================================================

class WalletLedger:
    """Wallet balances and ledger records for one database session."""

    def __init__(
        self,
        db: DBSession,
        starting_balance: Decimal = Decimal("1000"),
        default_currency: str = "USD",
    ):
        self.db = db
        self.starting_balance = Decimal(starting_balance)
        self.default_currency = default_currency

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_wallet(self, user_id: str) -> Optional[Wallet]:
        return self.db.query(Wallet).filter(Wallet.user_id == user_id).first()

    def get_or_create_wallet(self, user_id: str) -> Wallet:
        """Return the user's wallet, opening it with the starting balance if absent."""
        wallet = self.get_wallet(user_id)
        if wallet:
            return wallet

        with self._atomic("open_wallet", user_id):
            wallet = Wallet(
                user_id=user_id,
                balance=self.starting_balance,
                currency=self.default_currency,
            )
            self.db.add(wallet)

        self.db.refresh(wallet)
        logger.info("Wallet opened", user=user_id[:8], balance=str(wallet.balance))
        metrics.increment("ledger.wallets_opened")
        return wallet

    def get_wallet_stats(self, user_id: str) -> dict:
        """Count records sent and received by the user."""
        sent = self.db.query(Transaction).filter(Transaction.sender_user_id == user_id).count()
        received = self.db.query(Transaction).filter(Transaction.receiver_user_id == user_id).count()
        return {"sent": sent, "received": received}

    def list_transactions(self, user_id: str, page: int = 1, limit: int = 20) -> tuple[list[Transaction], int]:
        """
        Records where the user is sender or receiver, newest first.

        Returns:
            (records for the page, total matching records)
        """
        query = self.db.query(Transaction).filter(
            or_(Transaction.sender_user_id == user_id, Transaction.receiver_user_id == user_id)
        )
        total = query.count()
        records = (
            query.order_by(Transaction.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return records, total

    def find_user_by_phone(self, raw_phone: str) -> Optional[User]:
        """
        Resolve a loosely formatted phone number to a user.

        Exact candidate spellings are tried first; failing that, any stored
        number ending with or containing the input's last ten digits matches.
        """
        candidates = normalize_phone_candidates(raw_phone)
        if not candidates:
            return None

        user = (
            self.db.query(User)
            .filter(User.phone.in_(candidates))
            .order_by(User.created_at)
            .first()
        )
        if user:
            return user

        suffix = last_ten_digits(raw_phone)
        if not suffix:
            return None

        return (
            self.db.query(User)
            .filter(or_(User.phone.endswith(suffix), User.phone.contains(suffix)))
            .order_by(User.created_at)
            .first()
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @timed("ledger.deposit")
    def deposit(
        self,
        user_id: str,
        amount,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Wallet:
        """Credit the user's wallet, opening it at zero if needed."""
        amount = self._validate_amount(amount, "deposit", user_id)
        currency = self._currency(currency)

        with self._atomic("deposit", user_id):
            wallet = self.get_wallet(user_id)
            if not wallet:
                wallet = Wallet(user_id=user_id, balance=Decimal("0"), currency=currency)
                self.db.add(wallet)
                self.db.flush()

            self._check_capacity(wallet, amount, "deposit", user_id)
            self._apply_delta(wallet, amount)
            self.db.add(Transaction(
                amount=amount,
                currency=currency,
                type=TransactionType.DEPOSIT.value,
                status=COMPLETED,
                description=description or "Deposit",
                receiver_wallet_id=wallet.id,
                receiver_user_id=user_id,
            ))

        self.db.refresh(wallet)
        logger.info("Deposit completed", user=user_id[:8], amount=str(amount), balance=str(wallet.balance))
        return wallet

    @timed("ledger.withdraw")
    def withdraw(
        self,
        user_id: str,
        amount,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Wallet:
        """Debit the user's wallet if it holds at least amount."""
        amount = self._validate_amount(amount, "withdraw", user_id)
        currency = self._currency(currency)

        wallet = self.get_wallet(user_id)
        if not wallet or wallet.balance < amount:
            self._reject("withdraw", LedgerErrorKind.INSUFFICIENT_FUNDS, user_id)

        with self._atomic("withdraw", user_id):
            self._apply_delta(wallet, -amount)
            self.db.add(Transaction(
                amount=amount,
                currency=currency,
                type=TransactionType.WITHDRAWAL.value,
                status=COMPLETED,
                description=description or "Withdrawal",
                sender_wallet_id=wallet.id,
                sender_user_id=user_id,
            ))

        self.db.refresh(wallet)
        logger.info("Withdrawal completed", user=user_id[:8], amount=str(amount), balance=str(wallet.balance))
        return wallet

    @timed("ledger.transfer")
    def transfer(
        self,
        sender_user_id: str,
        amount,
        receiver_phone: Optional[str],
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TransferResult:
        """
        Move amount from the sender's wallet to the user owning receiver_phone.

        Checks run in order: amount, recipient given, recipient found,
        not self, sufficient funds. The debit, the credit and the record
        are committed together or not at all.
        """
        amount = self._validate_amount(amount, "transfer", sender_user_id)
        if not receiver_phone or not str(receiver_phone).strip():
            self._reject("transfer", LedgerErrorKind.MISSING_RECIPIENT, sender_user_id)
        currency = self._currency(currency)

        sender = self.db.get(User, sender_user_id)
        receiver = self.find_user_by_phone(receiver_phone)
        if not receiver:
            self._reject("transfer", LedgerErrorKind.RECIPIENT_NOT_FOUND, sender_user_id)

        if sender and sender.phone and receiver.phone and sender.phone == receiver.phone:
            self._reject("transfer", LedgerErrorKind.SELF_TRANSFER, sender_user_id)

        sender_wallet = self.get_wallet(sender_user_id)
        if not sender_wallet or sender_wallet.balance < amount:
            self._reject("transfer", LedgerErrorKind.INSUFFICIENT_FUNDS, sender_user_id)

        with self._atomic("transfer", sender_user_id):
            receiver_wallet = self.get_wallet(receiver.id)
            if not receiver_wallet:
                receiver_wallet = Wallet(user_id=receiver.id, balance=Decimal("0"), currency=currency)
                self.db.add(receiver_wallet)
                self.db.flush()

            self._check_capacity(receiver_wallet, amount, "transfer", sender_user_id)
            self._apply_delta(sender_wallet, -amount)
            self._apply_delta(receiver_wallet, amount)
            record = Transaction(
                amount=amount,
                currency=currency,
                type=TransactionType.TRANSFER.value,
                status=COMPLETED,
                description=description or "Transfer",
                sender_wallet_id=sender_wallet.id,
                sender_user_id=sender_user_id,
                receiver_wallet_id=receiver_wallet.id,
                receiver_user_id=receiver.id,
            )
            self.db.add(record)

        for obj in (sender_wallet, receiver_wallet, record):
            self.db.refresh(obj)

        logger.info(
            "Transfer completed",
            sender=sender_user_id[:8],
            receiver=receiver.id[:8],
            amount=str(amount),
        )
        metrics.increment("ledger.transferred_cents", int(amount * 100))
        return TransferResult(sender_wallet, receiver_wallet, record)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @contextmanager
    def _atomic(self, operation: str, user_id: str):
        """Commit everything done in the block as one store transaction."""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Ledger store failure", operation=operation, user=user_id[:8], error=str(e))
            metrics.increment("ledger.store_failures", tags={"operation": operation})
            raise LedgerError(LedgerErrorKind.STORE_FAILURE) from e
        except Exception:
            self.db.rollback()
            raise

    def _apply_delta(self, wallet: Wallet, delta: Decimal) -> None:
        """Issue balance = balance + delta as a single UPDATE statement."""
        self.db.query(Wallet).filter(Wallet.id == wallet.id).update(
            {Wallet.balance: Wallet.balance + delta, Wallet.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )

    def _validate_amount(self, amount, operation: str, user_id: str) -> Decimal:
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
            if not value.is_finite():
                raise InvalidOperation
            # quantize raises InvalidOperation past the context precision
            value = value.quantize(CENT, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError, TypeError):
            self._reject(operation, LedgerErrorKind.INVALID_AMOUNT, user_id)

        if value <= 0:
            self._reject(operation, LedgerErrorKind.INVALID_AMOUNT, user_id)
        if value > MAX_AMOUNT:
            self._reject(operation, LedgerErrorKind.INVALID_AMOUNT, user_id, AMOUNT_TOO_LARGE)
        return value

    def _check_capacity(self, wallet: Wallet, amount: Decimal, operation: str, user_id: str) -> None:
        """Refuse a credit that would push the balance past MAX_AMOUNT."""
        if Decimal(wallet.balance or 0) + amount > MAX_AMOUNT:
            self._reject(operation, LedgerErrorKind.INVALID_AMOUNT, user_id, BALANCE_TOO_LARGE)

    def _currency(self, currency: Optional[str]) -> str:
        return (currency or "").strip().upper() or self.default_currency

    @staticmethod
    def _reject(operation: str, kind: LedgerErrorKind, user_id: str, message: Optional[str] = None):
        log_ledger_rejected(operation, kind.value, user_id)
        raise LedgerError(kind, message)
