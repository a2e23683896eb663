# backend/tradesim/services/ledger.py
"""
SQLAlchemy-backed ledger and account collaborators.

LedgerRepository:
    Read and append side of the per-user transaction ledger. Rows are only
    ever inserted; replay order is (timestamp, id).

AccountRepository:
    Cash balance reads and adjustments on the users table.

Both wrap a caller-owned Session. They flush but never commit: the caller
(TradingService, AccountService) decides the transaction boundary, so a
trade's ledger row and cash adjustment commit or roll back together.

Database errors are translated to LedgerUnavailableError /
AccountUnavailableError so callers never see SQLAlchemy exceptions.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradesim.models import Transaction, TransactionType, User
from tradesim.services.constants import CURRENCY_PRECISION
from tradesim.services.exceptions import (
    AccountUnavailableError,
    LedgerUnavailableError,
    UserNotFoundError,
)
from tradesim.services.valuation.types import LedgerEntry

logger = logging.getLogger(__name__)


def _to_entry(txn: Transaction) -> LedgerEntry:
    return LedgerEntry(
        id=txn.id,
        symbol=txn.symbol,
        kind=txn.transaction_type.value if txn.transaction_type else None,
        quantity=txn.quantity,
        price=txn.price,
        timestamp=txn.timestamp,
    )


class LedgerRepository:
    """Append-only transaction ledger for one database session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_transactions(self, user_id: int) -> list[LedgerEntry]:
        """
        All transactions for a user in replay order (oldest first).

        Ties in timestamp fall back to insertion order (primary key).

        Raises:
            LedgerUnavailableError: If the ledger cannot be read
        """
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.timestamp.asc(), Transaction.id.asc())
        )
        return self._fetch(user_id, query)

    def get_transactions_newest_first(self, user_id: int) -> list[LedgerEntry]:
        """Same rows as get_transactions(), in display order."""
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
        )
        return self._fetch(user_id, query)

    def append_transaction(
            self,
            user_id: int,
            symbol: str,
            kind: str,
            quantity: int,
            price: Decimal,
    ) -> LedgerEntry:
        """
        Insert one transaction (flushed, not committed).

        Arguments are expected to be validated and canonical already.

        Raises:
            LedgerUnavailableError: If the insert fails
        """
        txn = Transaction(
            user_id=user_id,
            symbol=symbol,
            transaction_type=TransactionType(kind),
            quantity=quantity,
            price=price,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            self._db.add(txn)
            self._db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Ledger append failed for user {user_id}: {e}")
            raise LedgerUnavailableError(user_id, reason=str(e)) from e

        return _to_entry(txn)

    def _fetch(self, user_id: int, query) -> list[LedgerEntry]:
        try:
            rows = self._db.scalars(query).all()
        except SQLAlchemyError as e:
            logger.error(f"Ledger read failed for user {user_id}: {e}")
            raise LedgerUnavailableError(user_id, reason=str(e)) from e
        return [_to_entry(txn) for txn in rows]


class AccountRepository:
    """Cash balance access for one database session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_user(self, user_id: int, for_update: bool = False) -> User | None:
        """
        Load a user row.

        Args:
            for_update: Lock the row until the session's transaction ends
                (PostgreSQL; a no-op on SQLite)

        Raises:
            AccountUnavailableError: If the users table cannot be read
        """
        query = select(User).where(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        try:
            return self._db.execute(query).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Account read failed for user {user_id}: {e}")
            raise AccountUnavailableError(user_id, reason=str(e)) from e

    def get_cash_balance(self, user_id: int) -> Decimal:
        """
        Current cash balance in the base currency.

        Raises:
            UserNotFoundError: If the user does not exist
            AccountUnavailableError: If the users table cannot be read
        """
        user = self.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return Decimal(user.cash_balance).quantize(CURRENCY_PRECISION)

    def adjust_cash(self, user: User, delta: Decimal) -> Decimal:
        """
        Add delta (negative to debit) to a user's cash (flushed, not committed).

        Returns:
            The new balance
        """
        user.cash_balance = (Decimal(user.cash_balance) + delta).quantize(CURRENCY_PRECISION)
        try:
            self._db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Cash adjustment failed for user {user.id}: {e}")
            raise AccountUnavailableError(user.id, reason=str(e)) from e
        return user.cash_balance
