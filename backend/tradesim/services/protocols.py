# backend/tradesim/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test mocks work without explicit inheritance
- Clear documentation of required interfaces

PortfolioService depends only on these collaborator shapes, never on
SQLAlchemy or yfinance directly.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from tradesim.services.market_data.base import QuoteBatchResult
    from tradesim.services.valuation.types import LedgerEntry


class LedgerReader(Protocol):
    """Ledger read side required by PortfolioService and TradingService."""

    def get_transactions(self, user_id: int) -> Sequence[LedgerEntry]:
        """All transactions for user, oldest first (ties broken by insertion order)."""
        ...


class LedgerWriter(Protocol):
    """Ledger write side required by TradingService."""

    def append_transaction(
        self,
        user_id: int,
        symbol: str,
        kind: str,
        quantity: int,
        price: Decimal,
    ) -> LedgerEntry:
        ...


class CashBalanceReader(Protocol):
    """Interface required by PortfolioService."""

    def get_cash_balance(self, user_id: int) -> Decimal:
        ...


class QuoteProviderProtocol(Protocol):
    """Batched quote fetch, tolerant of partial results."""

    @property
    def name(self) -> str:
        ...

    def get_quotes(self, symbols: Iterable[str]) -> QuoteBatchResult:
        ...
