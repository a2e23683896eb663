# backend/tradesim/services/valuation/types.py
"""
Internal data types for portfolio valuation.

These dataclasses are used internally by the aggregator, valuation engine
and PortfolioService. They are NOT Pydantic schemas - those are defined in
tradesim/schemas/portfolio.py for API serialization.

Design Principles:
- Immutable where possible (frozen=True for value objects)
- Use Decimal for ALL financial values (never float)
- Shares are whole numbers (int)
- Warnings accumulate for data quality tracking

Type Hierarchy:
    LedgerEntry        - One recorded trade as the core sees it
    Holding            - Aggregated position for one symbol
    HoldingsResult     - Aggregator output + skipped record diagnostics
    EnrichedHolding    - Holding valued against a quote
    ValuationResult    - Enriched holdings + totals
    PortfolioSnapshot  - Complete serializable portfolio view
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


# =============================================================================
# LEDGER
# =============================================================================

@dataclass(frozen=True)
class LedgerEntry:
    """
    A recorded trade, detached from the database session.

    Fields are typed loosely. The aggregator validates each record during
    replay and skips malformed ones.

    Attributes:
        symbol: Canonical symbol (e.g., "BARC.L")
        kind: "BUY" or "SELL"
        quantity: Whole shares
        price: Fill price per share in the base currency
        timestamp: When the trade was recorded
        id: Ledger sequence number (insertion order)
    """

    symbol: Any
    kind: Any
    quantity: Any
    price: Any
    timestamp: datetime | None = None
    id: int | None = None


# =============================================================================
# POSITION & HOLDINGS
# =============================================================================

@dataclass(frozen=True)
class Holding:
    """
    Current position in one symbol, derived from the ledger.

    Attributes:
        symbol: Canonical symbol
        shares: Net shares held (always > 0 in aggregator output)
        total_cost: Cost basis of the shares still held, rounded to the
            penny; the authoritative figure
        average_cost: total_cost / shares at share precision, so
            average_cost * shares rounds back to total_cost
    """

    symbol: str
    shares: int
    total_cost: Decimal
    average_cost: Decimal


@dataclass
class HoldingsResult:
    """
    Result of ledger aggregation including data integrity diagnostics.

    Attributes:
        holdings: Open positions keyed by symbol
        skipped_records: Number of malformed ledger records ignored
        warnings: Human-readable data quality messages

    Note:
        Warnings indicate potential data issues but don't prevent calculation.
    """

    holdings: dict[str, Holding] = field(default_factory=dict)
    skipped_records: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def symbols(self) -> set[str]:
        return set(self.holdings)


# =============================================================================
# VALUATION
# =============================================================================

@dataclass(frozen=True)
class EnrichedHolding:
    """
    A holding valued at the current quote.

    Attributes:
        current_price: Normalized price in the base currency
            (0 under the pessimistic policy when no quote resolved,
            average cost under the optimistic one)
        market_value: shares x current_price
        profit_loss: market_value - total_cost
        return_percent: profit_loss / total_cost x 100 (0 when total_cost is 0)
        no_quote: True when no usable quote was found
        name: Instrument name from the quote, if any
        quote_as_of: Provider timestamp of the quote, if any
    """

    symbol: str
    shares: int
    average_cost: Decimal
    total_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    profit_loss: Decimal
    return_percent: Decimal
    no_quote: bool = False
    name: str | None = None
    quote_as_of: datetime | None = None


@dataclass(frozen=True)
class ValuationResult:
    """Enriched holdings (sorted by symbol) and their totals."""

    holdings: tuple[EnrichedHolding, ...]
    total_market_value: Decimal
    total_cost: Decimal
    total_profit_loss: Decimal
    total_return_percent: Decimal

    @property
    def unpriced_count(self) -> int:
        return sum(1 for h in self.holdings if h.no_quote)


# =============================================================================
# SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Complete portfolio view for one user at one instant.

    Always derivable from {ledger, latest quotes, cash balance}; nothing in
    here is stored.

    Attributes:
        degraded: True when the quote provider failed, timed out or was
            circuit-broken and holdings were valued without live prices
        skipped_records: Malformed ledger records ignored during replay
        warnings: Data quality and provider messages
    """

    user_id: int
    holdings: tuple[EnrichedHolding, ...]
    total_market_value: Decimal
    total_cost: Decimal
    total_profit_loss: Decimal
    total_return_percent: Decimal
    cash: Decimal
    net_worth: Decimal
    degraded: bool
    base_currency: str
    missing_quote_policy: str
    computed_at: datetime
    skipped_records: int = 0
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.holdings

    def to_dict(self) -> dict[str, Any]:
        """Plain record with camelCase field names for transport."""
        return {
            "userId": self.user_id,
            "holdings": [
                {
                    "symbol": h.symbol,
                    "name": h.name,
                    "shares": h.shares,
                    "averageCost": h.average_cost,
                    "totalCost": h.total_cost,
                    "currentPrice": h.current_price,
                    "marketValue": h.market_value,
                    "profitLoss": h.profit_loss,
                    "returnPercent": h.return_percent,
                    "noQuote": h.no_quote,
                    "quoteAsOf": h.quote_as_of,
                }
                for h in self.holdings
            ],
            "totalMarketValue": self.total_market_value,
            "totalCost": self.total_cost,
            "totalProfitLoss": self.total_profit_loss,
            "totalReturnPercent": self.total_return_percent,
            "cash": self.cash,
            "netWorth": self.net_worth,
            "degraded": self.degraded,
            "baseCurrency": self.base_currency,
            "missingQuotePolicy": self.missing_quote_policy,
            "computedAt": self.computed_at,
            "diagnostics": {
                "skippedRecords": self.skipped_records,
                "warnings": list(self.warnings),
            },
        }
