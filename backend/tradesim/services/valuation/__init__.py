# backend/tradesim/services/valuation/__init__.py
"""
Portfolio valuation package.

This package contains:
- Internal data types (types.py)
- Holdings aggregation and valuation maths (calculators.py)
- Snapshot orchestration (service.py)
- Per-user single-flight refresh and polling (refresh.py)

Usage:
    from tradesim.services.valuation import PortfolioService, SnapshotRefresher

    service = PortfolioService(ledger, accounts, quote_provider)
    snapshot = SnapshotRefresher().get_snapshot(
        user_id, lambda: service.compute_snapshot(user_id)
    )
"""

from tradesim.services.valuation.calculators import (
    HoldingsAggregator,
    ValuationEngine,
    calculate_return_percent,
)
from tradesim.services.valuation.refresh import SnapshotPoller, SnapshotRefresher
from tradesim.services.valuation.service import PortfolioService, QuoteFetchPool
from tradesim.services.valuation.types import (
    EnrichedHolding,
    Holding,
    HoldingsResult,
    LedgerEntry,
    PortfolioSnapshot,
    ValuationResult,
)

__all__ = [
    # Service
    "PortfolioService",
    "QuoteFetchPool",
    "SnapshotRefresher",
    "SnapshotPoller",
    # Calculators
    "HoldingsAggregator",
    "ValuationEngine",
    "calculate_return_percent",
    # Types
    "LedgerEntry",
    "Holding",
    "HoldingsResult",
    "EnrichedHolding",
    "ValuationResult",
    "PortfolioSnapshot",
]
