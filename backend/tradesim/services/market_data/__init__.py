# backend/tradesim/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Abstract interface for quote and search providers (base.py)
- Yahoo Finance implementation (yahoo.py)
- Minor-unit to base-currency normalization (normalizer.py)

Usage:
    from tradesim.services.market_data import (
        QuoteProvider,
        Quote,
        QuoteBatchResult,
        YahooQuoteProvider,
        QuoteNormalizer,
    )

Architecture:
    QuoteProvider (ABC)
    └── YahooQuoteProvider (concrete, circuit-breaker guarded)

    QuoteNormalizer
    └── Converts GBp/GBX quotes to GBP before valuation
"""

# Base provider interface and data classes
from tradesim.services.market_data.base import (
    QuoteProvider,
    Quote,
    QuoteBatchResult,
    SearchResult,
)
# Normalization
from tradesim.services.market_data.normalizer import (
    QuoteNormalizer,
    NormalizedPrice,
)
# Concrete implementations
from tradesim.services.market_data.yahoo import YahooQuoteProvider

__all__ = [
    # Abstract interface
    "QuoteProvider",
    # Data classes
    "Quote",
    "QuoteBatchResult",
    "SearchResult",
    "NormalizedPrice",
    # Normalization
    "QuoteNormalizer",
    # Concrete implementations
    "YahooQuoteProvider",
]
