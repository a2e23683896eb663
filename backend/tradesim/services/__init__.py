# backend/tradesim/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters or wrap them in repositories
- Are easily testable via dependency injection

Usage:
    from tradesim.services import PortfolioService
    from tradesim.services import TradingService
    from tradesim.services import AccountService
    from tradesim.services import (
        LedgerUnavailableError,
        InsufficientFundsError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Business constants and limits
    ├── protocols.py                 # Collaborator interfaces (Protocol classes)
    ├── circuit_breaker.py           # Circuit breaker for external APIs
    ├── symbols.py                   # Ticker canonicalization
    ├── ledger.py                    # Ledger and cash repositories
    ├── trading.py                   # Order validation and placement
    ├── accounts.py                  # User registration
    ├── market_data/                 # Market data package
    │   ├── base.py                  # Abstract quote provider interface
    │   ├── normalizer.py            # Pence -> pounds normalization
    │   └── yahoo.py                 # Yahoo Finance implementation
    └── valuation/                   # Portfolio valuation
        ├── service.py               # Snapshot orchestrator
        ├── refresh.py               # Single-flight refresh and polling
        ├── types.py                 # Valuation data types
        └── calculators.py           # Aggregation and valuation maths
"""

# Accounts & trading
from tradesim.services.accounts import AccountService
from tradesim.services.trading import TradingService, TradeConfirmation
from tradesim.services.ledger import LedgerRepository, AccountRepository
# Valuation
from tradesim.services.valuation import (
    PortfolioService,
    SnapshotRefresher,
    SnapshotPoller,
    PortfolioSnapshot,
)
# Market data
from tradesim.services.market_data import (
    QuoteProvider,
    YahooQuoteProvider,
    QuoteNormalizer,
)
# Exceptions
from tradesim.services.exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    UserNotFoundError,
    UserExistsError,
    TradeRejectedError,
    InsufficientFundsError,
    InsufficientSharesError,
    StorageUnavailableError,
    LedgerUnavailableError,
    AccountUnavailableError,
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    CircuitBreakerOpen,
)

__all__ = [
    # Services
    "AccountService",
    "TradingService",
    "TradeConfirmation",
    "LedgerRepository",
    "AccountRepository",
    "PortfolioService",
    "SnapshotRefresher",
    "SnapshotPoller",
    "PortfolioSnapshot",
    "QuoteProvider",
    "YahooQuoteProvider",
    "QuoteNormalizer",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "UserNotFoundError",
    "UserExistsError",
    "TradeRejectedError",
    "InsufficientFundsError",
    "InsufficientSharesError",
    "StorageUnavailableError",
    "LedgerUnavailableError",
    "AccountUnavailableError",
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "CircuitBreakerOpen",
]
