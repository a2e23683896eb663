# backend/tradesim/dependencies.py
"""
Dependency injection module for FastAPI services.

Process-wide singletons (shared across all requests):
- Quote provider: one circuit breaker and retry budget for the whole app
- Snapshot refresher: the per-user in-flight registry must be shared
- Snapshot poller: a single background thread

Per-request instances:
- PortfolioService wraps the request's database session in ledger and
  account repositories, so it is built for each request

Singletons are lazily initialized on first use to avoid import-time side
effects, and settings are passed in here so services never import config.

Usage in routers:
    from tradesim.dependencies import get_portfolio_service, get_snapshot_refresher

    @router.get("/{user_id}")
    def get_portfolio(
        service: PortfolioService = Depends(get_portfolio_service),
        refresher: SnapshotRefresher = Depends(get_snapshot_refresher),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from tradesim.config import settings
from tradesim.database import get_db, session_scope
from tradesim.services.accounts import AccountService
from tradesim.services.constants import MissingQuotePolicy
from tradesim.services.ledger import AccountRepository, LedgerRepository
from tradesim.services.market_data import QuoteNormalizer, QuoteProvider, YahooQuoteProvider
from tradesim.services.trading import TradingService
from tradesim.services.valuation import (
    PortfolioService,
    PortfolioSnapshot,
    SnapshotPoller,
    SnapshotRefresher,
    ValuationEngine,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Using @lru_cache ensures the function returns the same instance on every call
#
# Order matters: define dependencies before dependents
# 1. get_quote_provider (no deps)
# 2. get_quote_normalizer (no deps)
# 3. get_snapshot_refresher (no deps)
# 4. get_snapshot_poller (depends on refresher, provider, normalizer)


@lru_cache(maxsize=1)
def get_quote_provider() -> QuoteProvider:
    """
    Get the singleton quote provider instance.

    Shares the provider (and its circuit breaker) across all requests,
    ensuring Yahoo Finance rate limits are respected globally.
    """
    logger.debug("Initializing singleton YahooQuoteProvider")
    return YahooQuoteProvider(
        exchange_suffix=settings.default_exchange_suffix,
        default_currency=settings.base_currency,
        retry_deadline_seconds=settings.quote_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_quote_normalizer() -> QuoteNormalizer:
    """Get the singleton QuoteNormalizer configured from settings."""
    return QuoteNormalizer(
        base_currency=settings.base_currency,
        minor_unit_currencies=settings.minor_unit_currencies,
        minor_unit_factor=settings.minor_unit_factor,
    )


@lru_cache(maxsize=1)
def get_snapshot_refresher() -> SnapshotRefresher:
    """
    Get the singleton SnapshotRefresher.

    Must be shared so concurrent requests for one user coalesce.
    """
    logger.debug("Initializing singleton SnapshotRefresher")
    return SnapshotRefresher()


@lru_cache(maxsize=1)
def get_trading_service() -> TradingService:
    return TradingService(exchange_suffix=settings.default_exchange_suffix)


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    return AccountService(starting_cash_balance=settings.starting_cash_balance)


# =============================================================================
# PER-REQUEST SERVICES
# =============================================================================

def build_portfolio_service(db: Session, quote_provider: QuoteProvider) -> PortfolioService:
    """Assemble a PortfolioService over one database session."""
    engine = ValuationEngine(
        normalizer=get_quote_normalizer(),
        missing_quote_policy=MissingQuotePolicy(settings.missing_quote_policy),
        exchange_suffix=settings.default_exchange_suffix,
    )
    return PortfolioService(
        ledger=LedgerRepository(db),
        accounts=AccountRepository(db),
        quote_provider=quote_provider,
        engine=engine,
        quote_timeout_seconds=settings.quote_timeout_seconds,
        base_currency=settings.base_currency,
    )


def get_portfolio_service(
    db: Annotated[Session, Depends(get_db)],
    quote_provider: Annotated[QuoteProvider, Depends(get_quote_provider)],
) -> PortfolioService:
    """Dependency that provides a PortfolioService bound to the request session."""
    return build_portfolio_service(db, quote_provider)


# =============================================================================
# BACKGROUND POLLING
# =============================================================================

def _compute_in_own_session(user_id: int) -> PortfolioSnapshot:
    """Poller compute: a fresh session per run."""
    with session_scope() as db:
        return build_portfolio_service(db, get_quote_provider()).compute_snapshot(user_id)


def _log_polled_snapshot(snapshot: PortfolioSnapshot) -> None:
    if snapshot.degraded:
        logger.warning(f"Scheduled snapshot for user {snapshot.user_id} is degraded")
    else:
        logger.debug(
            f"Scheduled snapshot for user {snapshot.user_id}: net worth {snapshot.net_worth}"
        )


@lru_cache(maxsize=1)
def get_snapshot_poller() -> SnapshotPoller:
    """
    Get the singleton SnapshotPoller.

    Started by the application lifespan when SNAPSHOT_POLLING_ENABLED is set.
    """
    return SnapshotPoller(
        refresher=get_snapshot_refresher(),
        compute_for=_compute_in_own_session,
        interval_seconds=settings.snapshot_poll_interval_seconds,
        on_snapshot=_log_polled_snapshot,
    )


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Clear all service caches.

    Useful for testing or when you need to reset state.
    """
    get_quote_provider.cache_clear()
    get_quote_normalizer.cache_clear()
    get_snapshot_refresher.cache_clear()
    get_trading_service.cache_clear()
    get_account_service.cache_clear()
    get_snapshot_poller.cache_clear()
    logger.info("Cleared all service singleton caches")
