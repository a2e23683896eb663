# backend/tradesim/services/market_data/base.py
"""
Abstract interface for quote providers.

This module defines the contract the portfolio core relies on for live or
delayed prices: one batched call for a set of symbols, tolerating partial
results. Using an abstract base class allows for:
- Swapping Yahoo Finance for another source
- Mock implementations for testing
- Consistent retry behavior across all providers

Quotes are returned RAW: price in whatever unit the provider reports
(pence for most London listings) together with the currency code. The
QuoteNormalizer converts them to the base currency.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TypeVar, Callable, Any, Iterable

from tenacity import (
    retry,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from tradesim.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """
    Raw quote as reported by a provider.

    Attributes:
        symbol: Canonical symbol the quote belongs to (e.g., "BARC.L")
        price: Last price in provider units; None when the provider had no price
        currency: Provider currency code (may be a minor unit such as "GBp")
        as_of: Provider timestamp of the price (advisory only, may be stale)
        name: Display name of the instrument, if provided
    """

    symbol: str
    price: Decimal | None
    currency: str
    as_of: datetime | None = None
    name: str | None = None


@dataclass(frozen=True)
class SearchResult:
    """
    One instrument matching a search query.

    Attributes:
        symbol: Provider symbol, already carrying its exchange suffix
        name: Display name
        exchange: Exchange display name (e.g., "LSE")
        quote_type: Instrument type as the provider reports it ("EQUITY", "ETF")
        currency: Trading currency when the provider includes it
    """

    symbol: str
    name: str | None
    exchange: str | None = None
    quote_type: str | None = None
    currency: str | None = None


@dataclass
class QuoteBatchResult:
    """
    Result of a batched quote fetch.

    Tracks which symbols resolved and which failed, allowing partial success.

    Attributes:
        successful: Canonical symbol -> Quote
        failed: Canonical symbol -> exception explaining the miss
    """

    successful: dict[str, Quote] = field(default_factory=dict)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def all_successful(self) -> bool:
        return self.failure_count == 0

    @property
    def unavailable_symbols(self) -> list[str]:
        """
        Symbols that failed because the provider was unreachable or throttling,
        as opposed to symbols it does not know.
        """
        return sorted(
            symbol for symbol, error in self.failed.items()
            if isinstance(error, (ProviderUnavailableError, RateLimitError))
        )

    @property
    def provider_unavailable(self) -> bool:
        """True when nothing resolved and at least one symbol hit an outage."""
        return not self.successful and bool(self.unavailable_symbols)

    def first_outage(self) -> Exception | None:
        """The first outage error in the batch, skipping unknown-symbol misses."""
        for symbol in self.unavailable_symbols:
            return self.failed[symbol]
        return None


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class QuoteProvider(ABC):
    """
    Abstract base class for quote providers.

    Retry Behavior:
        `_execute_with_retry` implements exponential backoff. Subclasses can
        tune it via class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)
        - RETRY_DEADLINE: Seconds after which no further attempt is started
          (default: None, attempts only)

    Retryable Exceptions:
        - ProviderUnavailableError: Network issues, timeouts, server errors
        - RateLimitError: API rate limit exceeded

    Non-Retryable Exceptions:
        - TickerNotFoundError: Permanent failure (symbol doesn't exist)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1
    RETRY_DEADLINE: float | None = None

    # Symbols per upstream request
    MAX_BATCH_SIZE: int = 50

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and errors (e.g., "yahoo")."""
        pass

    @abstractmethod
    def get_quotes(self, symbols: Iterable[str]) -> QuoteBatchResult:
        """
        Fetch current quotes for a set of symbols in one logical call.

        Must not fail the whole call because some symbols are unknown; those
        go to QuoteBatchResult.failed. May raise when the provider as a whole
        is unreachable.

        Args:
            symbols: Canonical symbols (e.g., {"BARC.L", "HSBA.L"})

        Returns:
            QuoteBatchResult keyed by canonical symbol
        """
        pass

    @abstractmethod
    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """
        Find listed instruments by ticker or company name.

        Args:
            query: Free text, e.g. "barclays" or "BARC"
            limit: Maximum number of results

        Returns:
            Matches in the provider's relevance order (may be empty)

        Raises:
            ValidationError: If the query is blank
            ProviderUnavailableError: If the provider cannot be reached
        """
        pass

    def is_available(self) -> bool:
        """
        Check if the provider is currently available.

        Default implementation returns True. Subclasses can override.
        """
        return True

    # =========================================================================
    # RETRY HELPER METHOD
    # =========================================================================

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic for transient failures.

        Retries ProviderUnavailableError and RateLimitError with exponential
        backoff; anything else propagates immediately.

        Raises:
            The last exception if all retries fail
        """
        stop = stop_after_attempt(self.MAX_RETRY_ATTEMPTS)
        if self.RETRY_DEADLINE is not None:
            stop = stop | stop_after_delay(self.RETRY_DEADLINE)

        @retry(
            stop=stop,
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()
