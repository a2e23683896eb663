# backend/tradesim/services/market_data/yahoo.py
"""
Yahoo Finance quote provider implementation.

This module implements the QuoteProvider interface using the yfinance library.
Yahoo Finance is a free data source suitable for personal/educational use.

Key features:
- One yf.Tickers() call per chunk of symbols (batched, not per symbol)
- Error string mapping to the service exception hierarchy
- Retry mechanism inherited from base class
- Circuit breaker so a failing upstream is not hammered on every poll
- Ticker/company search restricted to listings on the configured exchange

Limitations:
- Rate limits (not officially documented, but exist)
- London prices are typically delayed 15-20 minutes
- Most London listings are quoted in pence ("GBp"); conversion to pounds
  is left to the QuoteNormalizer
"""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import yfinance as yf

from tradesim.services.circuit_breaker import CircuitBreaker
from tradesim.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    DEFAULT_BASE_CURRENCY,
    DEFAULT_EXCHANGE_SUFFIX,
)
from tradesim.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
    ValidationError,
)
from tradesim.services.market_data.base import (
    Quote,
    QuoteBatchResult,
    QuoteProvider,
    SearchResult,
)
from tradesim.services.symbols import canonicalize_symbol

logger = logging.getLogger(__name__)

CIRCUIT_BREAKER_NAME = "yahoo-finance"

# Instrument types offered to traders; indices, currencies and funds are dropped
SEARCHABLE_QUOTE_TYPES = frozenset({"EQUITY", "ETF"})

# Matches requested from Yahoo per search, before exchange filtering
SEARCH_FETCH_SIZE = 25


class YahooQuoteProvider(QuoteProvider):
    """
    Yahoo Finance implementation of QuoteProvider.

    Retry Behavior (inherited from QuoteProvider):
        - Retries on ProviderUnavailableError and RateLimitError
        - Does NOT retry on TickerNotFoundError (permanent failure)
        - Uses exponential backoff: 1s -> 2s -> 4s

    Circuit Breaker:
        Every chunk request runs inside the "yahoo-finance" breaker. Unknown
        tickers do not count as failures. While the breaker is open,
        get_quotes() raises CircuitBreakerOpen without calling Yahoo.

    Example:
        provider = YahooQuoteProvider()
        result = provider.get_quotes({"BARC.L", "HSBA.L"})
        result.successful["BARC.L"].price     # Decimal("215.75")
        result.successful["BARC.L"].currency  # "GBp"
    """

    def __init__(
            self,
            exchange_suffix: str = DEFAULT_EXCHANGE_SUFFIX,
            default_currency: str = DEFAULT_BASE_CURRENCY,
            circuit_breaker: CircuitBreaker | None = None,
            retry_deadline_seconds: float | None = None,
    ) -> None:
        """
        Initialize the Yahoo Finance provider.

        Args:
            exchange_suffix: Suffix appended to bare tickers
            default_currency: Currency assumed when Yahoo omits one
            circuit_breaker: Breaker to guard calls (a default one is created)
            retry_deadline_seconds: Stop retrying a chunk after this long, so
                a fetch the caller has given up on frees its thread
        """
        self._exchange_suffix = exchange_suffix
        self._default_currency = default_currency
        if retry_deadline_seconds is not None:
            self.RETRY_DEADLINE = retry_deadline_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name=CIRCUIT_BREAKER_NAME,
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
            excluded_exceptions=(TickerNotFoundError,),
        )
        logger.info(f"YahooQuoteProvider initialized (suffix={exchange_suffix})")

    @property
    def name(self) -> str:
        return "yahoo"

    def is_available(self) -> bool:
        return not self._circuit_breaker.is_open

    def _get_circuit_breaker(self) -> CircuitBreaker:
        """Expose the breaker for health reporting and tests."""
        return self._circuit_breaker

    # =========================================================================
    # QUOTE METHODS
    # =========================================================================

    def get_quotes(self, symbols: Iterable[str]) -> QuoteBatchResult:
        """
        Fetch current quotes for a set of symbols.

        Symbols are canonicalized and de-duplicated, then requested in
        chunks of MAX_BATCH_SIZE. A chunk whose request fails after retries
        marks all of its symbols failed; other chunks are unaffected.

        Raises:
            CircuitBreakerOpen: If the breaker is rejecting calls
        """
        result = QuoteBatchResult()

        canonical: list[str] = []
        for raw in symbols:
            try:
                symbol = canonicalize_symbol(raw, self._exchange_suffix)
            except ValidationError:
                logger.warning(f"Skipping invalid symbol in quote request: {raw!r}")
                continue
            if symbol not in canonical:
                canonical.append(symbol)

        if not canonical:
            return result

        for i in range(0, len(canonical), self.MAX_BATCH_SIZE):
            chunk = canonical[i:i + self.MAX_BATCH_SIZE]
            try:
                with self._circuit_breaker:
                    chunk_result = self._execute_with_retry(self._fetch_chunk, chunk)
            except (ProviderUnavailableError, RateLimitError) as e:
                logger.error(f"Quote fetch failed for {len(chunk)} symbols: {e}")
                for symbol in chunk:
                    result.failed[symbol] = e
                continue

            result.successful.update(chunk_result.successful)
            result.failed.update(chunk_result.failed)

        logger.debug(
            f"Fetched quotes: {result.success_count} resolved, "
            f"{result.failure_count} failed"
        )
        return result

    def _fetch_chunk(self, symbols: list[str]) -> QuoteBatchResult:
        """Internal chunk fetch (called by retry wrapper)."""
        result = QuoteBatchResult()

        try:
            yf_tickers = yf.Tickers(" ".join(symbols))
        except Exception as e:
            raise self._map_error(e) from e

        for symbol in symbols:
            yf_ticker = yf_tickers.tickers.get(symbol)
            if yf_ticker is None:
                result.failed[symbol] = TickerNotFoundError(symbol=symbol, provider=self.name)
                continue

            try:
                info = yf_ticker.info
            except Exception as e:
                error = self._map_error(e, symbol)
                if not isinstance(error, TickerNotFoundError):
                    # Upstream trouble rather than a bad symbol: retry the chunk
                    raise error from e
                result.failed[symbol] = error
                continue

            quote = self._map_to_quote(symbol, info)
            if quote is None:
                result.failed[symbol] = TickerNotFoundError(symbol=symbol, provider=self.name)
            else:
                result.successful[symbol] = quote

        return result

    # =========================================================================
    # SEARCH
    # =========================================================================

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """
        Search Yahoo for equities and ETFs listed on the configured exchange.

        Raises:
            ValidationError: If the query is blank
            CircuitBreakerOpen: If the breaker is rejecting calls
            ProviderUnavailableError, RateLimitError: After retries are exhausted
        """
        query = query.strip()
        if not query:
            raise ValidationError("Search query is required", field="q")

        with self._circuit_breaker:
            matches = self._execute_with_retry(self._fetch_search, query)

        results: list[SearchResult] = []
        for match in matches:
            result = self._map_to_search_result(match)
            if result is not None:
                results.append(result)
            if len(results) >= limit:
                break

        logger.debug(f"Search '{query}': {len(results)} of {len(matches)} matches kept")
        return results

    def _fetch_search(self, query: str) -> list[dict]:
        """Internal search call (called by retry wrapper)."""
        try:
            search = yf.Search(query, max_results=SEARCH_FETCH_SIZE, news_count=0)
            return list(search.quotes or [])
        except Exception as e:
            raise self._map_error(e) from e

    def _map_to_search_result(self, match: dict) -> SearchResult | None:
        """Map one Yahoo search hit, or None when it is not a tradable local listing."""
        symbol = (match.get("symbol") or "").upper()
        if not symbol.endswith(self._exchange_suffix):
            return None
        if match.get("quoteType") not in SEARCHABLE_QUOTE_TYPES:
            return None

        return SearchResult(
            symbol=symbol,
            name=match.get("shortname") or match.get("longname"),
            exchange=match.get("exchDisp") or match.get("exchange"),
            quote_type=match.get("quoteType"),
            currency=match.get("currency"),
        )

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _map_error(self, error: Exception, symbol: str | None = None) -> Exception:
        """Translate a yfinance/requests error into a service exception."""
        error_str = str(error).lower()
        if symbol and ("not found" in error_str or "no data" in error_str or "404" in error_str):
            return TickerNotFoundError(symbol=symbol, provider=self.name)
        if "rate limit" in error_str or "too many requests" in error_str:
            return RateLimitError(provider=self.name)
        return ProviderUnavailableError(provider=self.name, reason=str(error))

    def _map_to_quote(self, symbol: str, info: dict | None) -> Quote | None:
        """
        Map a Yahoo Finance info dict to a Quote.

        Yahoo returns an info dict even for invalid tickers, but it lacks
        meaningful data. Returns None when neither a price nor a name is present.
        """
        if not info:
            return None

        price = self._to_decimal(info.get("regularMarketPrice"))
        if price is None:
            price = self._to_decimal(info.get("currentPrice"))
        name = info.get("shortName") or info.get("longName")

        if price is None and not name:
            return None

        # Currency is kept verbatim: "GBp" (pence) and "GBP" differ only by case
        currency = info.get("currency") or self._default_currency

        return Quote(
            symbol=symbol,
            price=price,
            currency=currency,
            as_of=self._to_datetime(info.get("regularMarketTime")),
            name=name,
        )

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None or isinstance(value, bool):
            return None
        try:
            if math.isnan(float(value)) or math.isinf(float(value)):
                return None
            return Decimal(str(value))
        except (TypeError, ValueError, InvalidOperation):
            return None

    @staticmethod
    def _to_datetime(value: Any) -> datetime | None:
        """Convert a Yahoo epoch-seconds timestamp to an aware datetime."""
        if value is None:
            return None
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
