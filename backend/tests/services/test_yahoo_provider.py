# backend/tests/services/test_yahoo_provider.py
"""
Tests for the YahooQuoteProvider.

This module tests:
- Info dict to Quote mapping
- Error handling and classification
- Batched fetching, chunking and partial results
- Circuit breaker integration
- Ticker search and exchange filtering

Note: These tests mock the yfinance library to avoid actual API calls.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, PropertyMock, patch

import pytest

from tradesim.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from tradesim.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
    ValidationError,
)
from tradesim.services.market_data.yahoo import YahooQuoteProvider


def fast_provider(**kwargs) -> YahooQuoteProvider:
    """Provider with retry waits disabled."""
    provider = YahooQuoteProvider(**kwargs)
    provider.RETRY_MIN_WAIT = 0
    provider.RETRY_MAX_WAIT = 0
    return provider


def ticker_with_info(info: dict) -> MagicMock:
    return MagicMock(info=info)


def ticker_raising(error: Exception) -> MagicMock:
    ticker = MagicMock()
    type(ticker).info = PropertyMock(side_effect=error)
    return ticker


BARC_INFO = {
    "shortName": "BARCLAYS PLC",
    "currency": "GBp",
    "regularMarketPrice": 215.75,
    "regularMarketTime": 1767371400,
}


# =============================================================================
# PROVIDER INITIALIZATION
# =============================================================================

class TestYahooProviderInit:
    """Tests for provider initialization."""

    def test_provider_name(self):
        assert YahooQuoteProvider().name == "yahoo"

    def test_default_circuit_breaker(self):
        breaker = YahooQuoteProvider()._get_circuit_breaker()

        assert breaker.name == "yahoo-finance"
        assert TickerNotFoundError in breaker.excluded_exceptions

    def test_available_until_breaker_opens(self):
        provider = YahooQuoteProvider()
        assert provider.is_available() is True

        provider._get_circuit_breaker().force_open()
        assert provider.is_available() is False


# =============================================================================
# QUOTE MAPPING
# =============================================================================

class TestMapToQuote:
    """Tests for _map_to_quote."""

    def test_map_complete_data(self):
        quote = YahooQuoteProvider()._map_to_quote("BARC.L", BARC_INFO)

        assert quote.symbol == "BARC.L"
        assert quote.price == Decimal("215.75")
        assert quote.currency == "GBp"
        assert quote.name == "BARCLAYS PLC"
        assert quote.as_of == datetime.fromtimestamp(1767371400, tz=timezone.utc)

    def test_current_price_fallback(self):
        quote = YahooQuoteProvider()._map_to_quote(
            "BARC.L", {"currentPrice": 210, "longName": "Barclays PLC"}
        )

        assert quote.price == Decimal("210")
        assert quote.name == "Barclays PLC"

    def test_missing_currency_defaults(self):
        quote = YahooQuoteProvider(default_currency="GBP")._map_to_quote(
            "BARC.L", {"regularMarketPrice": 2.5}
        )

        assert quote.currency == "GBP"

    def test_name_without_price(self):
        quote = YahooQuoteProvider()._map_to_quote("BARC.L", {"shortName": "Barclays"})

        assert quote is not None
        assert quote.price is None

    def test_nan_price_is_none(self):
        quote = YahooQuoteProvider()._map_to_quote(
            "BARC.L", {"regularMarketPrice": float("nan"), "shortName": "Barclays"}
        )

        assert quote.price is None

    @pytest.mark.parametrize("info", [None, {}, {"quoteType": "NONE"}])
    def test_no_meaningful_data(self, info):
        assert YahooQuoteProvider()._map_to_quote("XXXX.L", info) is None


class TestErrorMapping:
    """Tests for _map_error."""

    def test_rate_limit(self):
        error = YahooQuoteProvider()._map_error(Exception("Too Many Requests"))
        assert isinstance(error, RateLimitError)

    def test_not_found_with_symbol(self):
        error = YahooQuoteProvider()._map_error(Exception("404 Not Found"), "XXXX.L")
        assert isinstance(error, TickerNotFoundError)
        assert error.symbol == "XXXX.L"

    def test_other_errors_unavailable(self):
        error = YahooQuoteProvider()._map_error(Exception("Connection reset"))
        assert isinstance(error, ProviderUnavailableError)
        assert error.provider == "yahoo"


# =============================================================================
# BATCH FETCH TESTS (with mocked yfinance)
# =============================================================================

class TestGetQuotes:
    """Tests for get_quotes with mocked yfinance."""

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_all_success_one_call(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {
            "BARC.L": ticker_with_info(BARC_INFO),
            "HSBA.L": ticker_with_info({"shortName": "HSBC", "currency": "GBp", "regularMarketPrice": 645.2}),
        }
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["barc", "HSBA.L"])

        assert result.success_count == 2
        assert result.all_successful
        mock_yf.Tickers.assert_called_once_with("BARC.L HSBA.L")

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_partial_success(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {
            "BARC.L": ticker_with_info(BARC_INFO),
            "XXXX.L": ticker_with_info({}),
        }
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["BARC.L", "XXXX.L"])

        assert "BARC.L" in result.successful
        assert isinstance(result.failed["XXXX.L"], TickerNotFoundError)
        assert result.provider_unavailable is False

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_missing_ticker_object(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {}
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["BARC.L"])

        assert isinstance(result.failed["BARC.L"], TickerNotFoundError)

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_not_found_info_error(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {
            "XXXX.L": ticker_raising(Exception("404 Client Error: Not Found")),
        }
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["XXXX.L"])

        assert isinstance(result.failed["XXXX.L"], TickerNotFoundError)

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_empty_and_invalid_symbols(self, mock_yf):
        result = fast_provider().get_quotes(["", "  "])

        assert result.success_count == 0
        assert result.failure_count == 0
        mock_yf.Tickers.assert_not_called()

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_deduplicates(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {"BARC.L": ticker_with_info(BARC_INFO)}
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["barc", "BARC.L", " barc.l "])

        assert result.success_count == 1
        mock_yf.Tickers.assert_called_once_with("BARC.L")

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_chunks_large_requests(self, mock_yf):
        provider = fast_provider()
        provider.MAX_BATCH_SIZE = 2
        mock_tickers = MagicMock()
        mock_tickers.tickers = {}
        mock_yf.Tickers.return_value = mock_tickers

        provider.get_quotes(["A", "B", "C"])

        assert mock_yf.Tickers.call_count == 2

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_network_error_retried_then_marked_unavailable(self, mock_yf):
        mock_yf.Tickers.side_effect = Exception("Connection timeout")

        result = fast_provider().get_quotes(["BARC.L", "HSBA.L"])

        assert mock_yf.Tickers.call_count == 3
        assert result.success_count == 0
        assert isinstance(result.failed["BARC.L"], ProviderUnavailableError)
        assert result.provider_unavailable is True

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_rate_limit_marks_chunk_failed(self, mock_yf):
        mock_yf.Tickers.side_effect = Exception("Too many requests")

        result = fast_provider().get_quotes(["BARC.L"])

        assert isinstance(result.failed["BARC.L"], RateLimitError)
        assert result.provider_unavailable is True

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_transient_info_error_recovers_on_retry(self, mock_yf):
        flaky = MagicMock()
        type(flaky).info = PropertyMock(side_effect=[Exception("Read timed out"), BARC_INFO])
        mock_tickers = MagicMock()
        mock_tickers.tickers = {"BARC.L": flaky}
        mock_yf.Tickers.return_value = mock_tickers

        result = fast_provider().get_quotes(["BARC.L"])

        assert result.successful["BARC.L"].price == Decimal("215.75")

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_retry_deadline_stops_retrying(self, mock_yf):
        mock_yf.Tickers.side_effect = Exception("Connection timeout")

        result = fast_provider(retry_deadline_seconds=0).get_quotes(["BARC.L"])

        assert mock_yf.Tickers.call_count == 1
        assert isinstance(result.failed["BARC.L"], ProviderUnavailableError)


class TestCircuitBreakerIntegration:
    """Provider failures trip the breaker; an open breaker rejects calls."""

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_open_breaker_raises_without_calling_yahoo(self, mock_yf):
        provider = fast_provider()
        provider._get_circuit_breaker().force_open()

        with pytest.raises(CircuitBreakerOpen):
            provider.get_quotes(["BARC.L"])

        mock_yf.Tickers.assert_not_called()

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_repeated_failures_open_breaker(self, mock_yf):
        mock_yf.Tickers.side_effect = Exception("503 Service Unavailable")
        breaker = CircuitBreaker(name="test-yahoo", failure_threshold=2, recovery_timeout=60)
        provider = fast_provider(circuit_breaker=breaker)

        provider.get_quotes(["BARC.L"])
        provider.get_quotes(["BARC.L"])

        with pytest.raises(CircuitBreakerOpen):
            provider.get_quotes(["BARC.L"])

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_unknown_tickers_do_not_trip_breaker(self, mock_yf):
        mock_tickers = MagicMock()
        mock_tickers.tickers = {}
        mock_yf.Tickers.return_value = mock_tickers
        breaker = CircuitBreaker(name="test-yahoo", failure_threshold=1)
        provider = fast_provider(circuit_breaker=breaker)

        for _ in range(3):
            provider.get_quotes(["XXXX.L"])

        assert breaker.is_closed


# =============================================================================
# SEARCH TESTS (with mocked yfinance)
# =============================================================================

SEARCH_HITS = [
    {"symbol": "BARC.L", "shortname": "BARCLAYS PLC", "exchDisp": "London",
     "quoteType": "EQUITY", "exchange": "LSE"},
    {"symbol": "BCS", "shortname": "Barclays PLC", "exchDisp": "NYSE",
     "quoteType": "EQUITY", "exchange": "NYQ"},
    {"symbol": "^FTSE", "shortname": "FTSE 100", "quoteType": "INDEX"},
    {"symbol": "BRCL.L", "longname": "Barclays Bond Tracker", "exchange": "LSE",
     "quoteType": "ETF"},
    {"symbol": "BARCF.L", "shortname": "Barclays Fund", "quoteType": "MUTUALFUND"},
]


class TestSearch:
    """Tests for search with mocked yfinance."""

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_keeps_local_equities_and_etfs(self, mock_yf):
        mock_yf.Search.return_value = MagicMock(quotes=SEARCH_HITS)

        results = fast_provider().search("barclays")

        assert [r.symbol for r in results] == ["BARC.L", "BRCL.L"]
        barc, tracker = results
        assert barc.name == "BARCLAYS PLC"
        assert barc.exchange == "London"
        assert barc.quote_type == "EQUITY"
        assert tracker.name == "Barclays Bond Tracker"
        assert tracker.exchange == "LSE"
        mock_yf.Search.assert_called_once_with("barclays", max_results=25, news_count=0)

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_limit(self, mock_yf):
        mock_yf.Search.return_value = MagicMock(quotes=SEARCH_HITS)

        results = fast_provider().search("barclays", limit=1)

        assert [r.symbol for r in results] == ["BARC.L"]

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_no_results(self, mock_yf):
        mock_yf.Search.return_value = MagicMock(quotes=[])

        assert fast_provider().search("nothing") == []

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_blank_query(self, mock_yf):
        with pytest.raises(ValidationError):
            fast_provider().search("   ")

        mock_yf.Search.assert_not_called()

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_network_error_retried(self, mock_yf):
        mock_yf.Search.side_effect = Exception("Connection reset")

        with pytest.raises(ProviderUnavailableError):
            fast_provider().search("barclays")

        assert mock_yf.Search.call_count == 3

    @patch("tradesim.services.market_data.yahoo.yf")
    def test_open_breaker_rejects_search(self, mock_yf):
        provider = fast_provider()
        provider._get_circuit_breaker().force_open()

        with pytest.raises(CircuitBreakerOpen):
            provider.search("barclays")

        mock_yf.Search.assert_not_called()
