# backend/tests/services/test_portfolio_service.py
"""
Tests for PortfolioService.compute_snapshot().

Collaborators are replaced with in-memory fakes and mocks so each failure
mode (ledger down, provider down, provider slow, circuit open) can be
exercised without a database or network.
"""

import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from tradesim.services.circuit_breaker import CircuitBreakerOpen
from tradesim.services.constants import MissingQuotePolicy
from tradesim.services.exceptions import (
    AccountUnavailableError,
    LedgerUnavailableError,
    ProviderUnavailableError,
    RateLimitError,
    UserNotFoundError,
)
from tradesim.services.valuation import PortfolioService, QuoteFetchPool, ValuationEngine
from tradesim.services.valuation.types import LedgerEntry
from tests.conftest import MockQuoteProvider


# =============================================================================
# FAKES
# =============================================================================

class FakeLedger:
    def __init__(self, entries=None, error: Exception | None = None):
        self.entries = list(entries or [])
        self.error = error

    def get_transactions(self, user_id: int):
        if self.error is not None:
            raise self.error
        return self.entries


class FakeAccounts:
    def __init__(self, balance="1000.00", error: Exception | None = None):
        self.balance = Decimal(balance)
        self.error = error

    def get_cash_balance(self, user_id: int) -> Decimal:
        if self.error is not None:
            raise self.error
        return self.balance


def entry(symbol, kind, quantity, price, id=None) -> LedgerEntry:
    return LedgerEntry(symbol=symbol, kind=kind, quantity=quantity, price=Decimal(price), id=id)


LEDGER = [
    entry("BARC.L", "BUY", 10, "2.00", id=1),
    entry("HSBA.L", "BUY", 2, "6.00", id=2),
]


def make_service(
        provider,
        ledger=None,
        accounts=None,
        policy=MissingQuotePolicy.PESSIMISTIC,
        timeout: float = 5.0,
        pool: QuoteFetchPool | None = None,
) -> PortfolioService:
    return PortfolioService(
        ledger=ledger or FakeLedger(LEDGER),
        accounts=accounts or FakeAccounts(),
        quote_provider=provider,
        engine=ValuationEngine(missing_quote_policy=policy),
        quote_timeout_seconds=timeout,
        fetch_pool=pool,
    )


# =============================================================================
# HAPPY PATH
# =============================================================================

class TestComputeSnapshot:
    """Tests for a fully priced snapshot."""

    def test_full_snapshot(self, mock_provider: MockQuoteProvider):
        mock_provider.add_quote("BARC.L", "250", name="Barclays")
        mock_provider.add_quote("HSBA.L", "7.00", currency="GBP")

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.user_id == 1
        assert [h.symbol for h in snapshot.holdings] == ["BARC.L", "HSBA.L"]
        assert snapshot.total_market_value == Decimal("39.00")
        assert snapshot.total_cost == Decimal("32.00")
        assert snapshot.total_profit_loss == Decimal("7.00")
        assert snapshot.total_return_percent == Decimal("21.88")
        assert snapshot.cash == Decimal("1000.00")
        assert snapshot.net_worth == Decimal("1039.00")
        assert snapshot.degraded is False
        assert snapshot.base_currency == "GBP"
        assert snapshot.warnings == ()

    def test_one_batched_call_for_all_symbols(self, mock_provider):
        mock_provider.add_quote("BARC.L", "250")
        mock_provider.add_quote("HSBA.L", "700")

        make_service(mock_provider).compute_snapshot(1)

        assert mock_provider.call_count == 1
        assert mock_provider.calls[0] == ["BARC.L", "HSBA.L"]

    def test_empty_ledger_skips_provider(self, mock_provider):
        snapshot = make_service(mock_provider, ledger=FakeLedger([])).compute_snapshot(1)

        assert snapshot.is_empty
        assert snapshot.degraded is False
        assert snapshot.net_worth == Decimal("1000.00")
        assert mock_provider.call_count == 0

    def test_fully_sold_positions_skip_provider(self, mock_provider):
        ledger = FakeLedger([
            entry("BARC.L", "BUY", 10, "2.00"),
            entry("BARC.L", "SELL", 10, "3.00"),
        ])

        snapshot = make_service(mock_provider, ledger=ledger).compute_snapshot(1)

        assert snapshot.holdings == ()
        assert mock_provider.call_count == 0

    def test_unknown_symbol_is_not_degraded(self, mock_provider):
        """A missing quote for one symbol is a per-holding gap, not an outage."""
        mock_provider.add_quote("BARC.L", "250")

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is False
        hsba = snapshot.holdings[1]
        assert hsba.no_quote is True
        assert hsba.market_value == Decimal("0.00")
        assert "1 holding(s) valued without a quote (pessimistic policy)" in snapshot.warnings

    def test_skipped_records_reported(self, mock_provider):
        mock_provider.add_quote("BARC.L", "200")
        ledger = FakeLedger([
            entry("BARC.L", "BUY", 10, "2.00", id=1),
            LedgerEntry(symbol="BARC.L", kind="BUY", quantity=0, price=Decimal("1"), id=2),
        ])

        snapshot = make_service(mock_provider, ledger=ledger).compute_snapshot(1)

        assert snapshot.skipped_records == 1
        assert snapshot.holdings[0].shares == 10

    def test_to_dict_uses_camel_case(self, mock_provider):
        mock_provider.add_quote("BARC.L", "250")
        mock_provider.add_quote("HSBA.L", "700")

        data = make_service(mock_provider).compute_snapshot(1).to_dict()

        assert data["userId"] == 1
        assert data["netWorth"] == Decimal("1039.00")
        assert data["holdings"][0]["averageCost"] == Decimal("2.00")
        assert data["diagnostics"] == {"skippedRecords": 0, "warnings": []}


# =============================================================================
# DEGRADED SNAPSHOTS
# =============================================================================

class TestDegradedSnapshots:
    """Quote provider trouble yields a degraded snapshot, never an error."""

    def test_provider_raises(self, mock_provider):
        mock_provider.fail_with(ProviderUnavailableError("mock", "down"))

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is True
        assert all(h.no_quote for h in snapshot.holdings)
        assert snapshot.total_market_value == Decimal("0.00")
        assert snapshot.net_worth == Decimal("1000.00")

    def test_circuit_open(self, mock_provider):
        mock_provider.fail_with(CircuitBreakerOpen("yahoo-finance", 30.0))

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is True
        assert any("temporarily unavailable" in w for w in snapshot.warnings)

    def test_all_symbols_unavailable(self, mock_provider):
        error = ProviderUnavailableError("mock", "timeout")
        mock_provider.add_error("BARC.L", error)
        mock_provider.add_error("HSBA.L", error)

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is True

    def test_partial_outage_is_degraded(self, mock_provider):
        """Symbols lost to an outage are not 'no data', even if others resolved."""
        mock_provider.add_quote("BARC.L", "250")
        mock_provider.add_error("HSBA.L", ProviderUnavailableError("mock", "chunk timed out"))

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is True
        barc, hsba = snapshot.holdings
        assert barc.market_value == Decimal("25.00")
        assert barc.no_quote is False
        assert hsba.no_quote is True
        assert "Quote provider mock unavailable for 1 symbol(s): HSBA.L" in snapshot.warnings

    def test_rate_limited_symbol_is_degraded(self, mock_provider):
        mock_provider.add_quote("HSBA.L", "700")
        mock_provider.add_error("BARC.L", RateLimitError("mock", retry_after=30))

        snapshot = make_service(mock_provider).compute_snapshot(1)

        assert snapshot.degraded is True
        assert snapshot.holdings[1].market_value == Decimal("14.00")

    def test_optimistic_policy_carries_cost(self, mock_provider):
        mock_provider.fail_with(ProviderUnavailableError("mock", "down"))

        snapshot = make_service(
            mock_provider, policy=MissingQuotePolicy.OPTIMISTIC
        ).compute_snapshot(1)

        assert snapshot.degraded is True
        assert snapshot.total_market_value == Decimal("32.00")
        assert snapshot.total_profit_loss == Decimal("0.00")
        assert snapshot.missing_quote_policy == "optimistic"

    def test_slow_provider_times_out(self):
        release = threading.Event()
        provider = MagicMock()
        provider.name = "slow"
        provider.get_quotes.side_effect = lambda symbols: release.wait(5)

        try:
            snapshot = make_service(provider, timeout=0.05).compute_snapshot(1)
        finally:
            release.set()

        assert snapshot.degraded is True
        assert any("timed out" in w for w in snapshot.warnings)


class TestQuoteFetchPool:
    """Overdue fetches must not starve later snapshots."""

    def test_hung_workers_do_not_block_healthy_fetch(self, mock_provider):
        release = threading.Event()
        hanging = MagicMock()
        hanging.name = "hanging"
        hanging.get_quotes.side_effect = lambda symbols: release.wait(5)
        mock_provider.add_quote("BARC.L", "250")
        mock_provider.add_quote("HSBA.L", "700")
        pool = QuoteFetchPool(max_workers=2)

        try:
            for _ in range(2):
                stalled = make_service(hanging, timeout=0.05, pool=pool).compute_snapshot(1)
                assert stalled.degraded is True

            snapshot = make_service(mock_provider, timeout=1.0, pool=pool).compute_snapshot(1)
        finally:
            release.set()

        assert snapshot.degraded is False
        assert snapshot.total_market_value == Decimal("39.00")
        assert pool.replacements == 1


# =============================================================================
# FATAL FAILURES
# =============================================================================

class TestSnapshotFailures:
    """Ledger and account failures propagate; no partial snapshot."""

    def test_ledger_failure(self, mock_provider):
        ledger = FakeLedger(error=RuntimeError("connection refused"))

        with pytest.raises(LedgerUnavailableError) as exc_info:
            make_service(mock_provider, ledger=ledger).compute_snapshot(7)

        assert exc_info.value.user_id == 7
        assert mock_provider.call_count == 0

    def test_ledger_service_error_passes_through(self, mock_provider):
        ledger = FakeLedger(error=LedgerUnavailableError(7, "down"))

        with pytest.raises(LedgerUnavailableError):
            make_service(mock_provider, ledger=ledger).compute_snapshot(7)

    def test_account_failure(self, mock_provider):
        mock_provider.add_quote("BARC.L", "250")
        accounts = FakeAccounts(error=RuntimeError("timeout"))

        with pytest.raises(AccountUnavailableError):
            make_service(mock_provider, accounts=accounts).compute_snapshot(1)

    def test_unknown_user(self, mock_provider):
        accounts = FakeAccounts(error=UserNotFoundError(99))

        with pytest.raises(UserNotFoundError):
            make_service(mock_provider, ledger=FakeLedger([]), accounts=accounts).compute_snapshot(99)
