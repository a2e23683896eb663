# backend/tradesim/services/valuation/service.py
"""
Portfolio Service - Orchestrator for portfolio snapshots.

compute_snapshot() is the single entry point:
    1. Fetch the user's ledger (oldest first)
    2. Aggregate into holdings
    3. Fetch quotes for the held symbols in ONE batched call, bounded by a timeout
    4. Value holdings against normalized quotes
    5. Fetch the cash balance
    6. Assemble the PortfolioSnapshot

Design Principles:
- Dependency Injection: ledger, account and quote collaborators via constructor
- No HTTP Knowledge: Raises domain exceptions, not HTTPException
- No hidden state: every snapshot re-reads ledger, quotes and cash
- Composable: Uses HoldingsAggregator and ValuationEngine for the maths

Failure semantics:
    - Ledger failure        -> LedgerUnavailableError, no snapshot
    - Cash read failure     -> AccountUnavailableError, no snapshot
    - Quote outage          -> snapshot returned with degraded=True
      (provider error, timeout, open circuit, or any symbol unavailable)

Usage:
    service = PortfolioService(
        ledger=LedgerRepository(db),
        accounts=AccountRepository(db),
        quote_provider=YahooQuoteProvider(),
    )
    snapshot = service.compute_snapshot(user_id=1)
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable

from tradesim.services.circuit_breaker import CircuitBreakerOpen
from tradesim.services.constants import (
    CURRENCY_PRECISION,
    DEFAULT_BASE_CURRENCY,
    DEFAULT_QUOTE_TIMEOUT_SECONDS,
    QUOTE_FETCH_MAX_WORKERS,
)
from tradesim.services.exceptions import (
    AccountUnavailableError,
    LedgerUnavailableError,
    ServiceError,
)
from tradesim.services.market_data.base import Quote
from tradesim.services.valuation.calculators import HoldingsAggregator, ValuationEngine
from tradesim.services.valuation.types import PortfolioSnapshot

if TYPE_CHECKING:
    from tradesim.services.protocols import (
        CashBalanceReader,
        LedgerReader,
        QuoteProviderProtocol,
    )

logger = logging.getLogger(__name__)


class QuoteFetchPool:
    """
    Worker threads for bounded quote fetches.

    A fetch that misses its deadline cannot be interrupted; it holds its
    worker until the provider returns. The pool tracks those overdue fetches
    and, once every worker is held by one, retires the executor and starts a
    fresh one, so no caller waits on a hung upstream past its own timeout.
    """

    def __init__(self, max_workers: int = QUOTE_FETCH_MAX_WORKERS) -> None:
        self._max_workers = max_workers
        # Reentrant: a done-callback can fire inside abandon()
        self._lock = threading.RLock()
        self._executor = self._new_executor()
        self._overdue: set[Future] = set()
        self.replacements = 0

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="quote-fetch",
        )

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        with self._lock:
            return self._executor.submit(fn, *args)

    def abandon(self, future: Future) -> None:
        """Give up on a fetch that missed its deadline."""
        if future.cancel():
            return

        with self._lock:
            self._overdue.add(future)
            future.add_done_callback(self._overdue_finished)
            if len(self._overdue) < self._max_workers:
                return

            logger.warning(
                f"All {self._max_workers} quote fetch workers are held by overdue "
                f"calls; starting a fresh pool"
            )
            self._executor.shutdown(wait=False)
            self._executor = self._new_executor()
            self._overdue = set()
            self.replacements += 1

    def _overdue_finished(self, future: Future) -> None:
        with self._lock:
            self._overdue.discard(future)


# Shared by every PortfolioService instance; services are built per request
_quote_pool = QuoteFetchPool()


class PortfolioService:
    """
    Computes portfolio snapshots from the ledger, quotes and cash balance.

    Attributes:
        _ledger: Ledger read collaborator
        _accounts: Cash balance collaborator
        _quote_provider: Batched quote fetch collaborator
        _aggregator: Ledger -> holdings
        _engine: Holdings + quotes -> valuation
        _quote_timeout: Seconds to wait for the quote fetch
        _fetch_pool: Threads the quote fetch runs on
    """

    def __init__(
            self,
            ledger: LedgerReader,
            accounts: CashBalanceReader,
            quote_provider: QuoteProviderProtocol,
            aggregator: HoldingsAggregator | None = None,
            engine: ValuationEngine | None = None,
            quote_timeout_seconds: float = DEFAULT_QUOTE_TIMEOUT_SECONDS,
            base_currency: str = DEFAULT_BASE_CURRENCY,
            fetch_pool: QuoteFetchPool | None = None,
    ) -> None:
        self._ledger = ledger
        self._accounts = accounts
        self._quote_provider = quote_provider
        self._aggregator = aggregator or HoldingsAggregator()
        self._engine = engine or ValuationEngine()
        self._quote_timeout = quote_timeout_seconds
        self._base_currency = base_currency
        self._fetch_pool = fetch_pool or _quote_pool

        logger.debug("PortfolioService initialized")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def compute_snapshot(self, user_id: int) -> PortfolioSnapshot:
        """
        Compute a complete portfolio snapshot for a user.

        Args:
            user_id: Account to value

        Returns:
            PortfolioSnapshot (degraded=True when quotes were unavailable)

        Raises:
            LedgerUnavailableError: If the ledger cannot be read
            AccountUnavailableError: If the cash balance cannot be read
            UserNotFoundError: If the account does not exist
        """
        logger.info(f"Computing portfolio snapshot for user {user_id}")

        # Step 1: Ledger
        transactions = self._fetch_ledger(user_id)

        # Step 2: Holdings
        holdings_result = self._aggregator.aggregate(transactions)
        warnings = list(holdings_result.warnings)

        # Step 3: Quotes (skipped entirely when nothing is held)
        quotes: dict[str, Quote] = {}
        degraded = False
        if holdings_result.holdings:
            quotes, degraded, quote_warnings = self._fetch_quotes(holdings_result.symbols)
            warnings.extend(quote_warnings)

        # Step 4: Valuation
        valuation = self._engine.valuate(holdings_result.holdings, quotes)
        if valuation.unpriced_count:
            warnings.append(
                f"{valuation.unpriced_count} holding(s) valued without a quote "
                f"({self._engine.missing_quote_policy.value} policy)"
            )

        # Step 5: Cash
        cash = self._fetch_cash(user_id)

        # Step 6: Assemble
        snapshot = PortfolioSnapshot(
            user_id=user_id,
            holdings=valuation.holdings,
            total_market_value=valuation.total_market_value,
            total_cost=valuation.total_cost,
            total_profit_loss=valuation.total_profit_loss,
            total_return_percent=valuation.total_return_percent,
            cash=cash,
            net_worth=valuation.total_market_value + cash,
            degraded=degraded,
            base_currency=self._base_currency,
            missing_quote_policy=self._engine.missing_quote_policy.value,
            computed_at=datetime.now(timezone.utc),
            skipped_records=holdings_result.skipped_records,
            warnings=tuple(warnings),
        )

        logger.info(
            f"Snapshot for user {user_id}: {len(snapshot.holdings)} holdings, "
            f"net worth {snapshot.net_worth}, degraded={snapshot.degraded}"
        )
        return snapshot

    # =========================================================================
    # COLLABORATOR CALLS
    # =========================================================================

    def _fetch_ledger(self, user_id: int):
        try:
            return list(self._ledger.get_transactions(user_id))
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Ledger read failed for user {user_id}: {e}")
            raise LedgerUnavailableError(user_id, reason=str(e)) from e

    def _fetch_cash(self, user_id: int) -> Decimal:
        try:
            balance = self._accounts.get_cash_balance(user_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Cash balance read failed for user {user_id}: {e}")
            raise AccountUnavailableError(user_id, reason=str(e)) from e
        return Decimal(balance).quantize(CURRENCY_PRECISION)

    def _fetch_quotes(self, symbols: set[str]) -> tuple[dict[str, Quote], bool, list[str]]:
        """
        Fetch quotes in one batched call, bounded by the quote timeout.

        Never raises: provider errors become degraded=True. Symbols that hit
        an outage mark the snapshot degraded even when others resolved;
        symbols the provider does not know are only per-holding gaps.

        Returns:
            (quotes by symbol, degraded flag, warnings)
        """
        provider_name = getattr(self._quote_provider, "name", "quote provider")
        future = self._fetch_pool.submit(self._quote_provider.get_quotes, sorted(symbols))

        try:
            batch = future.result(timeout=self._quote_timeout)
        except FuturesTimeout:
            self._fetch_pool.abandon(future)
            message = f"Quote fetch from {provider_name} timed out after {self._quote_timeout}s"
            logger.warning(message)
            return {}, True, [message]
        except CircuitBreakerOpen as e:
            logger.warning(f"Quote fetch skipped: {e}")
            return {}, True, [f"Quote provider {provider_name} temporarily unavailable"]
        except Exception as e:
            logger.error(f"Quote fetch from {provider_name} failed: {e}")
            return {}, True, [f"Quote provider {provider_name} unavailable"]

        unavailable = batch.unavailable_symbols
        unknown = sorted(set(batch.failed) - set(unavailable))
        if unknown:
            logger.info(f"No quote for {len(unknown)} symbol(s): {unknown}")

        if not unavailable:
            return dict(batch.successful), False, []

        # Resolved quotes are still used; the rest are an outage, not "no data"
        if batch.successful:
            message = (
                f"Quote provider {provider_name} unavailable for "
                f"{len(unavailable)} symbol(s): {', '.join(unavailable)}"
            )
        else:
            message = f"Quote provider {provider_name} unavailable for all {len(symbols)} symbols"
        logger.warning(message)
        return dict(batch.successful), True, [message]
