# backend/tradesim/services/valuation/calculators.py
"""
Portfolio calculators.

Each calculator follows the Single Responsibility Principle:
- HoldingsAggregator: Folds the ledger into current positions
- ValuationEngine: Values positions against normalized quotes

Design Principles:
- Each calculator does ONE thing well
- Stateless apart from configuration (pure functions of their inputs)
- Receives all dependencies explicitly
- Returns structured result objects
- Uses Decimal for ALL financial calculations

Usage:
    aggregator = HoldingsAggregator()
    result = aggregator.aggregate(ledger_entries)

    engine = ValuationEngine(QuoteNormalizer())
    valuation = engine.valuate(result.holdings, quotes)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from tradesim.services.constants import (
    CURRENCY_PRECISION,
    DEFAULT_EXCHANGE_SUFFIX,
    DEFAULT_MISSING_QUOTE_POLICY,
    DISPLAY_PERCENTAGE_PRECISION,
    ONE_HUNDRED,
    SHARE_PRECISION,
    ZERO,
    MissingQuotePolicy,
)
from tradesim.services.market_data.base import Quote
from tradesim.services.market_data.normalizer import QuoteNormalizer
from tradesim.services.symbols import symbol_variants
from tradesim.services.valuation.types import (
    EnrichedHolding,
    Holding,
    HoldingsResult,
    ValuationResult,
)

logger = logging.getLogger(__name__)

BUY = "BUY"
SELL = "SELL"


def calculate_return_percent(profit_loss: Decimal, total_cost: Decimal) -> Decimal:
    """
    Return percentage rounded for display.

    Zero cost basis yields 0, never a division error.
    """
    if total_cost <= ZERO:
        return ZERO.quantize(DISPLAY_PERCENTAGE_PRECISION)
    return (profit_loss / total_cost * ONE_HUNDRED).quantize(DISPLAY_PERCENTAGE_PRECISION)


# =============================================================================
# HOLDINGS AGGREGATOR
# =============================================================================

@dataclass
class _PositionState:
    shares: int = 0
    total_cost: Decimal = ZERO


@dataclass(frozen=True)
class _ParsedEntry:
    symbol: str
    kind: str
    quantity: int
    price: Decimal


class HoldingsAggregator:
    """
    Replays a ledger into current positions using weighted-average cost.

    Input must already be in ledger order (oldest first, ties by insertion
    order); the aggregator does not re-sort.

    Cost calculation (BUY):
        shares += quantity
        total_cost += quantity x price

    Cost reduction (SELL):
        total_cost -= total_cost x quantity / shares_before
        shares -= quantity

        The sale price never touches the cost basis, so the average cost of
        the remaining shares is unchanged by a partial sale.

    Note:
        Only positions with shares > 0 are returned. Malformed records are
        skipped and counted. A SELL larger than the position is a
        data-integrity fault: it is logged and applied as recorded (shares
        may go negative), and the position is then dropped.
    """

    def aggregate(self, transactions: Iterable[Any]) -> HoldingsResult:
        """
        Aggregate ledger entries into holdings.

        Args:
            transactions: Ledger entries (LedgerEntry or any object with
                symbol, kind, quantity and price attributes)

        Returns:
            HoldingsResult with open positions sorted by symbol
        """
        result = HoldingsResult()
        states: dict[str, _PositionState] = {}

        for index, txn in enumerate(transactions):
            parsed = self._parse(txn)
            if parsed is None:
                result.skipped_records += 1
                message = f"Skipped malformed ledger record #{index} (id={getattr(txn, 'id', None)})"
                result.warnings.append(message)
                logger.warning(message)
                continue

            state = states.setdefault(parsed.symbol, _PositionState())
            self._apply(state, parsed, result)

        for symbol in sorted(states):
            state = states[symbol]
            if state.shares <= 0:
                continue

            # The reported total is authoritative; the average derives from it
            total_cost = state.total_cost.quantize(CURRENCY_PRECISION)
            result.holdings[symbol] = Holding(
                symbol=symbol,
                shares=state.shares,
                total_cost=total_cost,
                average_cost=(total_cost / state.shares).quantize(SHARE_PRECISION),
            )

        return result

    def shares_held(self, transactions: Iterable[Any], symbol: str) -> int:
        """Net shares currently held in one symbol (0 if no open position)."""
        holding = self.aggregate(transactions).holdings.get(symbol)
        return holding.shares if holding else 0

    def _apply(self, state: _PositionState, entry: _ParsedEntry, result: HoldingsResult) -> None:
        """Apply one validated entry to the running position (mutates state)."""
        if entry.kind == BUY:
            state.shares += entry.quantity
            state.total_cost += entry.price * entry.quantity
            return

        shares_before = state.shares
        if entry.quantity > shares_before:
            message = (
                f"Oversell of {entry.symbol}: selling {entry.quantity} "
                f"with {shares_before} held"
            )
            result.warnings.append(message)
            logger.warning(message)
            state.total_cost = ZERO
        else:
            fraction = Decimal(entry.quantity) / Decimal(shares_before)
            state.total_cost -= state.total_cost * fraction

        state.shares = shares_before - entry.quantity
        if state.shares == 0:
            state.total_cost = ZERO

    @staticmethod
    def _parse(txn: Any) -> _ParsedEntry | None:
        """Validate one ledger record; None when it cannot be replayed."""
        symbol = getattr(txn, "symbol", None)
        if not isinstance(symbol, str) or not symbol.strip():
            return None

        kind = getattr(txn, "kind", None)
        if kind is None:
            kind = getattr(txn, "transaction_type", None)
        kind = getattr(kind, "value", kind)
        if not isinstance(kind, str) or kind.strip().upper() not in (BUY, SELL):
            return None

        quantity = _parse_quantity(getattr(txn, "quantity", None))
        price = _parse_price(getattr(txn, "price", None))
        if quantity is None or price is None:
            return None

        return _ParsedEntry(
            symbol=symbol.strip().upper(),
            kind=kind.strip().upper(),
            quantity=quantity,
            price=price,
        )


def _parse_quantity(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= ZERO or number != number.to_integral_value():
        return None
    return int(number)


def _parse_price(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= ZERO:
        return None
    return number


# =============================================================================
# VALUATION ENGINE
# =============================================================================

class ValuationEngine:
    """
    Values holdings against quotes.

    Per holding:
        current_price = normalized quote price
        market_value = shares x current_price
        profit_loss = market_value - total_cost
        return_percent = profit_loss / total_cost x 100 (0 if total_cost is 0)

    A holding whose quote is absent or unusable is flagged no_quote and
    valued by the configured MissingQuotePolicy:
        PESSIMISTIC: price 0, market value 0, profit/loss -total_cost, -100%
        OPTIMISTIC: carried at cost, profit/loss 0, 0%
    """

    def __init__(
            self,
            normalizer: QuoteNormalizer | None = None,
            missing_quote_policy: MissingQuotePolicy = DEFAULT_MISSING_QUOTE_POLICY,
            exchange_suffix: str = DEFAULT_EXCHANGE_SUFFIX,
    ) -> None:
        self._normalizer = normalizer or QuoteNormalizer()
        self._policy = MissingQuotePolicy(missing_quote_policy)
        self._exchange_suffix = exchange_suffix

    @property
    def missing_quote_policy(self) -> MissingQuotePolicy:
        return self._policy

    def valuate(
            self,
            holdings: Mapping[str, Holding],
            quotes: Mapping[str, Quote],
    ) -> ValuationResult:
        """
        Value every holding and total the results.

        Args:
            holdings: Positions keyed by symbol
            quotes: Raw provider quotes keyed by symbol (may be partial)

        Returns:
            ValuationResult with holdings sorted by symbol
        """
        enriched = tuple(
            self.value_holding(holdings[symbol], self.resolve_quote(symbol, quotes))
            for symbol in sorted(holdings)
        )

        total_market_value = sum((h.market_value for h in enriched), ZERO)
        total_cost = sum((h.total_cost for h in enriched), ZERO)
        total_profit_loss = sum((h.profit_loss for h in enriched), ZERO)

        return ValuationResult(
            holdings=enriched,
            total_market_value=total_market_value,
            total_cost=total_cost,
            total_profit_loss=total_profit_loss,
            total_return_percent=calculate_return_percent(total_profit_loss, total_cost),
        )

    def resolve_quote(self, symbol: str, quotes: Mapping[str, Quote]) -> Quote | None:
        """Find a quote by exact symbol, then its canonical and suffix-less forms."""
        for candidate in symbol_variants(symbol, self._exchange_suffix):
            quote = quotes.get(candidate)
            if quote is not None:
                return quote
        return None

    def value_holding(self, holding: Holding, quote: Quote | None) -> EnrichedHolding:
        """Value a single holding at the given (possibly missing) quote."""
        normalized = self._normalizer.normalize_quote(quote)
        name = quote.name if quote else None
        as_of = quote.as_of if quote else None

        if normalized.no_data:
            return self._value_unpriced(holding, name, as_of)

        market_value = (normalized.price * holding.shares).quantize(CURRENCY_PRECISION)
        profit_loss = market_value - holding.total_cost

        return EnrichedHolding(
            symbol=holding.symbol,
            shares=holding.shares,
            average_cost=holding.average_cost,
            total_cost=holding.total_cost,
            current_price=normalized.price,
            market_value=market_value,
            profit_loss=profit_loss,
            return_percent=calculate_return_percent(profit_loss, holding.total_cost),
            name=name,
            quote_as_of=as_of,
        )

    def _value_unpriced(self, holding: Holding, name: str | None, as_of: Any) -> EnrichedHolding:
        if self._policy == MissingQuotePolicy.OPTIMISTIC:
            current_price = holding.average_cost
            market_value = holding.total_cost
            profit_loss = ZERO.quantize(CURRENCY_PRECISION)
            return_percent = ZERO.quantize(DISPLAY_PERCENTAGE_PRECISION)
        else:
            current_price = ZERO
            market_value = ZERO.quantize(CURRENCY_PRECISION)
            profit_loss = -holding.total_cost
            return_percent = (
                -ONE_HUNDRED if holding.total_cost > ZERO else ZERO
            ).quantize(DISPLAY_PERCENTAGE_PRECISION)

        return EnrichedHolding(
            symbol=holding.symbol,
            shares=holding.shares,
            average_cost=holding.average_cost,
            total_cost=holding.total_cost,
            current_price=current_price,
            market_value=market_value,
            profit_loss=profit_loss,
            return_percent=return_percent,
            no_quote=True,
            name=name,
            quote_as_of=as_of,
        )
