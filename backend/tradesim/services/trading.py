# backend/tradesim/services/trading.py
"""
Order placement against the virtual ledger.

Orders fill instantly and fully at the submitted price. Before a trade
reaches the ledger it is validated here, so the holdings aggregator only
ever replays valid transactions:

    - kind is BUY or SELL
    - quantity is a positive whole number of shares
    - price is a positive finite amount in the base currency
    - BUY: the trade value must not exceed the cash balance
    - SELL: the quantity must not exceed the shares currently held

An accepted order appends one ledger row and adjusts cash in the SAME
database transaction; if either step fails both are rolled back.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tradesim.models import TransactionType
from tradesim.services.constants import (
    CURRENCY_PRECISION,
    DEFAULT_EXCHANGE_SUFFIX,
    SHARE_PRECISION,
    ZERO,
)
from tradesim.services.exceptions import (
    InsufficientFundsError,
    InsufficientSharesError,
    LedgerUnavailableError,
    UserNotFoundError,
    ValidationError,
)
from tradesim.services.ledger import AccountRepository, LedgerRepository
from tradesim.services.symbols import canonicalize_symbol
from tradesim.services.valuation.calculators import HoldingsAggregator
from tradesim.services.valuation.types import LedgerEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeConfirmation:
    """An accepted order: the stored ledger entry and the resulting cash."""
    user_id: int
    transaction: LedgerEntry
    trade_value: Decimal
    cash_balance: Decimal


class TradingService:
    """
    Validates and records buy/sell orders.

    Uses HoldingsAggregator to derive current shares from the ledger, so
    the oversell check and the portfolio view agree on what is held.
    """

    def __init__(
            self,
            aggregator: HoldingsAggregator | None = None,
            exchange_suffix: str = DEFAULT_EXCHANGE_SUFFIX,
    ) -> None:
        self._aggregator = aggregator or HoldingsAggregator()
        self._exchange_suffix = exchange_suffix
        logger.info("TradingService initialized")

    def place_order(
            self,
            db: Session,
            user_id: int,
            symbol: str,
            kind: str,
            quantity: Any,
            price: Any,
    ) -> TradeConfirmation:
        """
        Validate an order and record it.

        Args:
            db: Database session (committed on success, rolled back on failure)
            user_id: Account placing the order
            symbol: Ticker in any case, with or without exchange suffix
            kind: "BUY" or "SELL" (case-insensitive)
            quantity: Whole shares
            price: Fill price per share in the base currency

        Returns:
            TradeConfirmation

        Raises:
            ValidationError: Invalid kind, quantity, price or symbol
            UserNotFoundError: If the user does not exist
            InsufficientFundsError: BUY costs more than the cash balance
            InsufficientSharesError: SELL exceeds shares held
            LedgerUnavailableError: If the trade could not be stored
        """
        order_kind = self._validate_kind(kind)
        order_quantity = self._validate_quantity(quantity)
        order_price = self._validate_price(price)
        canonical = canonicalize_symbol(symbol, self._exchange_suffix)

        ledger = LedgerRepository(db)
        accounts = AccountRepository(db)

        try:
            user = accounts.get_user(user_id, for_update=True)
            if user is None:
                raise UserNotFoundError(user_id)

            trade_value = (order_price * order_quantity).quantize(CURRENCY_PRECISION)

            if order_kind == TransactionType.BUY:
                available = Decimal(user.cash_balance)
                if trade_value > available:
                    raise InsufficientFundsError(canonical, required=trade_value, available=available)
                cash_delta = -trade_value
            else:
                held = self._aggregator.shares_held(ledger.get_transactions(user_id), canonical)
                if order_quantity > held:
                    raise InsufficientSharesError(canonical, requested=order_quantity, held=held)
                cash_delta = trade_value

            entry = ledger.append_transaction(
                user_id=user_id,
                symbol=canonical,
                kind=order_kind.value,
                quantity=order_quantity,
                price=order_price,
            )
            new_balance = accounts.adjust_cash(user, cash_delta)
            db.commit()

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Order for user {user_id} not stored: {e}")
            raise LedgerUnavailableError(user_id, reason=str(e)) from e
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Order accepted: user={user_id} {order_kind.value} {order_quantity} "
            f"{canonical} @ {order_price} (value={trade_value}, cash={new_balance})"
        )

        return TradeConfirmation(
            user_id=user_id,
            transaction=entry,
            trade_value=trade_value,
            cash_balance=new_balance,
        )

    def list_transactions(self, db: Session, user_id: int) -> list[LedgerEntry]:
        """
        A user's ledger, newest first.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        if AccountRepository(db).get_user(user_id) is None:
            raise UserNotFoundError(user_id)
        return LedgerRepository(db).get_transactions_newest_first(user_id)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def _validate_kind(kind: Any) -> TransactionType:
        normalized = getattr(kind, "value", kind)
        if isinstance(normalized, str):
            normalized = normalized.strip().upper()
            if normalized in TransactionType.__members__:
                return TransactionType(normalized)
        raise ValidationError("Order kind must be BUY or SELL", field="kind")

    @staticmethod
    def _validate_quantity(quantity: Any) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be a whole number of shares", field="quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")
        return quantity

    @staticmethod
    def _validate_price(price: Any) -> Decimal:
        if price is None or isinstance(price, bool):
            raise ValidationError("Price is required", field="price")
        try:
            value = price if isinstance(price, Decimal) else Decimal(str(price).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError("Price must be a number", field="price")
        if not value.is_finite() or value <= ZERO:
            raise ValidationError("Price must be a positive amount", field="price")
        try:
            value = value.quantize(SHARE_PRECISION)
        except InvalidOperation:
            raise ValidationError("Price is out of range", field="price")
        if value <= ZERO:
            raise ValidationError("Price must be a positive amount", field="price")
        return value
