# backend/tradesim/routers/transactions.py
"""
Order placement and ledger endpoints.

- POST /transactions             Place a BUY/SELL order (fills instantly)
- GET  /transactions/{user_id}   The user's ledger, newest first

Key concepts:
- The ledger is append-only: transactions are never updated or deleted
- Orders are validated before they are recorded (cash for BUY, shares for SELL)
- Prices are in GBP; quotes in pence must be converted by the client first
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from tradesim.database import get_db
from tradesim.dependencies import get_trading_service
from tradesim.middleware import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_TRADE
from tradesim.schemas.transactions import (
    OrderConfirmation,
    OrderCreate,
    TransactionListResponse,
    TransactionResponse,
)
from tradesim.services.trading import TradeConfirmation, TradingService
from tradesim.services.valuation.types import LedgerEntry
from tradesim.utils import set_user_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/transactions",
    tags=["Transactions"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _entry_to_response(user_id: int, entry: LedgerEntry) -> TransactionResponse:
    return TransactionResponse(
        id=entry.id,
        user_id=user_id,
        symbol=entry.symbol,
        kind=entry.kind,
        quantity=entry.quantity,
        price=entry.price,
        timestamp=entry.timestamp,
    )


def _confirmation_to_response(confirmation: TradeConfirmation) -> OrderConfirmation:
    return OrderConfirmation(
        transaction=_entry_to_response(confirmation.user_id, confirmation.transaction),
        trade_value=confirmation.trade_value,
        cash_balance=confirmation.cash_balance,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post(
    "",
    response_model=OrderConfirmation,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    response_description="The recorded transaction and resulting cash balance",
)
@limiter.limit(RATE_LIMIT_TRADE)
def place_order(
    request: Request,  # Required for rate limiter
    order: OrderCreate,
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[TradingService, Depends(get_trading_service)],
) -> OrderConfirmation:
    """
    Place a BUY or SELL order at the submitted price.

    - **symbol**: "BARC" and "barc.l" both record as "BARC.L"
    - **quantity**: whole shares, greater than zero
    - **price**: GBP per share, greater than zero

    Raises **400** for invalid orders, insufficient funds or insufficient
    shares, **404** if the user does not exist.
    """
    set_user_id(order.user_id)
    confirmation = service.place_order(
        db=db,
        user_id=order.user_id,
        symbol=order.symbol,
        kind=order.kind,
        quantity=order.quantity,
        price=order.price,
    )
    return _confirmation_to_response(confirmation)


@router.get(
    "/{user_id}",
    response_model=TransactionListResponse,
    summary="List a user's transactions",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_transactions(
    request: Request,  # Required for rate limiter
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[TradingService, Depends(get_trading_service)],
) -> TransactionListResponse:
    """Return the ledger newest first. Raises **404** if the user is unknown."""
    set_user_id(user_id)
    entries = service.list_transactions(db, user_id)
    items = [_entry_to_response(user_id, entry) for entry in entries]
    return TransactionListResponse(user_id=user_id, items=items, count=len(items))
