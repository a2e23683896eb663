# backend/tradesim/schemas/transactions.py
"""
Pydantic schemas for order placement and the transaction ledger.

Request schemas check shape only. Business rules (positive quantity and
price, BUY/SELL, sufficient cash or shares) are enforced by TradingService,
so violations come back as 400 ErrorDetail responses rather than 422.

IMPORTANT: All financial values use Decimal for precision.
Never use float for money!
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# REQUEST
# =============================================================================

class OrderCreate(BaseModel):
    """Buy or sell order, filled instantly at the submitted price."""

    user_id: int = Field(..., description="Account placing the order")

    symbol: str = Field(
        ...,
        max_length=20,
        description="Ticker, with or without exchange suffix",
        examples=["BARC", "HSBA.L"]
    )

    kind: str = Field(
        ...,
        max_length=10,
        description="BUY or SELL (case-insensitive)",
        examples=["BUY"]
    )

    # strict: reject true/false and fractional shares instead of coercing
    quantity: int = Field(
        ...,
        strict=True,
        description="Whole number of shares",
        examples=[10]
    )

    price: Decimal = Field(
        ...,
        max_digits=18,
        decimal_places=8,
        description="Fill price per share in GBP",
        examples=["2.1575"]
    )

    @field_validator('kind')
    @classmethod
    def normalize_kind(cls, v: str) -> str:
        return v.strip().upper()


# =============================================================================
# RESPONSE
# =============================================================================

class TransactionResponse(BaseModel):
    """One ledger entry."""

    id: int
    user_id: int
    symbol: str
    kind: str
    quantity: int
    price: Decimal
    timestamp: datetime | None = None


class OrderConfirmation(BaseModel):
    """Accepted order with the resulting cash balance."""

    transaction: TransactionResponse
    trade_value: Decimal = Field(..., description="price x quantity, rounded to pence")
    cash_balance: Decimal = Field(..., description="Cash after the trade")


class TransactionListResponse(BaseModel):
    """A user's ledger, newest first."""

    user_id: int
    items: list[TransactionResponse]
    count: int
