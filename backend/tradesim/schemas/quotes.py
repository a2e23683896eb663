# backend/tradesim/schemas/quotes.py
"""
Pydantic schemas for quote lookups.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class QuoteResponse(BaseModel):
    """A quote normalized to the base currency."""

    symbol: str
    name: str | None = None
    price: Decimal = Field(..., description="Price in the base currency (0 when no_data)")
    currency: str
    raw_price: Decimal | None = Field(default=None, description="Price as reported by the provider")
    raw_currency: str | None = Field(default=None, description="Provider currency code, e.g. GBp")
    as_of: datetime | None = None
    no_data: bool = False


class QuoteFailure(BaseModel):
    symbol: str
    error: str
    message: str


class QuotesResponse(BaseModel):
    """Quotes for a symbol list; symbols that did not resolve are listed in failed."""

    quotes: list[QuoteResponse]
    failed: list[QuoteFailure] = Field(default_factory=list)
    provider: str


class SearchResultResponse(BaseModel):
    symbol: str
    name: str | None = None
    exchange: str | None = None
    quote_type: str | None = None
    currency: str | None = Field(default=None, description="Trading currency, when the provider reports it")


class SearchResponse(BaseModel):
    """Listings on the configured exchange matching a ticker or company name."""

    query: str
    results: list[SearchResultResponse]
    provider: str
