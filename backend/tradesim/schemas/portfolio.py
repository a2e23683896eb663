# backend/tradesim/schemas/portfolio.py
"""
Pydantic schemas for the portfolio snapshot.

Field names are serialized in camelCase (averageCost, netWorth, ...) to
match PortfolioSnapshot.to_dict().
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HoldingResponse(CamelModel):
    """One valued holding."""

    symbol: str
    name: str | None = None
    shares: int
    average_cost: Decimal
    total_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    profit_loss: Decimal
    return_percent: Decimal
    no_quote: bool = Field(
        default=False,
        description="True when no quote resolved; valued per the missing-quote policy"
    )
    quote_as_of: datetime | None = None


class SnapshotDiagnostics(CamelModel):
    skipped_records: int = Field(default=0, description="Malformed ledger records ignored")
    warnings: list[str] = Field(default_factory=list)


class PortfolioSnapshotResponse(CamelModel):
    """
    Complete portfolio view.

    degraded=True means quotes were unavailable and holdings were valued by
    the missing-quote policy; an empty holdings list with degraded=False
    means the user simply holds nothing yet.
    """

    user_id: int
    holdings: list[HoldingResponse]
    total_market_value: Decimal
    total_cost: Decimal
    total_profit_loss: Decimal
    total_return_percent: Decimal
    cash: Decimal
    net_worth: Decimal
    degraded: bool
    base_currency: str
    missing_quote_policy: str
    computed_at: datetime
    diagnostics: SnapshotDiagnostics
