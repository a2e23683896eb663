# backend/tradesim/routers/portfolio.py
"""
Portfolio snapshot endpoint.

- GET /portfolio/{user_id}   Holdings, P&L, cash and net worth

Every request recomputes the snapshot from the ledger, live quotes and the
cash balance. Concurrent requests for the same user share one computation
(SnapshotRefresher), so a burst of page refreshes costs one quote fetch.

Response semantics:
- holdings=[] and degraded=false: the user holds nothing yet
- degraded=true: quotes were unavailable; unpriced holdings are valued by
  the missing-quote policy
- 503 LedgerUnavailableError: the ledger could not be read, no snapshot
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from tradesim.config import settings
from tradesim.dependencies import (
    get_portfolio_service,
    get_snapshot_poller,
    get_snapshot_refresher,
)
from tradesim.middleware import limiter, RATE_LIMIT_QUOTES
from tradesim.schemas.portfolio import (
    HoldingResponse,
    PortfolioSnapshotResponse,
    SnapshotDiagnostics,
)
from tradesim.services.valuation import (
    PortfolioService,
    PortfolioSnapshot,
    SnapshotRefresher,
)
from tradesim.utils import set_user_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/portfolio",
    tags=["Portfolio"],
)


def _snapshot_to_response(snapshot: PortfolioSnapshot) -> PortfolioSnapshotResponse:
    """Convert internal PortfolioSnapshot to the API schema."""
    return PortfolioSnapshotResponse(
        user_id=snapshot.user_id,
        holdings=[
            HoldingResponse(
                symbol=h.symbol,
                name=h.name,
                shares=h.shares,
                average_cost=h.average_cost,
                total_cost=h.total_cost,
                current_price=h.current_price,
                market_value=h.market_value,
                profit_loss=h.profit_loss,
                return_percent=h.return_percent,
                no_quote=h.no_quote,
                quote_as_of=h.quote_as_of,
            )
            for h in snapshot.holdings
        ],
        total_market_value=snapshot.total_market_value,
        total_cost=snapshot.total_cost,
        total_profit_loss=snapshot.total_profit_loss,
        total_return_percent=snapshot.total_return_percent,
        cash=snapshot.cash,
        net_worth=snapshot.net_worth,
        degraded=snapshot.degraded,
        base_currency=snapshot.base_currency,
        missing_quote_policy=snapshot.missing_quote_policy,
        computed_at=snapshot.computed_at,
        diagnostics=SnapshotDiagnostics(
            skipped_records=snapshot.skipped_records,
            warnings=list(snapshot.warnings),
        ),
    )


@router.get(
    "/{user_id}",
    response_model=PortfolioSnapshotResponse,
    summary="Get portfolio snapshot",
    response_description="Valued holdings, cash and net worth (camelCase fields)",
)
@limiter.limit(RATE_LIMIT_QUOTES)
def get_portfolio(
    request: Request,  # Required for rate limiter
    user_id: int,
    service: Annotated[PortfolioService, Depends(get_portfolio_service)],
    refresher: Annotated[SnapshotRefresher, Depends(get_snapshot_refresher)],
) -> PortfolioSnapshotResponse:
    """
    Compute the user's portfolio snapshot.

    Raises **404** if the user does not exist, **503** if the ledger or
    account store is unavailable. Quote provider trouble never fails the
    request; the snapshot is flagged `degraded` instead.
    """
    set_user_id(user_id)
    snapshot = refresher.get_snapshot(user_id, lambda: service.compute_snapshot(user_id))

    if settings.snapshot_polling_enabled:
        get_snapshot_poller().watch(user_id)

    return _snapshot_to_response(snapshot)
