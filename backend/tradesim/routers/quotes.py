# backend/tradesim/routers/quotes.py
"""
Quote lookup and search endpoints.

- GET /quotes?symbols=BARC,HSBA.L   Current prices normalized to GBP
- GET /quotes/search?q=barclays    Find London listings by ticker or name

Symbols are canonicalized ("barc" -> "BARC.L") and fetched in one batched
provider call. Unknown symbols are reported individually in `failed`; the
request only fails when the provider itself is unreachable.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from tradesim.config import settings
from tradesim.dependencies import get_quote_normalizer, get_quote_provider
from tradesim.middleware import limiter, RATE_LIMIT_QUOTES
from tradesim.schemas.quotes import (
    QuoteFailure,
    QuoteResponse,
    QuotesResponse,
    SearchResponse,
    SearchResultResponse,
)
from tradesim.services.exceptions import ProviderUnavailableError, ValidationError
from tradesim.services.market_data import QuoteNormalizer, QuoteProvider
from tradesim.services.symbols import canonicalize_symbol

logger = logging.getLogger(__name__)

# Upper bound on symbols per request
MAX_SYMBOLS_PER_REQUEST = 50

DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 25

router = APIRouter(
    prefix="/quotes",
    tags=["Quotes"],
)


def parse_symbols(raw: str, suffix: str) -> list[str]:
    """
    Split a comma-separated list into canonical, de-duplicated symbols.

    Raises:
        ValidationError: If no symbol is given or too many are requested
    """
    symbols: list[str] = []
    for part in raw.split(","):
        if not part.strip():
            continue
        symbol = canonicalize_symbol(part, suffix)
        if symbol not in symbols:
            symbols.append(symbol)

    if not symbols:
        raise ValidationError("At least one symbol is required", field="symbols")
    if len(symbols) > MAX_SYMBOLS_PER_REQUEST:
        raise ValidationError(
            f"At most {MAX_SYMBOLS_PER_REQUEST} symbols per request",
            field="symbols",
        )
    return symbols


@router.get(
    "",
    response_model=QuotesResponse,
    summary="Get current quotes",
)
@limiter.limit(RATE_LIMIT_QUOTES)
def get_quotes(
    request: Request,  # Required for rate limiter
    symbols: Annotated[str, Query(description="Comma-separated symbols, e.g. BARC,HSBA.L")] = "",
    provider: QuoteProvider = Depends(get_quote_provider),
    normalizer: QuoteNormalizer = Depends(get_quote_normalizer),
) -> QuotesResponse:
    """
    Fetch quotes for a comma-separated symbol list.

    Raises **400** if no symbols are given, **503** if the provider is
    unavailable or its circuit breaker is open.
    """
    requested = parse_symbols(symbols, settings.default_exchange_suffix)
    batch = provider.get_quotes(requested)

    if batch.provider_unavailable:
        raise ProviderUnavailableError(provider=provider.name, reason=str(batch.first_outage()))

    quotes = []
    for symbol in requested:
        quote = batch.successful.get(symbol)
        if quote is None:
            continue
        normalized = normalizer.normalize_quote(quote)
        quotes.append(QuoteResponse(
            symbol=symbol,
            name=quote.name,
            price=normalized.price,
            currency=normalized.currency,
            raw_price=quote.price,
            raw_currency=quote.currency,
            as_of=quote.as_of,
            no_data=normalized.no_data,
        ))

    failed = [
        QuoteFailure(symbol=symbol, error=type(error).__name__, message=str(error))
        for symbol, error in batch.failed.items()
    ]

    return QuotesResponse(quotes=quotes, failed=failed, provider=provider.name)


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search listed equities",
)
@limiter.limit(RATE_LIMIT_QUOTES)
def search_quotes(
    request: Request,  # Required for rate limiter
    q: Annotated[str, Query(min_length=1, max_length=64, description="Ticker or company name")],
    limit: Annotated[int, Query(ge=1, le=MAX_SEARCH_LIMIT)] = DEFAULT_SEARCH_LIMIT,
    provider: QuoteProvider = Depends(get_quote_provider),
) -> SearchResponse:
    """
    Find instruments listed on the configured exchange by ticker or name.

    Raises **400** for a blank query, **503** if the provider is
    unavailable or its circuit breaker is open.
    """
    matches = provider.search(q, limit=limit)
    logger.info(f"Search '{q}' returned {len(matches)} result(s)")

    return SearchResponse(
        query=q.strip(),
        results=[
            SearchResultResponse(
                symbol=match.symbol,
                name=match.name,
                exchange=match.exchange,
                quote_type=match.quote_type,
                currency=match.currency,
            )
            for match in matches
        ],
        provider=provider.name,
    )
