# backend/tradesim/middleware/rate_limit.py
"""
Rate limiting for API protection.

Uses slowapi to keep clients from turning portfolio polling into request
storms against the quote provider (Yahoo Finance). Endpoints that trigger
a quote fetch get a tighter limit than plain ledger reads.

Key by: Client IP address (direct peer address)
Storage: In-memory (single-instance deployments)

Limiting is switched off when settings.rate_limit_enabled is False
(always the case in the test environment).

Usage:
    from tradesim.middleware.rate_limit import limiter, RATE_LIMIT_QUOTES

    @router.get("/quotes")
    @limiter.limit(RATE_LIMIT_QUOTES)
    def get_quotes(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from tradesim.config import settings
from tradesim.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_QUOTES,
    RATE_LIMIT_TRADE,
    RATE_LIMIT_RETRY_AFTER_SECONDS,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LIMITER INSTANCE
# =============================================================================

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=settings.rate_limit_enabled,
)


# =============================================================================
# RATE LIMIT EXCEEDED HANDLER
# =============================================================================

async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """
    Return a 429 in the standard ErrorDetail shape with a Retry-After header.
    """
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(
        f"Rate limit exceeded for {get_remote_address(request)} "
        f"on {request.url.path}: {limit_info}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {
                "retry_after": RATE_LIMIT_RETRY_AFTER_SECONDS,
            },
        },
        headers={
            "Retry-After": str(RATE_LIMIT_RETRY_AFTER_SECONDS),
        },
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "RateLimitExceeded",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_QUOTES",
    "RATE_LIMIT_TRADE",
]
