# backend/tradesim/middleware/__init__.py
"""
Middleware components for TradeSim.

- Correlation ID tracking for request tracing
- Rate limiting for API and quote-provider protection

Usage:
    from tradesim.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from tradesim.middleware.correlation import CorrelationIdMiddleware
from tradesim.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    RateLimitExceeded,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_QUOTES,
    RATE_LIMIT_TRADE,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "RateLimitExceeded",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_QUOTES",
    "RATE_LIMIT_TRADE",
]
