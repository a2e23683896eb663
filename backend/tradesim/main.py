# backend/tradesim/main.py
"""
TradeSim API application.

Wires together logging, middleware (CORS, rate limiting, correlation IDs),
the error-to-response mapping, the four domain routers and the health
probes. Run with any ASGI server, e.g. `uvicorn tradesim.main:app`.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from tradesim.config import settings
from tradesim.database import check_database_health, get_db
from tradesim.middleware import (
    RATE_LIMIT_HEALTH,
    CorrelationIdMiddleware,
    RateLimitExceeded,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from tradesim.routers import (
    portfolio_router,
    quotes_router,
    transactions_router,
    users_router,
)
from tradesim.schemas.errors import ErrorDetail, FieldError, ValidationErrorDetail
from tradesim.services.exceptions import (
    CircuitBreakerOpen,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitError,
    ServiceError,
    StorageUnavailableError,
    TickerNotFoundError,
    TradeRejectedError,
    UserExistsError,
    ValidationError,
)
from tradesim.utils import setup_logging

logger = logging.getLogger(__name__)

setup_logging(level=settings.log_level, log_format=settings.log_format)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the snapshot poller for the lifetime of the app when enabled."""
    poller = None
    if settings.snapshot_polling_enabled:
        from tradesim.dependencies import get_snapshot_poller
        poller = get_snapshot_poller()
        poller.start()

    yield

    if poller is not None:
        poller.stop(timeout=5)


app = FastAPI(
    title=settings.app_name,
    description="UK stock trading simulator: virtual orders, ledger replay and live portfolio valuation",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE (last added runs first)
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# =============================================================================
# ERROR RESPONSES
# =============================================================================
# Every error body is an ErrorDetail: {"error": <class name>, "message", "details"}.
# Status codes are chosen here, never in the service layer.

# First matching class wins, so subclasses come before their bases
SERVICE_ERROR_STATUS: tuple[tuple[type[ServiceError], int], ...] = (
    (ValidationError, 400),
    (TradeRejectedError, 400),
    (NotFoundError, 404),
    (TickerNotFoundError, 404),
    (UserExistsError, 409),
    (RateLimitError, 429),
    (StorageUnavailableError, 503),
    (ProviderUnavailableError, 503),
)

HTTP_ERROR_NAMES = {
    400: "BadRequestError",
    404: "NotFoundError",
    405: "MethodNotAllowedError",
    409: "ConflictError",
    422: "ValidationError",
    429: "RateLimitError",
    500: "InternalServerError",
    503: "ServiceUnavailableError",
}


def status_for(exc: ServiceError) -> int:
    for error_class, status_code in SERVICE_ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return 500


def error_response(
        status_code: int,
        error: str,
        message: str,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(error=error, message=message, details=details).model_dump(),
        headers=headers,
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map any domain error to its status code and ErrorDetail body."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")

    return error_response(status_code, type(exc).__name__, str(exc), exc.details)


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """503 with Retry-After, rounded up to whole seconds."""
    retry_after = int(exc.time_remaining) + 1
    logger.warning(f"Circuit breaker '{exc.breaker_name}' open, rejecting {request.url.path}")

    return error_response(
        503,
        "CircuitBreakerOpen",
        f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
        details={"breaker_name": exc.breaker_name, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Reshape framework errors (unknown route, wrong method, raised
    HTTPException) from {"detail": ...} into ErrorDetail.
    """
    return error_response(
        exc.status_code,
        HTTP_ERROR_NAMES.get(exc.status_code, "HTTPError"),
        str(exc.detail) if exc.detail else "An error occurred",
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for payloads that do not match the endpoint schema, one entry per field."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in error["loc"]),
            message=error["msg"],
            type=error["type"],
        )
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(users_router)  # /users
app.include_router(transactions_router)  # /transactions
app.include_router(portfolio_router)  # /portfolio/{user_id}
app.include_router(quotes_router)  # /quotes


# =============================================================================
# HEALTH
# =============================================================================

def quote_provider_health() -> dict:
    """Non-critical check: state of the provider's circuit breaker."""
    from tradesim.dependencies import get_quote_provider

    try:
        breaker = get_quote_provider()._get_circuit_breaker()
    except Exception as e:
        logger.warning(f"Quote provider health check failed: {e}")
        return {"status": "unknown", "critical": False, "error": str(e)}

    stats = breaker.stats
    check = {
        "status": "unhealthy" if breaker.is_open else "healthy",
        "critical": False,
        "circuit_breaker_state": breaker.state.value,
        "total_calls": stats.total_calls,
        "failed_calls": stats.failed_calls,
        "rejected_calls": stats.rejected_calls,
    }
    if breaker.is_open:
        check["retry_after"] = round(breaker.time_until_recovery(), 1)
    return check


@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Dependency health.

    503 when the database is down (no ledger, no service). 200 "degraded"
    when only the quote provider is out: portfolios are still served,
    flagged degraded.
    """
    checks = {
        "database": {**check_database_health(db), "critical": True},
        "yahoo_finance": quote_provider_health(),
    }

    if checks["database"]["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "unhealthy", "checks": checks})

    status = "degraded" if checks["yahoo_finance"]["status"] != "healthy" else "healthy"
    return {"status": status, "checks": checks}


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Process is up; dependencies are not checked."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """Ready to serve once the database answers."""
    if check_database_health(db)["status"] == "healthy":
        return {"status": "ready"}

    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "error": "Database unavailable"},
    )
