# backend/tradesim/services/exceptions.py
"""
Domain errors raised by the service layer.

Nothing here knows about HTTP. Each error carries the structured context a
client needs (`details`), and the handler in tradesim.main picks the status
code from the error's class.

    ServiceError
    ├── ValidationError               bad order/registration values
    ├── NotFoundError
    │   └── UserNotFoundError
    ├── UserExistsError               username or email taken
    ├── TradeRejectedError
    │   ├── InsufficientFundsError    BUY costs more than cash
    │   └── InsufficientSharesError   SELL exceeds the position
    ├── StorageUnavailableError
    │   ├── LedgerUnavailableError
    │   └── AccountUnavailableError
    └── MarketDataError
        ├── ProviderUnavailableError  retryable
        ├── TickerNotFoundError       not retryable
        └── RateLimitError            retryable with backoff

CircuitBreakerOpen lives in circuit_breaker.py and is re-exported here.
"""

from decimal import Decimal


class ServiceError(Exception):
    """Base class; `message` is what clients see."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    @property
    def details(self) -> dict | None:
        """Structured context for the error response (None when there is none)."""
        return None


# =============================================================================
# INPUT & IDENTITY
# =============================================================================

class ValidationError(ServiceError):
    """
    A value broke a business rule: non-positive quantity or price, unknown
    order kind, blank symbol, malformed email.

    Request-shape problems (missing fields, wrong JSON types) never get here;
    FastAPI rejects those with a 422 first.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    @property
    def details(self) -> dict | None:
        return {"field": self.field} if self.field else None


class NotFoundError(ServiceError):
    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        super().__init__(message)
        self.resource_type = resource_type
        self.resource_id = resource_id

    @property
    def details(self) -> dict | None:
        if self.resource_type is None:
            return None
        return {"resource_type": self.resource_type, "resource_id": self.resource_id}


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found", resource_type="User", resource_id=user_id)
        self.user_id = user_id


class UserExistsError(ServiceError):
    """Registration collided on `field` ("username" or "email")."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"A user with {field} '{value}' is already registered")
        self.field = field
        self.value = value

    @property
    def details(self) -> dict:
        return {"field": self.field, "value": self.value}


# =============================================================================
# ORDER REJECTIONS
# =============================================================================

class TradeRejectedError(ServiceError):
    """An order that never reached the ledger; cash and holdings are untouched."""

    def __init__(self, message: str, symbol: str) -> None:
        super().__init__(message)
        self.symbol = symbol

    @property
    def details(self) -> dict:
        return {"symbol": self.symbol}


class InsufficientFundsError(TradeRejectedError):
    def __init__(self, symbol: str, required: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Insufficient funds to buy {symbol}: requires {required}, available {available}",
            symbol=symbol,
        )
        self.required = required
        self.available = available

    @property
    def details(self) -> dict:
        # Decimals as strings so no precision is lost in JSON
        return {
            "symbol": self.symbol,
            "required": str(self.required),
            "available": str(self.available),
        }


class InsufficientSharesError(TradeRejectedError):
    """SELL larger than the position. Short selling is not supported."""

    def __init__(self, symbol: str, requested: int, held: int) -> None:
        super().__init__(
            f"Cannot sell {requested} shares of {symbol}: only {held} held",
            symbol=symbol,
        )
        self.requested = requested
        self.held = held

    @property
    def details(self) -> dict:
        return {"symbol": self.symbol, "requested": self.requested, "held": self.held}


# =============================================================================
# PERSISTENCE
# =============================================================================

class StorageUnavailableError(ServiceError):
    """
    The database could not be read or written.

    `reason` keeps the driver's text for logs; it is not sent to clients.
    """

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class LedgerUnavailableError(StorageUnavailableError):
    """No snapshot is ever built without the ledger, so this fails the request."""

    def __init__(self, user_id: int, reason: str | None = None) -> None:
        super().__init__(f"Transaction ledger unavailable for user {user_id}", reason=reason)
        self.user_id = user_id


class AccountUnavailableError(StorageUnavailableError):
    def __init__(self, user_id: int, reason: str | None = None) -> None:
        super().__init__(f"Account store unavailable for user {user_id}", reason=reason)
        self.user_id = user_id


# =============================================================================
# QUOTE PROVIDER
# =============================================================================

class MarketDataError(ServiceError):
    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderUnavailableError(MarketDataError):
    """Network failure, timeout or 5xx from the provider."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"Provider '{provider}' is unavailable: {reason}", provider=provider)
        self.reason = reason


class TickerNotFoundError(MarketDataError):
    def __init__(self, symbol: str, provider: str) -> None:
        super().__init__(f"Symbol '{symbol}' not found by {provider}", provider=provider)
        self.symbol = symbol

    @property
    def details(self) -> dict:
        return {"symbol": self.symbol}


class RateLimitError(MarketDataError):
    """The provider throttled us; `retry_after` is its hint in seconds, if any."""

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after

    @property
    def details(self) -> dict | None:
        return {"retry_after": self.retry_after} if self.retry_after else None


from tradesim.services.circuit_breaker import CircuitBreakerOpen

__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "UserNotFoundError",
    "UserExistsError",
    "TradeRejectedError",
    "InsufficientFundsError",
    "InsufficientSharesError",
    "StorageUnavailableError",
    "LedgerUnavailableError",
    "AccountUnavailableError",
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "CircuitBreakerOpen",
]
