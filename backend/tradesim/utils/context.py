# backend/tradesim/utils/context.py
"""
Request context management for TradeSim.

Holds request-scoped values that log records pick up automatically:
- Correlation ID for request tracing
- User ID of the account a request operates on

Uses Python's contextvars for async-safe storage that automatically
propagates through async/await calls and into worker threads started
with contextvars.copy_context().

Usage:
    from tradesim.utils.context import get_correlation_id, set_correlation_id

    # In middleware
    set_correlation_id("abc-123")

    # In any service/handler
    correlation_id = get_correlation_id()  # Returns "abc-123"
"""

from contextvars import ContextVar

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_user_id_var: ContextVar[int | None] = ContextVar("user_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current request's correlation ID.

    Returns:
        The correlation ID for the current request, or None if not set.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current request.

    This should be called by middleware at the start of each request.
    """
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID at the end of a request."""
    _correlation_id_var.set(None)


# =============================================================================
# USER ID
# =============================================================================

def get_user_id() -> int | None:
    """Get the user the current request operates on (None outside user routes)."""
    return _user_id_var.get()


def set_user_id(user_id: int) -> None:
    """Bind the user ID for the remainder of the current request."""
    _user_id_var.set(user_id)


def clear_user_id() -> None:
    """Clear the bound user ID."""
    _user_id_var.set(None)
