# backend/tradesim/utils/__init__.py
"""
Cross-cutting utilities for TradeSim.

- logging: Logging configuration with request context on every record
- context: Request-scoped correlation ID and user ID

Usage:
    from tradesim.utils import setup_logging
    from tradesim.utils import get_correlation_id, set_correlation_id
"""

from tradesim.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    get_user_id,
    set_user_id,
    clear_user_id,
)
from tradesim.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "get_user_id",
    "set_user_id",
    "clear_user_id",
]
