# backend/tradesim/utils/logging.py
"""
Root logger setup for TradeSim.

One stdout handler is installed on the root logger. A filter on that
handler stamps every record with the request's correlation ID and the user
the request operates on, so a single order or snapshot can be followed
through the router, service and provider logs.

    text  2026-01-02 16:30:00 | INFO     | 3f2a... | user=7 | tradesim.services.trading | Order accepted: ...
    json  {"timestamp": ..., "level": "INFO", "correlation_id": "3f2a...", "user_id": 7, ...}

What goes where:
    DEBUG    quote lookups, per-symbol provider detail
    INFO     user registered, order accepted, snapshot computed
    WARNING  skipped ledger records, degraded snapshots, retries, breaker trips
    ERROR    ledger/account store down, provider down

LOG_LEVEL and LOG_FORMAT select the level and the text/json output.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from tradesim.config import settings
from tradesim.utils.context import get_correlation_id, get_user_id

DEFAULT_TEXT_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(correlation_id)s | user=%(user_id)s | "
    "%(name)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"
NO_USER_ID = "-"

# Raised to WARNING; yfinance and its HTTP stack log every request at DEBUG
NOISY_LOGGERS = (
    "yfinance",
    "peewee",
    "urllib3",
    "requests",
    "curl_cffi",
    "httpx",
    "httpcore",
    "asyncio",
    "multipart",
)

# Attributes present on every LogRecord; anything else came in through extra=
_BUILTIN_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message", "asctime", "correlation_id", "user_id",
}


class RequestContextFilter(logging.Filter):
    """Adds correlation_id and user_id to each record (placeholders outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        user_id = get_user_id()
        record.user_id = NO_USER_ID if user_id is None else user_id
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "user_id": getattr(record, "user_id", NO_USER_ID),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value for key, value in record.__dict__.items()
            if key not in _BUILTIN_RECORD_KEYS
        }
        if extra:
            entry["extra"] = extra

        # default=str covers Decimal prices and datetimes passed via extra=
        return json.dumps(entry, default=str)


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    if log_format == "text":
        return logging.Formatter(fmt=DEFAULT_TEXT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
    raise ValueError(f"Invalid log format: '{log_format}'. Use 'text' or 'json'")


def _parse_level(name: str) -> int:
    """
    Map a level name to its logging constant.

    Raises:
        ValueError: If the name is not a standard level
    """
    levels = logging.getLevelNamesMapping()
    key = name.strip().upper()
    if key not in levels or key == "NOTSET":
        valid = ", ".join(("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"))
        raise ValueError(f"Invalid log level: '{name}'. Valid levels are: {valid}")
    return levels[key]


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Install the TradeSim handler on the root logger.

    Call once at startup, before the FastAPI app is created. Calling it
    again replaces the handler rather than adding a second one.

    Args:
        level: Level name; defaults to settings.log_level
        log_format: 'text' or 'json'; defaults to settings.log_format
        suppress_noisy_loggers: Raise third-party loggers to WARNING

    Raises:
        ValueError: On an unknown level or format
    """
    level_name = level or settings.log_level
    format_name = (log_format or settings.log_format).lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(format_name))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(_parse_level(level_name))
    root.handlers.clear()
    root.addHandler(handler)

    if suppress_noisy_loggers:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level_name}, format={format_name}",
        extra={"config": {"level": level_name, "format": format_name}},
    )
