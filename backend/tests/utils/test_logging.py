# backend/tests/utils/test_logging.py
"""
Tests for logging setup and the JSON formatter.
"""

import json
import logging
from decimal import Decimal

import pytest

from tradesim.utils.context import clear_correlation_id, set_correlation_id
from tradesim.utils.logging import (
    JsonFormatter,
    RequestContextFilter,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg="Order accepted", **extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "tradesim.test", "levelno": logging.INFO,
                                    "levelname": "INFO", "msg": msg, **extra})
    RequestContextFilter().filter(record)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_includes_context(self):
        set_correlation_id("trace-1")
        try:
            entry = json.loads(JsonFormatter().format(make_record()))
        finally:
            clear_correlation_id()

        assert entry["level"] == "INFO"
        assert entry["logger"] == "tradesim.test"
        assert entry["correlation_id"] == "trace-1"
        assert entry["user_id"] == "-"
        assert entry["message"] == "Order accepted"
        assert "extra" not in entry

    def test_extra_fields_serialized(self):
        record = make_record(symbol="BARC.L", price=Decimal("2.1575"))

        entry = json.loads(JsonFormatter().format(record))

        assert entry["extra"] == {"symbol": "BARC.L", "price": "2.1575"}


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_installs_single_handler(self, restore_root_logger):
        setup_logging(level="DEBUG", log_format="json")
        setup_logging(level="WARNING", log_format="text")

        root = restore_root_logger
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_quiets_yfinance(self, restore_root_logger):
        setup_logging(level="DEBUG")

        assert logging.getLogger("yfinance").level == logging.WARNING

    def test_invalid_level(self, restore_root_logger):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logging(level="LOUD")

    def test_invalid_format(self, restore_root_logger):
        with pytest.raises(ValueError, match="Invalid log format"):
            setup_logging(log_format="xml")
