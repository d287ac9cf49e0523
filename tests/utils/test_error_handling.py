"""Tests for error handling utilities."""

import logging

from sqlalchemy.exc import IntegrityError

from utils.error_handling import (
    TimingContext,
    database_error_text,
    format_error_message,
    handle_worker_error,
    log_exception,
    timed,
)


class TestFormatErrorMessage:
    """Tests for format_error_message function."""

    def test_basic_error_message(self):
        assert format_error_message(ValueError("Invalid value")) == "ValueError: Invalid value"

    def test_with_context(self):
        result = format_error_message(ValueError("Invalid value"), context="Loading data")
        assert result == "Loading data - ValueError: Invalid value"

    def test_without_type(self):
        assert format_error_message(ValueError("Invalid value"), include_type=False) == "Invalid value"

    def test_empty_error_message(self):
        assert format_error_message(ValueError("")) == "ValueError"


class TestDatabaseErrorText:
    def test_uses_driver_message_without_sql(self):
        error = IntegrityError(
            "INSERT INTO Orders (product) VALUES (?)",
            ("Widget",),
            Exception("UNIQUE constraint failed: Orders.product"),
        )
        assert database_error_text(error) == "UNIQUE constraint failed: Orders.product"

    def test_plain_exception_falls_back_to_str(self):
        assert database_error_text(RuntimeError("first\nsecond")) == "first"


class TestLogging:
    def test_log_exception_attaches_context(self, caplog):
        with caplog.at_level(logging.ERROR, logger="utils.error_handling"):
            log_exception(ValueError("bad"), "Import failed", extra={"file": "a.xlsx"})

        record = caplog.records[-1]
        assert record.event == "error"
        assert record.error_type == "ValueError"
        assert record.file == "a.xlsx"
        assert record.exc_info is not None

    def test_handle_worker_error_returns_message(self, caplog):
        with caplog.at_level(logging.ERROR, logger="utils.error_handling"):
            message = handle_worker_error(KeyError("Email"), "Import failed", "orders.xlsx")

        assert message == "Import failed - KeyError: 'Email'"
        assert caplog.records[-1].context_0 == "orders.xlsx"


def test_timed_and_timing_context_are_transparent():
    @timed
    def add(a, b):
        return a + b

    with TimingContext("block"):
        assert add(1, 2) == 3
