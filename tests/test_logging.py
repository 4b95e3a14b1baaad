"""Tests for the structured logging system (travel_kernel/logging_config.py)."""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from travel_kernel.exceptions import AlreadySettledError
from travel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        (record,) = _parse_all_logs(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "travel_kernel.test"
        assert "ts" in record

    def test_extra_fields_and_decimal(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("receipt_checked", extra={"amount": Decimal("10.50"), "lines": 2})

        (record,) = _parse_all_logs(stream)
        assert record["amount"] == "10.50"
        assert record["lines"] == 2

    def test_uuid_and_set_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("ids", extra={"trace": uid, "currencies": {"USD", "ARS"}})

        (record,) = _parse_all_logs(stream)
        assert record["trace"] == str(uid)
        assert record["currencies"] == ["ARS", "USD"]

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(agency_id=3, booking_id=41)
        get_logger("test").info("with_context")

        (record,) = _parse_all_logs(stream)
        assert record["agency_id"] == "3"
        assert record["booking_id"] == "41"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise AlreadySettledError(12, False, {"ARS": Decimal("0.00")})
        except AlreadySettledError:
            get_logger("test").error("receipt_rejected", exc_info=True)

        (record,) = _parse_all_logs(stream)
        assert record["exc_type"] == "AlreadySettledError"
        assert record["exc_code"] == "ALREADY_SETTLED"
        assert record["exc_booking_id"] == 12
        assert record["exc_debt_by_currency"] == {"ARS": "0.00"}
        assert "traceback" in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.debug("hidden")
        logger.warning("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]

    def test_configure_is_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", receipt_id="r-1")
        assert LogContext.get_all() == {"correlation_id": "x", "receipt_id": "r-1"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(booking_id="outer")
        with LogContext.bind(booking_id="inner", actor_id="u-9"):
            assert LogContext.get_all() == {"booking_id": "inner", "actor_id": "u-9"}
        assert LogContext.get_all() == {"booking_id": "outer"}

    def test_bind_skips_none_and_unknown(self):
        with LogContext.bind(booking_id=None, not_a_field="x"):
            assert LogContext.get_all() == {}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(receipt_id="r-2"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_fields_do_not_leak_across_threads(self):
        seen = {}

        def worker():
            seen["fields"] = LogContext.get_all()

        with LogContext.bind(agency_id=3):
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()
        assert seen["fields"] == {}
