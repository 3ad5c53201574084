"""Tests for the structured logging system (bookkeeping_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from bookkeeping_kernel.exceptions import ClosedFinancialYearError, UnbalancedTransactionError
from bookkeeping_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def stream():
    """Configure the kernel logger onto an in-memory stream."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    configure_logging(handler=handler)
    return buffer


def _records(buffer: StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_envelope(self, stream):
        get_logger("services.ledger").info("transaction_posted")

        (record,) = _records(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "transaction_posted"
        assert record["logger"] == "bookkeeping_kernel.services.ledger"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_included(self, stream):
        get_logger("services.ledger").info(
            "transaction_posted",
            extra={"transaction_number": "SAL-2025-0001", "line_count": 2},
        )

        (record,) = _records(stream)
        assert record["transaction_number"] == "SAL-2025-0001"
        assert record["line_count"] == 2

    def test_context_fields_included(self, stream):
        LogContext.set(correlation_id="req-42", tenant_id="tenant-1")
        get_logger("services.reconciliation").info("statement_imported")

        (record,) = _records(stream)
        assert record["correlation_id"] == "req-42"
        assert record["tenant_id"] == "tenant-1"

    def test_context_wins_over_extra(self, stream):
        with LogContext.bind(tenant_id="bound"):
            get_logger("test").info("x", extra={"tenant_id": "from-extra"})

        assert _records(stream)[0]["tenant_id"] == "bound"

    def test_no_context_fields_when_empty(self, stream):
        get_logger("test").info("bare_message")

        record = _records(stream)[0]
        assert not set(CONTEXT_FIELDS) & record.keys()

    def test_values_serialized(self, stream):
        bank_line = uuid4()
        get_logger("services.reconciliation").info(
            "bank_transaction_reconciled",
            extra={
                "bank_transaction_id": bank_line,
                "amount": Decimal("1180.50"),
                "transaction_date": date(2025, 4, 10),
            },
        )

        record = _records(stream)[0]
        assert record["bank_transaction_id"] == str(bank_line)
        assert record["amount"] == "1180.50"
        assert record["transaction_date"] == "2025-04-10"

    def test_plain_exception(self, stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields_flattened(self, stream):
        try:
            raise ClosedFinancialYearError("fy-1", "FY 2024-25", "2025-03-15")
        except ClosedFinancialYearError:
            get_logger("services.ledger").warning("transaction_post_failed", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_code"] == "CLOSED_FINANCIAL_YEAR"
        assert record["exc_type"] == "ClosedFinancialYearError"
        assert record["exc_year_name"] == "FY 2024-25"
        assert record["exc_transaction_date"] == "2025-03-15"

    def test_unbalanced_amounts_logged(self, stream):
        try:
            raise UnbalancedTransactionError("100.00", "99.99")
        except UnbalancedTransactionError:
            get_logger("services.ledger").warning("transaction_post_failed", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_code"] == "UNBALANCED_TRANSACTION"
        assert record["exc_debits"] == "100.00"
        assert record["exc_credits"] == "99.99"

    def test_one_json_object_per_line(self, stream):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        records = _records(stream)
        # Default level is INFO
        assert [r["message"] for r in records] == ["first", "second"]
        for record in records:
            assert {"ts", "level", "logger", "message"} <= record.keys()

    def test_formatter_standalone(self):
        record = logging.LogRecord("bookkeeping_kernel.x", logging.INFO, __file__, 1, "hi %s", ("there",), None)
        assert json.loads(StructuredFormatter().format(record))["message"] == "hi there"


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_set_none_keeps_value(self):
        LogContext.set(tenant_id="t")
        LogContext.set(tenant_id=None)
        assert LogContext.get_all() == {"tenant_id": "t"}

    def test_set_stringifies(self):
        tenant = uuid4()
        LogContext.set(tenant_id=tenant)
        assert LogContext.get_all()["tenant_id"] == str(tenant)

    def test_set_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.set(colour="blue")

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_outer_value(self):
        LogContext.set(tenant_id="outer")
        with LogContext.bind(tenant_id="inner"):
            assert LogContext.get_all()["tenant_id"] == "inner"
        assert LogContext.get_all()["tenant_id"] == "outer"

    def test_bind_restores_absent(self):
        with LogContext.bind(tenant_id="temp"):
            assert LogContext.get_all()["tenant_id"] == "temp"
        assert "tenant_id" not in LogContext.get_all()

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="a"):
                raise RuntimeError("inside")
        assert LogContext.get_all() == {}

    def test_nested_bind(self):
        with LogContext.bind(tenant_id="t1", actor_id="a1"):
            with LogContext.bind(tenant_id="t2", transaction_id="x"):
                assert LogContext.get_all() == {"tenant_id": "t2", "actor_id": "a1", "transaction_id": "x"}
            assert LogContext.get_all() == {"tenant_id": "t1", "actor_id": "a1"}

    def test_bind_skips_none_and_unknown(self):
        tenant = uuid4()
        with LogContext.bind(tenant_id=tenant, actor_id=None, colour="blue"):
            assert LogContext.get_all() == {"tenant_id": str(tenant)}

    def test_all_fields(self):
        LogContext.set(**{name: name.upper() for name in CONTEXT_FIELDS})
        assert len(LogContext.get_all()) == len(CONTEXT_FIELDS) == 5


# ---------------------------------------------------------------------------
# configure_logging / get_logger
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert len(logging.getLogger("bookkeeping_kernel").handlers) == 1

    def test_does_not_propagate(self, stream):
        assert logging.getLogger("bookkeeping_kernel").propagate is False

    def test_reset_allows_reconfigure(self):
        configure_logging(level=logging.INFO, handler=logging.StreamHandler(StringIO()))
        reset_logging()

        root = logging.getLogger("bookkeeping_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING

        configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(StringIO()))
        assert root.level == logging.DEBUG

    def test_get_logger_namespaced(self):
        assert get_logger("services.ledger").name == "bookkeeping_kernel.services.ledger"

    def test_nested_logger_reaches_handler(self):
        buffer = StringIO()
        configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(buffer))

        get_logger("db.immutability").debug("hierarchy_test")

        record = _records(buffer)[0]
        assert record["logger"] == "bookkeeping_kernel.db.immutability"
