"""
Structured JSON logging for the bookkeeping kernel.

Every record under the ``bookkeeping_kernel`` namespace is written as one
JSON object per line::

    {"ts": "...", "level": "INFO", "logger": "bookkeeping_kernel.services.ledger",
     "message": "transaction_posted", "tenant_id": "...", "actor_id": "...",
     "transaction_number": "SAL-2025-0001", "total_amount": "1180.00"}

Request-scoped identifiers (tenant, actor, transaction, correlation and
trace ids) live in ``contextvars`` so that concurrent sweeps and requests do
not leak ids into each other's lines.  Services bind them once per
operation with ``LogContext.bind(...)``.

Kernel exceptions carry a ``code`` and structured attributes; when a record
has exc_info those are flattened into ``exc_<attr>`` keys.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

ROOT_LOGGER_NAME = "bookkeeping_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "transaction_id",
    "trace_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"bookkeeping_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: Any) -> None:
        """
        Set context fields for the rest of the current context.

        None leaves a field unchanged.  Values are stored as strings.

        Raises:
            TypeError: An unknown field name.
        """
        for name, value in fields.items():
            if name not in _context_vars:
                raise TypeError(f"Unknown log context field: {name}")
            if value is not None:
                _context_vars[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Set fields for the duration of a ``with`` block, then restore them.

        Unknown names and None values are ignored, so callers can pass ids
        that may be absent.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if name in _context_vars and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else arrived through ``extra=``
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES:
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.ledger")``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configure_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``bookkeeping_kernel`` logger.

    Only the first call has any effect; later calls return immediately.
    Records do not propagate to the root logger.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.propagate = False
        output = handler or logging.StreamHandler(stream or sys.stderr)
        output.setFormatter(StructuredFormatter())
        root.addHandler(output)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging() again.  Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
