"""
Structured JSON logging for the ledger kernel.

Every record is written as one JSON object per line.  While an action runs,
its request-scoped fields (correlation id, acting user, action name and the
order or notification it touches) sit in a ContextVar and are merged into
each record.  A kernel error logged with ``exc_info`` contributes its
``code`` and structured attributes as ``exc_*`` keys.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "get_logger",
    "configure_logging",
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

LOGGER_PREFIX = "ledger_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "action",
    "order_id",
    "notification_id",
)

# Never mutated in place; bind() installs a fresh dict.
_context: ContextVar[dict[str, str]] = ContextVar("ledger_log_context", default={})


class LogContext:
    """Request-scoped fields merged into every ledger log record."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Add ``fields`` for the duration of the block.  None values are skipped."""
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context fields: {', '.join(unknown)}")
        merged = {**_context.get()}
        merged.update((k, v) for k, v in fields.items() if v is not None)
        token = _context.set(merged)
        try:
            yield
        finally:
            _context.reset(token)


_RECORD_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
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
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_KEYS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ledger_kernel namespace."""
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *, level: int = logging.INFO, handler: logging.Handler | None = None
) -> None:
    """Attach one JSON handler to the ledger_kernel logger (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        handler = handler or logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root = logging.getLogger(LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Drop the handlers installed by configure_logging.  Tests only."""
    global _configured
    with _lock:
        _configured = False
        root = logging.getLogger(LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
