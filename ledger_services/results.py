"""
Action results returned across the ledger boundary.

Every action returns an ``ActionResult``; no exception crosses the boundary.
``to_dict()`` produces the ``{"success": ..., "data"|"error": ...}`` shape the
presentation layer consumes, with ids, amounts and instants as strings.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ActionStatus(str, Enum):
    """Outcome of an action.  Failure values equal the kernel error codes."""

    OK = "OK"
    NOTHING_TO_PAY = "NOTHING_TO_PAY"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_SUCCESS_STATUSES = frozenset({ActionStatus.OK, ActionStatus.NOTHING_TO_PAY})


def to_plain(value: Any) -> Any:
    """Convert DTOs and value types into JSON-ready primitives."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class ActionResult:
    status: ActionStatus
    data: Any = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in _SUCCESS_STATUSES

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        return cls(status=ActionStatus.OK, data=data)

    @classmethod
    def nothing_to_pay(cls, data: Any = None) -> ActionResult:
        return cls(status=ActionStatus.NOTHING_TO_PAY, data=data)

    @classmethod
    def failure(cls, status: ActionStatus, error: str) -> ActionResult:
        return cls(status=status, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {
                "success": True,
                "status": self.status.value,
                "data": to_plain(self.data),
            }
        return {"success": False, "status": self.status.value, "error": self.error}
