"""Input checks shared by the write-side services."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from ledger_kernel.db.types import to_money
from ledger_kernel.exceptions import ValidationFailedError

_TIME_OF_DAY_LEN = 5


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailedError(field, "required")
    return value.strip()


def optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailedError(field, "must be text")
    return value.strip() or None


def require_amount(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    """Coerce ``value`` to a finite Decimal greater than zero."""
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationFailedError(field, str(exc)) from exc
    if not amount.is_finite():
        raise ValidationFailedError(field, "must be a finite amount")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationFailedError(field, "must be positive")
    return amount


def require_choice(value: Any, field: str, choices: type[Enum]) -> str:
    raw = value.value if isinstance(value, Enum) else value
    allowed = {member.value for member in choices}
    if raw not in allowed:
        raise ValidationFailedError(
            field, f"must be one of {', '.join(sorted(allowed))}"
        )
    return raw


def require_instant(value: Any, field: str) -> datetime:
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise ValidationFailedError(field, "must be a timezone-aware datetime")
    return value


def optional_date(value: Any, field: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime) or not isinstance(value, date):
        raise ValidationFailedError(field, "must be a calendar date")
    return value


def require_date(value: Any, field: str) -> date:
    if value is None:
        raise ValidationFailedError(field, "required")
    return optional_date(value, field)


def require_time_of_day(value: Any, field: str) -> str:
    """``HH:MM`` wall-clock time."""
    text = require_text(value, field)
    hours, sep, minutes = text.partition(":")
    if (
        len(text) != _TIME_OF_DAY_LEN
        or sep != ":"
        or not (hours.isdigit() and minutes.isdigit())
        or int(hours) > 23
        or int(minutes) > 59
    ):
        raise ValidationFailedError(field, "must be HH:MM")
    return text


def require_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationFailedError(field, "must be a positive integer")
    return value


def check_updatable(changes: Mapping[str, Any], allowed: Iterable[str]) -> None:
    """Reject keys outside ``allowed`` before anything is written."""
    allowed = frozenset(allowed)
    for key in changes:
        if key not in allowed:
            raise ValidationFailedError(key, "not updatable")
