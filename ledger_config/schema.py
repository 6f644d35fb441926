"""
Configuration schema (``ledger_config.schema``).

Responsibility
--------------
Typed, frozen representation of a ledger configuration file.  Values are
kept close to their YAML spelling (strings for the timezone and roles);
``ledger_config.bridges`` turns them into the kernel's ``LedgerPolicy``.

Invariants enforced
-------------------
* ``payout_ceiling_ratio`` in (0, 1].
* ``default_employee_rate`` >= 0.
* ``business_timezone`` is a valid IANA zone name.
* At least one privileged role.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class LedgerConfig:
    """
    One loaded ledger configuration.

    Example YAML::

        config_id: newsroom-default
        version: 1
        payouts:
          default_employee_rate: "52"
          payout_ceiling_ratio: "0.85"
          reverse_on_employee_payment_delete: true
          auto_payout_note: "Выплата за рассылку (автоматически)"
        notifications:
          order_service: "Рассылки"
          business_timezone: "Europe/Moscow"
        access:
          privileged_roles: [ADMIN, CHIEF_EDITOR]
    """

    config_id: str = "defaults"
    version: int = 1
    default_employee_rate: Decimal = Decimal("52")
    payout_ceiling_ratio: Decimal = Decimal("0.85")
    reverse_on_employee_payment_delete: bool = True
    auto_payout_note: str = "Выплата за рассылку (автоматически)"
    notification_order_service: str = "Рассылки"
    business_timezone: str = "UTC"
    privileged_roles: tuple[str, ...] = ("ADMIN", "CHIEF_EDITOR")

    def __post_init__(self):
        if not (Decimal("0") < self.payout_ceiling_ratio <= Decimal("1")):
            raise ValueError(
                f"payout_ceiling_ratio must be in (0, 1], got {self.payout_ceiling_ratio}"
            )
        if self.default_employee_rate < 0:
            raise ValueError("default_employee_rate cannot be negative")
        if not self.privileged_roles:
            raise ValueError("privileged_roles cannot be empty")
        try:
            ZoneInfo(self.business_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(
                f"Unknown business_timezone: {self.business_timezone!r}"
            ) from exc
