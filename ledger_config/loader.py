"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a frozen
``LedgerConfig``.  The single public entry point for runtime config is
``ledger_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` (from parsing or ``LedgerConfig``).
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from YAML.  Floats go through ``str`` to keep 0.85 exact."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: expected a number, got {value!r}") from exc


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a ``LedgerConfig`` from the dict form of a YAML file.

    Missing sections and keys fall back to the ``LedgerConfig`` defaults.
    """
    defaults = LedgerConfig()
    payouts = data.get("payouts") or {}
    notifications = data.get("notifications") or {}
    access = data.get("access") or {}

    roles = access.get("privileged_roles", defaults.privileged_roles)
    if isinstance(roles, str):
        roles = [roles]

    return LedgerConfig(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        default_employee_rate=parse_decimal(
            payouts.get("default_employee_rate", defaults.default_employee_rate),
            "payouts.default_employee_rate",
        ),
        payout_ceiling_ratio=parse_decimal(
            payouts.get("payout_ceiling_ratio", defaults.payout_ceiling_ratio),
            "payouts.payout_ceiling_ratio",
        ),
        reverse_on_employee_payment_delete=bool(
            payouts.get(
                "reverse_on_employee_payment_delete",
                defaults.reverse_on_employee_payment_delete,
            )
        ),
        auto_payout_note=str(payouts.get("auto_payout_note", defaults.auto_payout_note)),
        notification_order_service=str(
            notifications.get("order_service", defaults.notification_order_service)
        ),
        business_timezone=str(
            notifications.get("business_timezone", defaults.business_timezone)
        ),
        privileged_roles=tuple(str(r).upper() for r in roles),
    )


def load_config(path: Path) -> LedgerConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))


def compute_checksum(config: LedgerConfig) -> str:
    """Deterministic SHA-256 of the parsed configuration, for the load trace."""
    canonical = json.dumps(
        {
            "config_id": config.config_id,
            "version": config.version,
            "default_employee_rate": str(config.default_employee_rate),
            "payout_ceiling_ratio": str(config.payout_ceiling_ratio),
            "reverse_on_employee_payment_delete": config.reverse_on_employee_payment_delete,
            "auto_payout_note": config.auto_payout_note,
            "notification_order_service": config.notification_order_service,
            "business_timezone": config.business_timezone,
            "privileged_roles": sorted(config.privileged_roles),
        },
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
