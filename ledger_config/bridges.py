"""
Config -> Kernel bridge.

Converts a ``LedgerConfig`` into the kernel's ``LedgerPolicy``.  Lives here
because the kernel must never import ``ledger_config``.
"""

from __future__ import annotations

from zoneinfo import ZoneInfo

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.policy import LedgerPolicy


def build_ledger_policy(config: LedgerConfig) -> LedgerPolicy:
    """Build the policy every kernel service is constructed with."""
    return LedgerPolicy(
        default_employee_rate=config.default_employee_rate,
        payout_ceiling_ratio=config.payout_ceiling_ratio,
        business_timezone=ZoneInfo(config.business_timezone),
        privileged_roles=frozenset(config.privileged_roles),
        reverse_on_employee_payment_delete=config.reverse_on_employee_payment_delete,
        notification_order_service=config.notification_order_service,
        auto_payout_note=config.auto_payout_note,
    )
