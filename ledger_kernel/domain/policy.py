"""
LedgerPolicy -- the tunable business rules services are constructed with.

The kernel never reads configuration files.  ``ledger_config`` builds a
``LedgerPolicy`` from YAML (see ``ledger_config.bridges``) and services receive
it through their constructors.  ``LedgerPolicy()`` gives the production
defaults.
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from zoneinfo import ZoneInfo

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.identity import DEFAULT_PRIVILEGED_ROLES


@dataclass(frozen=True)
class LedgerPolicy:
    """
    Guarantees:
        - ``payout_ceiling_ratio`` is in (0, 1].
        - ``default_employee_rate`` is non-negative.
    """

    default_employee_rate: Decimal = Decimal("52")
    payout_ceiling_ratio: Decimal = Decimal("0.85")
    business_timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    privileged_roles: frozenset[str] = DEFAULT_PRIVILEGED_ROLES
    reverse_on_employee_payment_delete: bool = True
    notification_order_service: str = "Рассылки"
    auto_payout_note: str = "Выплата за рассылку (автоматически)"

    def __post_init__(self):
        if not (Decimal("0") < self.payout_ceiling_ratio <= Decimal("1")):
            raise ValueError("payout_ceiling_ratio must be in (0, 1]")
        if self.default_employee_rate < 0:
            raise ValueError("default_employee_rate cannot be negative")

    def payout_ceiling(self, total_price: Decimal) -> Decimal:
        """Most that may be paid out to employees for an order, in cents."""
        return round_money(total_price * self.payout_ceiling_ratio, rounding=ROUND_DOWN)

    def rate_for(self, employee_rate: Decimal | None) -> Decimal:
        return employee_rate if employee_rate is not None else self.default_employee_rate
