"""Read-only selectors of the ledger kernel."""

from ledger_kernel.selectors.ledger_selector import (
    BalanceSummary,
    LedgerSelector,
    OrderSummary,
)
from ledger_kernel.selectors.payout_selector import (
    EmployeeStats,
    PayoutSelector,
    UnpaidWork,
)

__all__ = [
    "BalanceSummary",
    "EmployeeStats",
    "LedgerSelector",
    "OrderSummary",
    "PayoutSelector",
    "UnpaidWork",
]
