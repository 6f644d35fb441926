"""Write-side services of the ledger kernel."""

from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification_billing import NotificationBillingService
from ledger_kernel.services.payout_reconciler import (
    FailedChunk,
    PaidChunk,
    PayoutReconciler,
    PayoutResult,
    PayoutStatus,
)
from ledger_kernel.services.user_directory import UserDirectory

__all__ = [
    "FailedChunk",
    "LedgerService",
    "NotificationBillingService",
    "PaidChunk",
    "PayoutReconciler",
    "PayoutResult",
    "PayoutStatus",
    "UserDirectory",
]
