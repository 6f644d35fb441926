"""
ledger_services.orchestrator -- wiring of kernel services for one unit of work.

Responsibility:
    Creates every kernel service and selector exactly once per session and
    wires them together, so LedgerService, PayoutReconciler and
    NotificationBillingService share one UserDirectory, policy and clock.

Non-goals:
    - Does NOT manage transaction boundaries (``session_scope`` does).
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.payout_selector import PayoutSelector
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notification_billing import NotificationBillingService
from ledger_kernel.services.payout_reconciler import PayoutReconciler
from ledger_kernel.services.user_directory import UserDirectory


class LedgerOrchestrator:
    """Central factory for the kernel services bound to one session."""

    def __init__(
        self,
        session: Session,
        policy: LedgerPolicy,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.policy = policy
        self.clock = clock or SystemClock()

        self.directory = UserDirectory(session)
        self.ledger = LedgerService(session, policy, self.clock, self.directory)
        self.billing = NotificationBillingService(
            session, policy, self.clock, self.directory, ledger=self.ledger
        )
        self.reconciler = PayoutReconciler(
            session, policy, self.clock, self.directory, ledger=self.ledger
        )

        self.ledger_selector = LedgerSelector(session, policy)
        self.payout_selector = PayoutSelector(session, policy)
