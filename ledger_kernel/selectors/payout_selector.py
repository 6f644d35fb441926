"""
Module: ledger_kernel.selectors.payout_selector
Responsibility: Who has unpaid notification work, and how much each
    employee has earned and been paid for sends.
Architecture position: Kernel > Selectors.

Amounts are ``sends x rate`` where rate is the notification's
employee_rate or the configured default.  Names are attributed the same
way PayoutReconciler does (live label, falling back to the snapshot).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.attribution import effective_name, send_belongs_to
from ledger_kernel.domain.dtos import NotificationInfo
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import NotificationNotFoundError
from ledger_kernel.models.notification import Notification, NotificationSend
from ledger_kernel.models.user import User
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class UnpaidWork:
    count: int
    amount: Decimal


@dataclass(frozen=True)
class EmployeeStats:
    employee: str
    sends_total: int
    sends_paid: int
    earned: Decimal
    paid: Decimal

    @property
    def outstanding(self) -> Decimal:
        return self.earned - self.paid


class PayoutSelector(BaseSelector[Notification]):
    """Read access to notification send history."""

    def __init__(self, session: Session, policy: LedgerPolicy | None = None):
        super().__init__(session)
        self.policy = policy or LedgerPolicy()

    def _labels(self, sends: list[NotificationSend]) -> dict[UUID, str]:
        ids = {s.user_id for s in sends if s.user_id is not None}
        if not ids:
            return {}
        users = self.session.execute(select(User).where(User.id.in_(ids))).scalars()
        return {u.id: u.label for u in users}

    def _all_notifications(self) -> list[Notification]:
        return list(
            self.session.execute(
                select(Notification).order_by(Notification.created_at, Notification.id)
            ).scalars()
        )

    def get_notification(self, notification_id: UUID) -> NotificationInfo:
        notification = self.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(str(notification_id))
        return notification.to_dto()

    def unpaid_by_employee(self) -> dict[str, UnpaidWork]:
        """Unpaid sends and their value, keyed by effective sender name."""
        notifications = self._all_notifications()
        labels = self._labels([s for n in notifications for s in n.sends])

        counts: dict[str, int] = {}
        amounts: dict[str, Decimal] = {}
        for notification in notifications:
            rate = self.policy.rate_for(notification.employee_rate)
            for send in notification.sends:
                if send.is_paid:
                    continue
                name = effective_name(send.user_id, send.user_name, labels)
                counts[name] = counts.get(name, 0) + 1
                amounts[name] = amounts.get(name, Decimal("0")) + rate
        return {
            name: UnpaidWork(count=counts[name], amount=amounts[name])
            for name in sorted(counts)
        }

    def employee_stats(
        self, employee_name: str, employee_id: UUID | None = None
    ) -> EmployeeStats:
        notifications = self._all_notifications()
        labels = self._labels([s for n in notifications for s in n.sends])

        total = paid = 0
        earned = paid_amount = Decimal("0")
        for notification in notifications:
            rate = self.policy.rate_for(notification.employee_rate)
            for send in notification.sends:
                if not send_belongs_to(
                    send.user_id, send.user_name, employee_name, labels, employee_id
                ):
                    continue
                total += 1
                earned += rate
                if send.is_paid:
                    paid += 1
                    paid_amount += rate
        return EmployeeStats(
            employee=employee_name,
            sends_total=total,
            sends_paid=paid,
            earned=earned,
            paid=paid_amount,
        )
