"""
NotificationBillingService -- ad-campaign sends and their billing link.

Responsibility:
    Maintains the per-notification send state machine (daily limit,
    lifetime count, campaign auto-archive), the send history consumed by
    PayoutReconciler, and the optional billing Order created with a priced
    notification.

Architecture position:
    Kernel > Services -- imperative shell.  Order creation and deletion go
    through LedgerService so the order rules (employee resolution, deletion
    reversals) are shared.

Invariants enforced:
    - sent_count == number of sends; the send row, the counter and
      last_sent_time are written together under SELECT ... FOR UPDATE on
      the notification row, so concurrent sends cannot both slip past the
      daily limit.
    - Sends per local business day <= quantity.
    - The send that brings sent_count to quantity * campaign_days archives
      the notification.

Failure modes:
    - DailyLimitReachedError when today's sends already reach quantity.
    - HistoryEntryNotFoundError when no send matches a timestamp.
    - ForbiddenError on delete by someone who is neither privileged nor the
      author.

Design:
    ``toggle_single_history_payout`` is a manual correction tool.  It flips a
    send's paid flag without writing or retracting any ledger line.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import NotificationInfo, TransactionInfo
from ledger_kernel.domain.identity import (
    SessionIdentity,
    require_identity,
    require_owner_or_privileged,
    require_privileged,
)
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import (
    DailyLimitReachedError,
    HistoryEntryNotFoundError,
    NotificationNotFoundError,
    OrderNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.notification import Notification, NotificationSend
from ledger_kernel.services._fields import (
    check_updatable,
    optional_text,
    require_amount,
    require_date,
    require_instant,
    require_positive_int,
    require_text,
    require_time_of_day,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.user_directory import UserDirectory

logger = get_logger("services.notification")

NOTIFICATION_UPDATABLE = frozenset({
    "customer",
    "ad_text",
    "quantity",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "employee_rate",
})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_millis(instant: datetime) -> int:
    """Milliseconds since the epoch, truncating sub-millisecond precision."""
    return (instant - _EPOCH) // timedelta(milliseconds=1)


class NotificationBillingService(BaseService[Notification]):
    """Write side of ad-campaign notifications."""

    def __init__(
        self,
        session: Session,
        policy: LedgerPolicy | None = None,
        clock: Clock | None = None,
        directory: UserDirectory | None = None,
        ledger: LedgerService | None = None,
    ):
        super().__init__(session)
        self.policy = policy or LedgerPolicy()
        self.clock = clock or SystemClock()
        self.directory = directory or UserDirectory(session)
        self.ledger = ledger or LedgerService(
            session, self.policy, self.clock, self.directory
        )

    def _get_notification(
        self, notification_id: UUID, *, for_update: bool = False
    ) -> Notification:
        stmt = select(Notification).where(Notification.id == notification_id)
        if for_update:
            stmt = stmt.with_for_update()
        notification = self.session.execute(stmt).scalar_one_or_none()
        if notification is None:
            raise NotificationNotFoundError(str(notification_id))
        return notification

    # -----------------------------------------------------------------
    # Sends
    # -----------------------------------------------------------------

    def record_send(
        self,
        notification_id: UUID,
        acting_user_name: str | None,
        actor: SessionIdentity | None,
    ) -> NotificationInfo:
        """
        Record one send of the notification by the acting user.

        Postconditions:
            - One unpaid send appended with the sender's current label.
            - sent_count incremented and last_sent_time set to now.
            - is_archived set once sent_count reaches the campaign total.

        Raises:
            DailyLimitReachedError: ``quantity`` sends already recorded since
                the start of the current business day.
        """
        actor = require_identity(actor, "record_send")
        acting_user_name = optional_text(acting_user_name, "acting_user_name")
        notification = self._get_notification(notification_id, for_update=True)

        start_of_day = self.clock.start_of_day(self.policy.business_timezone)
        sent_today = self.session.execute(
            select(func.count())
            .select_from(NotificationSend)
            .where(
                NotificationSend.notification_id == notification.id,
                NotificationSend.sent_at >= start_of_day,
            )
        ).scalar_one()
        if sent_today >= notification.quantity:
            logger.warning(
                "daily_limit_reached",
                extra={
                    "notification_id": str(notification.id),
                    "sent_today": sent_today,
                    "quantity": notification.quantity,
                },
            )
            raise DailyLimitReachedError(
                str(notification.id), sent_today, notification.quantity
            )

        user_name = self.directory.resolve_display_name(
            actor.user_id, acting_user_name or actor.display_name
        )
        now = self.clock.now_utc()
        new_count = notification.sent_count + 1

        notification.sends.append(
            NotificationSend(
                sequence=new_count,
                user_id=actor.user_id,
                user_name=user_name,
                sent_at=now,
                is_paid=False,
                created_by_id=actor.user_id,
            )
        )
        notification.sent_count = new_count
        notification.last_sent_time = now
        archived = new_count >= notification.total_limit
        if archived:
            notification.is_archived = True
        notification.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "notification_sent",
            extra={
                "notification_id": str(notification.id),
                "sequence": new_count,
                "sender": user_name,
                "sent_today": sent_today + 1,
                "archived": archived,
            },
        )
        return notification.to_dto()

    def toggle_single_history_payout(
        self,
        notification_id: UUID,
        timestamp: datetime,
        actor: SessionIdentity | None,
    ) -> NotificationInfo:
        """
        Flip ``is_paid`` on the send(s) recorded at ``timestamp``.

        Timestamps are compared at millisecond precision.  No ledger line is
        written or retracted.
        """
        actor = require_privileged(
            actor, "toggle_single_history_payout", self.policy.privileged_roles
        )
        timestamp = require_instant(timestamp, "timestamp")
        notification = self._get_notification(notification_id, for_update=True)

        target = to_millis(timestamp)
        matched = [s for s in notification.sends if to_millis(s.sent_at) == target]
        if not matched:
            raise HistoryEntryNotFoundError(str(notification.id), timestamp.isoformat())
        for send in matched:
            send.is_paid = not send.is_paid
            send.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "history_payout_toggled",
            extra={
                "notification_id": str(notification.id),
                "sequences": [s.sequence for s in matched],
                "is_paid": matched[0].is_paid,
            },
        )
        return notification.to_dto()

    # -----------------------------------------------------------------
    # Notification lifecycle
    # -----------------------------------------------------------------

    def create_notification(
        self,
        actor: SessionIdentity | None,
        *,
        customer: str,
        ad_text: str,
        quantity: int,
        start_date: date,
        end_date: date,
        start_time: str = "12:00",
        end_time: str = "13:00",
        author: str | None = None,
        employee_rate: Decimal | int | str | None = None,
        price: Decimal | int | str | None = None,
    ) -> NotificationInfo:
        """
        Create a notification, first opening a billing Order when ``price``
        is positive.

        The order is booked under the configured notification service for
        the customer, assigned to the author.  Without a price (or with zero)
        the notification has no order.
        """
        actor = require_identity(actor, "create_notification")
        customer = require_text(customer, "customer")
        ad_text = require_text(ad_text, "ad_text")
        quantity = require_positive_int(quantity, "quantity")
        start_date = require_date(start_date, "start_date")
        end_date = require_date(end_date, "end_date")
        start_time = require_time_of_day(start_time, "start_time")
        end_time = require_time_of_day(end_time, "end_time")
        rate = (
            require_amount(employee_rate, "employee_rate", allow_zero=True)
            if employee_rate is not None
            else None
        )

        author = optional_text(author, "author")
        if author is None or author == actor.display_name:
            author, author_id = actor.display_name, actor.user_id
        else:
            match = self.directory.find_user_by_name_or_id(name=author)
            author_id = match.id if match else None

        order_id = None
        if price is not None:
            amount = require_amount(price, "price", allow_zero=True)
            if amount > 0:
                order = self.ledger.create_order(
                    actor,
                    client=customer,
                    service=self.policy.notification_order_service,
                    total_price=amount,
                    description=ad_text,
                    employee=author,
                    start_date=start_date,
                    end_date=end_date,
                )
                order_id = order.id

        notification = Notification(
            customer=customer,
            ad_text=ad_text,
            quantity=quantity,
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            author=author,
            author_id=author_id,
            sent_count=0,
            employee_rate=rate,
            is_archived=False,
            order_id=order_id,
            created_by_id=actor.user_id,
        )
        self.session.add(notification)
        self.session.flush()

        logger.info(
            "notification_created",
            extra={
                "notification_id": str(notification.id),
                "order_id": str(order_id) if order_id else None,
                "quantity": quantity,
                "campaign_days": notification.campaign_days,
            },
        )
        return notification.to_dto()

    def update_notification(
        self,
        notification_id: UUID,
        changes: Mapping[str, Any],
        actor: SessionIdentity | None,
    ) -> NotificationInfo:
        """Edit campaign fields.  Author, counters and history are not editable."""
        actor = require_identity(actor, "update_notification")
        notification = self._get_notification(notification_id, for_update=True)
        check_updatable(changes, NOTIFICATION_UPDATABLE)

        for key, value in changes.items():
            if key in ("customer", "ad_text"):
                value = require_text(value, key)
            elif key == "quantity":
                value = require_positive_int(value, key)
            elif key in ("start_date", "end_date"):
                value = require_date(value, key)
            elif key in ("start_time", "end_time"):
                value = require_time_of_day(value, key)
            elif key == "employee_rate" and value is not None:
                value = require_amount(value, key, allow_zero=True)
            setattr(notification, key, value)

        notification.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "notification_updated",
            extra={"notification_id": str(notification.id), "fields": sorted(changes)},
        )
        return notification.to_dto()

    def toggle_archive(
        self, notification_id: UUID, actor: SessionIdentity | None
    ) -> NotificationInfo:
        actor = require_identity(actor, "toggle_archive")
        notification = self._get_notification(notification_id, for_update=True)
        notification.is_archived = not notification.is_archived
        notification.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "notification_archive_toggled",
            extra={
                "notification_id": str(notification.id),
                "is_archived": notification.is_archived,
            },
        )
        return notification.to_dto()

    def delete_notification(
        self, notification_id: UUID, actor: SessionIdentity | None
    ) -> tuple[TransactionInfo, ...]:
        """
        Delete a notification.  Privileged roles or the notification's author.

        A linked order is deleted with it under the order-deletion rules;
        the reversal lines written for it are returned.
        """
        actor = require_identity(actor, "delete_notification")
        notification = self._get_notification(notification_id, for_update=True)
        require_owner_or_privileged(
            actor,
            "delete_notification",
            self._author_key(notification, actor),
            self.policy.privileged_roles,
        )

        reversals: tuple[TransactionInfo, ...] = ()
        order_id = notification.order_id
        if order_id is not None:
            try:
                order = self.ledger.lock_order(order_id)
            except OrderNotFoundError:
                order = None
            if order is not None:
                reversals = self.ledger.remove_order(order, actor)
        if not inspect(notification).was_deleted:
            self.session.delete(notification)
        self.session.flush()

        logger.info(
            "notification_deleted",
            extra={
                "notification_id": str(notification_id),
                "order_id": str(order_id) if order_id else None,
                "reversal_count": len(reversals),
            },
        )
        return reversals

    @staticmethod
    def _author_key(notification: Notification, actor: SessionIdentity) -> UUID | None:
        """Owner id for the authorization check; legacy rows match by name."""
        if notification.author_id is not None:
            return notification.author_id
        if notification.author == actor.display_name:
            return actor.user_id
        return None
