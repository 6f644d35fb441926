"""
Module: ledger_kernel.models.notification
Responsibility: ORM models for ad-campaign notifications and their send
    history.
Architecture position: Kernel > Models.  Mutated only through
    NotificationBillingService and PayoutReconciler.

Invariants enforced (procedurally, under a row lock on the notification):
    - sent_count == number of NotificationSend rows.
    - sequence numbers of a notification's sends are 1..sent_count.

Design:
    The send history is a child table keyed by (notification_id, sequence)
    rather than an embedded array, so marking sends paid is a per-row update
    and never rewrites the whole history.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import NotificationInfo, SendRecord


class Notification(TrackedBase):
    """
    An ad campaign sent out up to ``quantity`` times per day between
    ``start_date`` and ``end_date``.

    Contract:
        ``employee_rate`` overrides the configured default payout per send.
        ``order_id`` is set when the campaign was created with a price and
        points at the auto-created billing order.
    """

    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notifications_order", "order_id"),
        Index("idx_notifications_archived", "is_archived"),
    )

    customer: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_text: Mapped[str] = mapped_column(String(4000), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="12:00")
    end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="13:00")
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    author_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sent_time: Mapped[datetime | None] = mapped_column(nullable=True)
    employee_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
    )

    sends: Mapped[list["NotificationSend"]] = relationship(
        back_populates="notification",
        cascade="all, delete-orphan",
        order_by="NotificationSend.sequence",
        lazy="selectin",
    )

    @property
    def campaign_days(self) -> int:
        """Inclusive day span of the campaign window."""
        return abs((self.end_date - self.start_date).days) + 1

    @property
    def total_limit(self) -> int:
        return self.quantity * self.campaign_days

    def to_dto(self) -> NotificationInfo:
        return NotificationInfo(
            id=self.id,
            customer=self.customer,
            ad_text=self.ad_text,
            quantity=self.quantity,
            start_date=self.start_date,
            end_date=self.end_date,
            start_time=self.start_time,
            end_time=self.end_time,
            author=self.author,
            author_id=self.author_id,
            sent_count=self.sent_count,
            last_sent_time=self.last_sent_time,
            employee_rate=self.employee_rate,
            is_archived=self.is_archived,
            order_id=self.order_id,
            history=tuple(s.to_record() for s in self.sends),
        )

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.customer!r} sent={self.sent_count}>"


class NotificationSend(TrackedBase):
    """
    One send of a notification: who sent it, when, and whether that work has
    been paid out.

    Contract:
        ``user_name`` is a snapshot of the sender's label at send time.
        ``employee_payment_id`` is stamped by the payout reconciler when the
        send was settled through an order-linked EmployeePayment.
    """

    __tablename__ = "notification_sends"

    __table_args__ = (
        UniqueConstraint(
            "notification_id", "sequence", name="uq_notification_send_sequence"
        ),
        Index("idx_notification_sends_sent_at", "notification_id", "sent_at"),
        Index("idx_notification_sends_user", "user_id"),
        Index("idx_notification_sends_user_name", "user_name"),
        Index("idx_notification_sends_employee_payment", "employee_payment_id"),
    )

    notification_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    employee_payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    notification: Mapped["Notification"] = relationship(back_populates="sends")

    def to_record(self) -> SendRecord:
        return SendRecord(
            sequence=self.sequence,
            user_id=self.user_id,
            user_name=self.user_name,
            timestamp=self.sent_at,
            is_paid=self.is_paid,
            employee_payment_id=self.employee_payment_id,
        )

    def __repr__(self) -> str:
        return (
            f"<NotificationSend {self.notification_id}#{self.sequence} "
            f"{self.user_name!r} paid={self.is_paid}>"
        )
