"""
PayoutReconciler -- pay an employee for every unpaid notification send.

Responsibility:
    Scans notification send history for unpaid sends attributable to one
    employee, pays order-linked notifications through an EmployeePayment
    (with its salary ledger line) and marks sends of order-less
    notifications paid without touching the ledger.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates the ceiling-checked
    payout to ``LedgerService.post_employee_payment``.

Invariants enforced:
    - Each order-linked chunk is atomic: payment row, order running total,
      "Зарплата" EXPENSE line and the flipped sends commit together inside
      a SAVEPOINT.  A failing chunk rolls back alone; chunks already done
      stay.
    - Sends are re-read under a row lock on their notification inside the
      chunk, so a send paid concurrently is never paid twice.
    - Order-less notifications are marked paid in the caller's unit of
      work, with no financial side effect.

Failure modes:
    - UnauthorizedError / ForbiddenError (privileged roles only).
    - ValidationFailedError for an empty employee name.
    - Per-chunk LedgerKernelError / SQLAlchemyError are caught, logged and
      reported in ``PayoutResult.failed_chunks``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.attribution import send_belongs_to
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.identity import SessionIdentity, require_privileged
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import LedgerKernelError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.notification import Notification, NotificationSend
from ledger_kernel.services._fields import require_text
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.user_directory import UserDirectory

logger = get_logger("services.payout")


class PayoutStatus(str, Enum):
    """Outcome of one pay-all run."""

    PAID = "paid"
    PARTIAL = "partial"
    NOTHING_TO_PAY = "nothing_to_pay"
    FAILED = "failed"


@dataclass(frozen=True)
class PaidChunk:
    notification_id: UUID
    order_id: UUID
    employee_payment_id: UUID
    amount: Decimal
    send_count: int


@dataclass(frozen=True)
class FailedChunk:
    notification_id: UUID
    order_id: UUID
    amount: Decimal
    error_code: str
    message: str


@dataclass(frozen=True)
class PayoutResult:
    """
    Result of ``pay_all_for_employee``.

    ``NOTHING_TO_PAY`` is a success with no effect.  ``PARTIAL`` means some
    chunks committed while others are listed in ``failed_chunks``.
    """

    status: PayoutStatus
    employee_name: str
    paid_chunks: tuple[PaidChunk, ...] = ()
    marked_paid: tuple[UUID, ...] = ()
    failed_chunks: tuple[FailedChunk, ...] = ()
    sends_paid: int = 0

    @property
    def is_success(self) -> bool:
        return self.status in (
            PayoutStatus.PAID,
            PayoutStatus.PARTIAL,
            PayoutStatus.NOTHING_TO_PAY,
        )

    @property
    def total_paid(self) -> Decimal:
        return sum((c.amount for c in self.paid_chunks), Decimal("0"))

    @classmethod
    def nothing_to_pay(cls, employee_name: str) -> PayoutResult:
        return cls(status=PayoutStatus.NOTHING_TO_PAY, employee_name=employee_name)


@dataclass(frozen=True)
class _Plan:
    notification_id: UUID
    order_id: UUID | None
    rate: Decimal
    send_ids: tuple[UUID, ...]

    @property
    def amount(self) -> Decimal:
        return self.rate * len(self.send_ids)


class PayoutReconciler(BaseService[Notification]):
    """Batch payout of notification sends for one employee."""

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

    def pay_all_for_employee(
        self,
        employee_name: str,
        actor: SessionIdentity | None,
        employee_id: UUID | None = None,
    ) -> PayoutResult:
        """
        Pay ``employee_name`` for every unpaid send attributed to them.

        A send matches when it is unpaid and either its live user label or
        its stored name snapshot equals ``employee_name``.  When
        ``employee_id`` is given, sends that carry a user id match on the id
        instead; sends without one still match by name.
        """
        actor = require_privileged(
            actor, "pay_all_for_employee", self.policy.privileged_roles
        )
        name = require_text(employee_name, "employee_name")

        plans = self._plan(name, employee_id)
        if not plans:
            logger.info("payout_nothing_to_pay", extra={"employee": name})
            return PayoutResult.nothing_to_pay(name)

        logger.info(
            "payout_started",
            extra={
                "employee": name,
                "notification_count": len(plans),
                "send_count": sum(len(p.send_ids) for p in plans),
            },
        )

        paid: list[PaidChunk] = []
        failed: list[FailedChunk] = []
        for plan in plans:
            if plan.order_id is None:
                continue
            try:
                with self.session.begin_nested():
                    chunk = self._pay_chunk(plan, name, employee_id, actor)
            except LedgerKernelError as exc:
                failed.append(self._failure(plan, exc.code, str(exc)))
                logger.warning(
                    "payout_chunk_failed",
                    extra={
                        "employee": name,
                        "notification_id": str(plan.notification_id),
                        "order_id": str(plan.order_id),
                        "amount": str(plan.amount),
                        "error_code": exc.code,
                    },
                )
                continue
            except SQLAlchemyError:
                failed.append(
                    self._failure(plan, "STORAGE_FAILURE", "storage failure")
                )
                logger.error(
                    "payout_chunk_failed",
                    extra={
                        "employee": name,
                        "notification_id": str(plan.notification_id),
                        "order_id": str(plan.order_id),
                        "amount": str(plan.amount),
                        "error_code": "STORAGE_FAILURE",
                    },
                    exc_info=True,
                )
                continue
            if chunk is not None:
                paid.append(chunk)

        marked, marked_sends = self._mark_paid_without_order(
            [p for p in plans if p.order_id is None], actor
        )

        sends_paid = sum(c.send_count for c in paid) + marked_sends
        if sends_paid == 0 and not failed:
            status = PayoutStatus.NOTHING_TO_PAY
        elif sends_paid == 0:
            status = PayoutStatus.FAILED
        elif failed:
            status = PayoutStatus.PARTIAL
        else:
            status = PayoutStatus.PAID

        result = PayoutResult(
            status=status,
            employee_name=name,
            paid_chunks=tuple(paid),
            marked_paid=tuple(marked),
            failed_chunks=tuple(failed),
            sends_paid=sends_paid,
        )
        logger.info(
            "payout_completed",
            extra={
                "employee": name,
                "status": status.value,
                "total_paid": str(result.total_paid),
                "sends_paid": sends_paid,
                "failed_chunks": len(failed),
            },
        )
        return result

    # -----------------------------------------------------------------
    # Planning
    # -----------------------------------------------------------------

    def _plan(self, name: str, employee_id: UUID | None) -> list[_Plan]:
        notifications = self.session.execute(
            select(Notification)
            .where(Notification.sends.any(NotificationSend.is_paid.is_(False)))
            .order_by(Notification.created_at, Notification.id)
        ).scalars().all()

        labels = self.directory.labels_by_id(
            s.user_id for n in notifications for s in n.sends
        )

        plans = []
        for notification in notifications:
            matched = tuple(
                s.id
                for s in notification.sends
                if not s.is_paid
                and send_belongs_to(s.user_id, s.user_name, name, labels, employee_id)
            )
            if matched:
                plans.append(
                    _Plan(
                        notification_id=notification.id,
                        order_id=notification.order_id,
                        rate=self.policy.rate_for(notification.employee_rate),
                        send_ids=matched,
                    )
                )
        return plans

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def _lock_unpaid_sends(self, plan: _Plan) -> list[NotificationSend]:
        self.session.execute(
            select(Notification.id)
            .where(Notification.id == plan.notification_id)
            .with_for_update()
        )
        return list(
            self.session.execute(
                select(NotificationSend)
                .where(
                    NotificationSend.id.in_(plan.send_ids),
                    NotificationSend.is_paid.is_(False),
                )
                .order_by(NotificationSend.sequence)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _pay_chunk(
        self,
        plan: _Plan,
        name: str,
        employee_id: UUID | None,
        actor: SessionIdentity,
    ) -> PaidChunk | None:
        sends = self._lock_unpaid_sends(plan)
        if not sends:
            return None
        amount = plan.rate * len(sends)

        order = self.ledger.lock_order(plan.order_id)
        payment = self.ledger.post_employee_payment(
            order,
            actor,
            amount,
            recipient=name,
            recipient_id=employee_id,
            notes=self.policy.auto_payout_note,
        )
        for send in sends:
            send.is_paid = True
            send.employee_payment_id = payment.id
            send.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "payout_chunk_committed",
            extra={
                "employee": name,
                "notification_id": str(plan.notification_id),
                "order_id": str(plan.order_id),
                "employee_payment_id": str(payment.id),
                "amount": str(amount),
                "send_count": len(sends),
            },
        )
        return PaidChunk(
            notification_id=plan.notification_id,
            order_id=plan.order_id,
            employee_payment_id=payment.id,
            amount=amount,
            send_count=len(sends),
        )

    def _mark_paid_without_order(
        self, plans: list[_Plan], actor: SessionIdentity
    ) -> tuple[list[UUID], int]:
        marked: list[UUID] = []
        send_count = 0
        for plan in plans:
            sends = self._lock_unpaid_sends(plan)
            if not sends:
                continue
            for send in sends:
                send.is_paid = True
                send.updated_by_id = actor.user_id
            marked.append(plan.notification_id)
            send_count += len(sends)
        if marked:
            self.session.flush()
            logger.info(
                "payout_marked_paid",
                extra={"notification_count": len(marked), "send_count": send_count},
            )
        return marked, send_count

    @staticmethod
    def _failure(plan: _Plan, code: str, message: str) -> FailedChunk:
        return FailedChunk(
            notification_id=plan.notification_id,
            order_id=plan.order_id,
            amount=plan.amount,
            error_code=code,
            message=message,
        )
