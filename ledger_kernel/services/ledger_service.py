"""
LedgerService -- every money-touching mutation of orders and their payments.

Responsibility:
    Creates, updates and deletes orders, client payments, employee payments
    and manual ledger lines, emitting the Transaction rows that keep the
    balance sheet derivable from the entity set.

Architecture position:
    Kernel > Services -- imperative shell.  Used directly by
    ``ledger_services.actions`` and by PayoutReconciler /
    NotificationBillingService, which reuse ``post_employee_payment`` and
    ``remove_order`` so the same rules apply on every path.

Invariants enforced:
    - employee_paid_amount == sum(EmployeePayment.amount): every add and
      delete adjusts the running total in the same flush as the row.
    - sum(EmployeePayment.amount) <= total_price * payout_ceiling_ratio:
      checked under SELECT ... FOR UPDATE on the order row.
    - is_paid toggles emit exactly one INCOME ("Счет оплачен") or EXPENSE
      ("Отмена счета") line for total_price; earlier lines are never
      deleted, the new line corrects the balance.
    - total_price cannot change while is_paid is true, so every reversal
      offsets the amount actually booked.
    - Automatic (order-linked) ledger lines cannot be edited or deleted
      through the manual transaction operations.

Failure modes:
    - UnauthorizedError / ForbiddenError before any row is touched.
    - *NotFoundError for missing orders, payments, transactions.
    - ValidationFailedError for malformed fields.
    - PayoutLimitExceededError when the payout ceiling would be crossed.

Audit relevance:
    Each reversal line carries ``order_id`` (and ``employee_payment_id``
    where applicable) as weak references so it outlives the rows it
    reverses.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    EmployeePaymentInfo,
    OrderInfo,
    PaymentInfo,
    TransactionInfo,
)
from ledger_kernel.domain.identity import (
    SessionIdentity,
    require_identity,
    require_owner_or_privileged,
    require_privileged,
)
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.domain.values import (
    Category,
    OrderStatus,
    PaymentMethod,
    TransactionType,
)
from ledger_kernel.exceptions import (
    EmployeePaymentNotFoundError,
    OrderNotFoundError,
    PaymentNotFoundError,
    PayoutLimitExceededError,
    TransactionNotFoundError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.notification import Notification, NotificationSend
from ledger_kernel.models.order import EmployeePayment, Order, Payment
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services._fields import (
    check_updatable,
    optional_date,
    optional_text,
    require_amount,
    require_choice,
    require_instant,
    require_text,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.user_directory import UserDirectory

logger = get_logger("services.ledger")

ORDER_UPDATABLE = frozenset({
    "client",
    "client_name",
    "description",
    "service",
    "status",
    "start_date",
    "end_date",
    "employee",
    "total_price",
    "notes",
    "is_paid",
})

PAYMENT_UPDATABLE = frozenset({
    "amount",
    "payment_date",
    "payment_method",
    "received_by",
    "receipt_number",
    "notes",
})

TRANSACTION_UPDATABLE = frozenset({
    "type",
    "amount",
    "category",
    "description",
    "date",
})


def order_ref(order_id: UUID) -> str:
    """Short order reference used in ledger descriptions."""
    return str(order_id)[-4:]


class LedgerService(BaseService[Order]):
    """
    Write side of the order ledger.

    Contract:
        Every public method takes the caller's ``SessionIdentity`` (or None)
        and returns frozen DTOs.  Changes are flushed, never committed.
    """

    def __init__(
        self,
        session: Session,
        policy: LedgerPolicy | None = None,
        clock: Clock | None = None,
        directory: UserDirectory | None = None,
    ):
        super().__init__(session)
        self.policy = policy or LedgerPolicy()
        self.clock = clock or SystemClock()
        self.directory = directory or UserDirectory(session)

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    def _get_order(self, order_id: UUID, *, for_update: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        order = self.session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def lock_order(self, order_id: UUID) -> Order:
        """Load an order under SELECT ... FOR UPDATE for a check-then-write."""
        return self._get_order(order_id, for_update=True)

    def _get_payment(self, payment_id: UUID) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def _get_employee_payment(self, payment_id: UUID) -> EmployeePayment:
        payment = self.session.get(EmployeePayment, payment_id)
        if payment is None:
            raise EmployeePaymentNotFoundError(str(payment_id))
        return payment

    def _get_transaction(self, transaction_id: UUID) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn

    # -----------------------------------------------------------------
    # Ledger lines
    # -----------------------------------------------------------------

    def _record_transaction(
        self,
        actor: SessionIdentity,
        type: TransactionType,
        amount: Decimal,
        category: str,
        description: str,
        *,
        order_id: UUID | None = None,
        employee_payment_id: UUID | None = None,
        when: datetime | None = None,
    ) -> Transaction:
        txn = Transaction(
            type=type.value,
            amount=amount,
            category=category,
            date=when or self.clock.now_utc(),
            description=description,
            created_by=actor.display_name,
            created_by_id=actor.user_id,
            order_id=order_id,
            employee_payment_id=employee_payment_id,
        )
        self.session.add(txn)
        return txn

    # -----------------------------------------------------------------
    # Orders
    # -----------------------------------------------------------------

    def create_order(
        self,
        actor: SessionIdentity | None,
        *,
        client: str,
        service: str,
        total_price: Decimal | int | str,
        description: str = "",
        client_name: str | None = None,
        employee: str = "",
        start_date: date | None = None,
        end_date: date | None = None,
        status: str = OrderStatus.PENDING.value,
        notes: str | None = None,
    ) -> OrderInfo:
        """
        Create an order.  No ledger lines are emitted.

        ``employee_id`` is resolved once by exact match of ``employee``
        against the users' display name or username; it stays None when no
        user matches.
        """
        actor = require_identity(actor, "create_order")
        order = self._build_order(
            actor,
            client=client,
            service=service,
            total_price=total_price,
            description=description,
            client_name=client_name,
            employee=employee,
            start_date=start_date,
            end_date=end_date,
            status=status,
            notes=notes,
        )
        return order.to_dto()

    def _build_order(self, actor: SessionIdentity, **fields: Any) -> Order:
        employee = optional_text(fields["employee"], "employee") or ""
        match = self.directory.find_user_by_name_or_id(name=employee) if employee else None
        order = Order(
            client=require_text(fields["client"], "client"),
            client_name=optional_text(fields["client_name"], "client_name"),
            description=optional_text(fields["description"], "description") or "",
            service=require_text(fields["service"], "service"),
            status=require_choice(fields["status"], "status", OrderStatus),
            start_date=optional_date(fields["start_date"], "start_date"),
            end_date=optional_date(fields["end_date"], "end_date"),
            employee=employee,
            employee_id=match.id if match else None,
            total_price=require_amount(fields["total_price"], "total_price"),
            employee_paid_amount=Decimal("0"),
            is_paid=False,
            notes=optional_text(fields["notes"], "notes"),
            created_by=actor.display_name,
            created_by_id=actor.user_id,
        )
        self.session.add(order)
        self.session.flush()

        logger.info(
            "order_created",
            extra={
                "order_id": str(order.id),
                "total_price": str(order.total_price),
                "employee": order.employee,
                "employee_resolved": order.employee_id is not None,
            },
        )
        return order

    def update_order(
        self,
        order_id: UUID,
        changes: Mapping[str, Any],
        actor: SessionIdentity | None,
    ) -> OrderInfo:
        """
        Apply ``changes`` to an order.  Creator or privileged role only.

        A change of ``is_paid`` emits one ledger line for total_price in the
        same unit of work: INCOME "Счет оплачен" on false->true, EXPENSE
        "Отмена счета" on true->false.  ``is_paid`` must be a real bool, and
        total_price is frozen while the invoice is marked paid so the
        reversing line always matches the one it offsets.
        """
        actor = require_identity(actor, "update_order")
        order = self._get_order(order_id, for_update=True)
        require_owner_or_privileged(
            actor, "update_order", order.created_by_id, self.policy.privileged_roles
        )
        check_updatable(changes, ORDER_UPDATABLE)
        new_paid = changes.get("is_paid", order.is_paid)
        if not isinstance(new_paid, bool):
            raise ValidationFailedError("is_paid", "must be true or false")

        for key, value in changes.items():
            if key == "is_paid":
                continue
            if key in ("client", "service"):
                value = require_text(value, key)
            elif key in ("client_name", "notes"):
                value = optional_text(value, key)
            elif key == "description":
                value = optional_text(value, key) or ""
            elif key == "employee":
                value = optional_text(value, key) or ""
            elif key == "status":
                value = require_choice(value, key, OrderStatus)
            elif key in ("start_date", "end_date"):
                value = optional_date(value, key)
            elif key == "total_price":
                value = require_amount(value, key)
                if order.is_paid and value != order.total_price:
                    raise ValidationFailedError(
                        key, "cannot change while the invoice is marked paid"
                    )
                ceiling = self.policy.payout_ceiling(value)
                if order.employee_paid_amount > ceiling:
                    raise ValidationFailedError(
                        key,
                        f"payout ceiling {ceiling} would fall below the "
                        f"{order.employee_paid_amount} already paid out",
                    )
            setattr(order, key, value)

        if new_paid != order.is_paid:
            self._toggle_invoice_paid(order, new_paid, actor)

        order.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "order_updated",
            extra={"order_id": str(order.id), "fields": sorted(changes)},
        )
        return order.to_dto()

    def _toggle_invoice_paid(
        self, order: Order, new_paid: bool, actor: SessionIdentity
    ) -> Transaction:
        if new_paid:
            txn = self._record_transaction(
                actor,
                TransactionType.INCOME,
                order.total_price,
                Category.INVOICE_PAID,
                f"Оплата счета по заказу #{order_ref(order.id)} ({order.client})",
                order_id=order.id,
            )
        else:
            txn = self._record_transaction(
                actor,
                TransactionType.EXPENSE,
                order.total_price,
                Category.INVOICE_CANCELLED,
                f"Отмена оплаты счета по заказу #{order_ref(order.id)} ({order.client})",
                order_id=order.id,
            )
        order.is_paid = new_paid

        logger.info(
            "invoice_paid_toggled",
            extra={
                "order_id": str(order.id),
                "is_paid": new_paid,
                "amount": str(order.total_price),
                "transaction_type": txn.type,
            },
        )
        return txn

    def delete_order(
        self, order_id: UUID, actor: SessionIdentity | None
    ) -> tuple[TransactionInfo, ...]:
        """
        Delete an order with its payments.  Privileged roles only.

        Returns the reversal lines written: one EXPENSE for total_price when
        the invoice was paid, one INCOME per employee payment.
        """
        actor = require_privileged(actor, "delete_order", self.policy.privileged_roles)
        order = self._get_order(order_id, for_update=True)
        return self.remove_order(order, actor)

    def remove_order(
        self, order: Order, actor: SessionIdentity
    ) -> tuple[TransactionInfo, ...]:
        """
        Reverse and delete ``order``.  Authorization is the caller's job.

        Notifications that reference the order are deleted with it.
        """
        ref = order_ref(order.id)
        reversals: list[Transaction] = []

        if order.is_paid:
            reversals.append(
                self._record_transaction(
                    actor,
                    TransactionType.EXPENSE,
                    order.total_price,
                    Category.ORDER_DELETED,
                    f"Удаление оплаченного заказа #{ref} ({order.client})",
                    order_id=order.id,
                )
            )

        for payment in order.employee_payments:
            recipient = payment.recipient or order.employee
            reversals.append(
                self._record_transaction(
                    actor,
                    TransactionType.INCOME,
                    payment.amount,
                    Category.ORDER_DELETED,
                    f"Возврат выплаты сотруднику {recipient} при удалении заказа #{ref}",
                    order_id=order.id,
                    employee_payment_id=payment.id,
                )
            )

        notifications = self.session.execute(
            select(Notification).where(Notification.order_id == order.id)
        ).scalars().all()
        for notification in notifications:
            self.session.delete(notification)
        self.session.flush()

        order_id = order.id
        self.session.delete(order)
        self.session.flush()

        logger.info(
            "order_deleted",
            extra={
                "order_id": str(order_id),
                "reversal_count": len(reversals),
                "notifications_deleted": len(notifications),
            },
        )
        return tuple(txn.to_dto() for txn in reversals)

    # -----------------------------------------------------------------
    # Client payments
    # -----------------------------------------------------------------

    def add_payment(
        self,
        order_id: UUID,
        actor: SessionIdentity | None,
        *,
        amount: Decimal | int | str,
        payment_method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
        received_by: str | None = None,
        receipt_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentInfo:
        """Record money received from the client.  No ledger line."""
        actor = require_identity(actor, "add_payment")
        order = self._get_order(order_id)
        payment = Payment(
            amount=require_amount(amount, "amount"),
            payment_method=require_choice(payment_method, "payment_method", PaymentMethod),
            payment_date=(
                require_instant(payment_date, "payment_date")
                if payment_date is not None
                else self.clock.now_utc()
            ),
            received_by=optional_text(received_by, "received_by") or actor.display_name,
            received_by_id=actor.user_id,
            receipt_number=optional_text(receipt_number, "receipt_number"),
            notes=optional_text(notes, "notes"),
            created_by_id=actor.user_id,
        )
        order.payments.append(payment)
        self.session.flush()

        logger.info(
            "payment_added",
            extra={
                "order_id": str(order.id),
                "payment_id": str(payment.id),
                "amount": str(payment.amount),
            },
        )
        return payment.to_dto()

    def update_payment(
        self,
        payment_id: UUID,
        changes: Mapping[str, Any],
        actor: SessionIdentity | None,
    ) -> PaymentInfo:
        actor = require_identity(actor, "update_payment")
        payment = self._get_payment(payment_id)
        check_updatable(changes, PAYMENT_UPDATABLE)

        for key, value in changes.items():
            if key == "amount":
                value = require_amount(value, key)
            elif key == "payment_date":
                value = require_instant(value, key)
            elif key == "payment_method":
                value = require_choice(value, key, PaymentMethod)
            elif key == "received_by":
                value = require_text(value, key)
            else:
                value = optional_text(value, key)
            setattr(payment, key, value)

        payment.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "payment_updated",
            extra={"payment_id": str(payment.id), "fields": sorted(changes)},
        )
        return payment.to_dto()

    def delete_payment(self, payment_id: UUID, actor: SessionIdentity | None) -> None:
        """Remove a client payment.  No reversal line, mirroring add_payment."""
        require_identity(actor, "delete_payment")
        payment = self._get_payment(payment_id)
        order_id = payment.order_id
        payment.order.payments.remove(payment)
        self.session.flush()

        logger.info(
            "payment_deleted",
            extra={"order_id": str(order_id), "payment_id": str(payment_id)},
        )

    # -----------------------------------------------------------------
    # Employee payments
    # -----------------------------------------------------------------

    def add_employee_payment(
        self,
        order_id: UUID,
        actor: SessionIdentity | None,
        *,
        amount: Decimal | int | str,
        payment_method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
        recipient: str | None = None,
        recipient_id: UUID | None = None,
        notes: str | None = None,
    ) -> EmployeePaymentInfo:
        """
        Pay an employee for work on an order.

        Creates the payment row, raises the order's employee_paid_amount and
        writes an EXPENSE "Зарплата" line, all in the caller's unit of work.
        """
        actor = require_identity(actor, "add_employee_payment")
        amount = require_amount(amount, "amount")
        payment_method = require_choice(payment_method, "payment_method", PaymentMethod)
        if payment_date is not None:
            payment_date = require_instant(payment_date, "payment_date")
        order = self._get_order(order_id, for_update=True)
        payment = self.post_employee_payment(
            order,
            actor,
            amount,
            payment_method=payment_method,
            payment_date=payment_date,
            recipient=optional_text(recipient, "recipient"),
            recipient_id=recipient_id,
            notes=optional_text(notes, "notes"),
        )
        return payment.to_dto()

    def post_employee_payment(
        self,
        order: Order,
        actor: SessionIdentity,
        amount: Decimal,
        *,
        payment_method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
        recipient: str | None = None,
        recipient_id: UUID | None = None,
        notes: str | None = None,
    ) -> EmployeePayment:
        """
        Ceiling-checked employee payout against an already locked order.

        Preconditions: ``order`` was loaded with SELECT ... FOR UPDATE in the
            current transaction; ``amount`` is a validated positive Decimal.

        Raises:
            PayoutLimitExceededError: if the payout would cross the ceiling.
        """
        ceiling = self.policy.payout_ceiling(order.total_price)
        already_paid = order.employee_paid_amount
        if already_paid + amount > ceiling:
            logger.warning(
                "payout_limit_exceeded",
                extra={
                    "order_id": str(order.id),
                    "requested": str(amount),
                    "already_paid": str(already_paid),
                    "ceiling": str(ceiling),
                },
            )
            raise PayoutLimitExceededError(str(order.id), amount, already_paid, ceiling)

        recipient_name = recipient or order.employee
        if recipient_id is None:
            if recipient:
                match = self.directory.find_user_by_name_or_id(name=recipient)
                recipient_id = match.id if match else None
            else:
                recipient_id = order.employee_id

        when = payment_date or self.clock.now_utc()
        payment = EmployeePayment(
            amount=amount,
            payment_date=when,
            payment_method=payment_method,
            processed_by=actor.display_name,
            processed_by_id=actor.user_id,
            recipient=recipient_name or None,
            recipient_id=recipient_id,
            notes=notes,
            created_by_id=actor.user_id,
        )
        order.employee_payments.append(payment)
        order.employee_paid_amount = already_paid + amount
        order.updated_by_id = actor.user_id
        self.session.flush()

        self._record_transaction(
            actor,
            TransactionType.EXPENSE,
            amount,
            Category.SALARY,
            f"Выплата сотруднику {recipient_name} (Заказ #{order_ref(order.id)})",
            order_id=order.id,
            employee_payment_id=payment.id,
            when=when,
        )
        self.session.flush()

        logger.info(
            "employee_payment_recorded",
            extra={
                "order_id": str(order.id),
                "employee_payment_id": str(payment.id),
                "amount": str(amount),
                "recipient": recipient_name,
                "employee_paid_amount": str(order.employee_paid_amount),
            },
        )
        return payment

    def delete_employee_payment(
        self, payment_id: UUID, actor: SessionIdentity | None
    ) -> TransactionInfo | None:
        """
        Remove an employee payment and lower the order's running total.

        With ``reverse_on_employee_payment_delete`` (the default) an INCOME
        "Отмена выплаты" line offsets the original salary expense and the
        notification sends that payment settled become unpaid again.
        Returns the reversal line, or None when the flag is off.
        """
        actor = require_identity(actor, "delete_employee_payment")
        payment = self._get_employee_payment(payment_id)
        order = self._get_order(payment.order_id, for_update=True)

        order.employee_paid_amount = order.employee_paid_amount - payment.amount
        order.updated_by_id = actor.user_id

        reversal = None
        sends_reset = 0
        if self.policy.reverse_on_employee_payment_delete:
            recipient = payment.recipient or order.employee
            reversal = self._record_transaction(
                actor,
                TransactionType.INCOME,
                payment.amount,
                Category.PAYOUT_CANCELLED,
                f"Отмена выплаты сотруднику {recipient} (Заказ #{order_ref(order.id)})",
                order_id=order.id,
                employee_payment_id=payment.id,
            )
            sends = self.session.execute(
                select(NotificationSend).where(
                    NotificationSend.employee_payment_id == payment.id
                )
            ).scalars().all()
            for send in sends:
                send.is_paid = False
                send.employee_payment_id = None
                send.updated_by_id = actor.user_id
            sends_reset = len(sends)

        order.employee_payments.remove(payment)
        self.session.flush()

        logger.info(
            "employee_payment_deleted",
            extra={
                "order_id": str(order.id),
                "employee_payment_id": str(payment_id),
                "amount": str(payment.amount),
                "reversed": reversal is not None,
                "sends_reset": sends_reset,
            },
        )
        return reversal.to_dto() if reversal is not None else None

    # -----------------------------------------------------------------
    # Manual ledger lines
    # -----------------------------------------------------------------

    def create_transaction(
        self,
        actor: SessionIdentity | None,
        *,
        type: str,
        amount: Decimal | int | str,
        category: str = "",
        description: str = "",
        date: datetime | None = None,
    ) -> TransactionInfo:
        """Free-form INCOME or EXPENSE line not tied to any order."""
        actor = require_identity(actor, "create_transaction")
        txn = self._record_transaction(
            actor,
            TransactionType(require_choice(type, "type", TransactionType)),
            require_amount(amount, "amount"),
            optional_text(category, "category") or "",
            optional_text(description, "description") or "",
            when=require_instant(date, "date") if date is not None else None,
        )
        self.session.flush()

        logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(txn.id),
                "transaction_type": txn.type,
                "amount": str(txn.amount),
                "category": txn.category,
            },
        )
        return txn.to_dto()

    def _require_manual(self, txn: Transaction) -> None:
        if txn.order_id is not None or txn.employee_payment_id is not None:
            raise ValidationFailedError(
                "transaction_id",
                "order-linked ledger lines are maintained automatically",
            )

    def update_transaction(
        self,
        transaction_id: UUID,
        changes: Mapping[str, Any],
        actor: SessionIdentity | None,
    ) -> TransactionInfo:
        actor = require_identity(actor, "update_transaction")
        txn = self._get_transaction(transaction_id)
        self._require_manual(txn)
        check_updatable(changes, TRANSACTION_UPDATABLE)

        for key, value in changes.items():
            if key == "type":
                value = require_choice(value, key, TransactionType)
            elif key == "amount":
                value = require_amount(value, key)
            elif key == "date":
                value = require_instant(value, key)
            else:
                value = optional_text(value, key) or ""
            setattr(txn, key, value)

        txn.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "transaction_updated",
            extra={"transaction_id": str(txn.id), "fields": sorted(changes)},
        )
        return txn.to_dto()

    def delete_transaction(
        self, transaction_id: UUID, actor: SessionIdentity | None
    ) -> None:
        require_identity(actor, "delete_transaction")
        txn = self._get_transaction(transaction_id)
        self._require_manual(txn)
        self.session.delete(txn)
        self.session.flush()

        logger.info("transaction_deleted", extra={"transaction_id": str(transaction_id)})
