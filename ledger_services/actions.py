"""
ledger_services.actions -- request/response boundary of the ledger.

Responsibility:
    One method per ledger operation.  Each runs in its own
    ``session_scope()`` (commit on success, rollback on any exception),
    binds the request's log context, and converts every outcome into an
    ``ActionResult``.

Architecture position:
    Services -- the only layer the presentation code calls.  Builds the
    kernel services through LedgerOrchestrator with the policy derived from
    ``ledger_config``.

Invariants enforced:
    - No exception crosses the boundary: kernel errors map to their status,
      ``SQLAlchemyError`` maps to STORAGE_FAILURE with a generic message and
      is logged with its traceback.  Any other exception is logged the same
      way and returned as INTERNAL_ERROR.
    - Authorization runs inside the kernel before any row is written, and a
      failed action leaves no partial writes (the unit of work is rolled
      back).
    - ORM rows never leave the unit of work; results carry frozen DTOs.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerConfig, build_ledger_policy, get_active_config
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.identity import SessionIdentity, require_identity
from ledger_kernel.exceptions import LedgerKernelError, ValidationFailedError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.payout_reconciler import PayoutStatus
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.results import ActionResult, ActionStatus, to_plain

logger = get_logger("actions")


def _as_uuid(value: UUID | str | None, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationFailedError(field, "not a valid id") from exc


def _as_instant(value: datetime | str | None, field: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationFailedError(field, "not an ISO-8601 timestamp") from exc
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise ValidationFailedError(field, "must be a timezone-aware timestamp")
    return value


def _checked_fields(method: Callable[..., Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Match ``fields`` against the keyword-only parameters of ``method``."""
    params = {
        name: p
        for name, p in inspect.signature(method).parameters.items()
        if p.kind is inspect.Parameter.KEYWORD_ONLY
    }
    for key in fields:
        if key not in params:
            raise ValidationFailedError(key, "unknown field")
    for name, param in params.items():
        if param.default is inspect.Parameter.empty and name not in fields:
            raise ValidationFailedError(name, "required")
    return dict(fields)


class LedgerActions:
    """
    Entry points for the presentation layer.

    Contract:
        Every method takes the caller's ``SessionIdentity`` (None when the
        request is unauthenticated) and returns an ``ActionResult``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._policy = build_ledger_policy(self._config)
        self._clock = clock or SystemClock()

    def _run(
        self,
        action: str,
        identity: SessionIdentity | None,
        operation: Callable[[LedgerOrchestrator], Any],
        *,
        order_id: UUID | str | None = None,
        notification_id: UUID | str | None = None,
    ) -> ActionResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(identity.user_id) if identity else None,
            action=action,
            order_id=str(order_id) if order_id else None,
            notification_id=str(notification_id) if notification_id else None,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    orchestrator = LedgerOrchestrator(session, self._policy, self._clock)
                    outcome = operation(orchestrator)
            except LedgerKernelError as exc:
                logger.info(
                    "action_rejected",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                return ActionResult.failure(ActionStatus(exc.code), str(exc))
            except SQLAlchemyError:
                logger.error("action_storage_failure", exc_info=True)
                return ActionResult.failure(
                    ActionStatus.STORAGE_FAILURE, "The operation could not be saved"
                )
            except Exception:
                logger.error("action_unexpected_failure", exc_info=True)
                return ActionResult.failure(
                    ActionStatus.INTERNAL_ERROR, "The operation could not be completed"
                )

            if isinstance(outcome, ActionResult):
                return outcome
            logger.debug("action_completed")
            return ActionResult.ok(outcome)

    # -----------------------------------------------------------------
    # Orders
    # -----------------------------------------------------------------

    def create_order(
        self, identity: SessionIdentity | None, fields: Mapping[str, Any]
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.create_order(
                identity, **_checked_fields(o.ledger.create_order, fields)
            )

        return self._run("create_order", identity, op)

    def update_order(
        self,
        identity: SessionIdentity | None,
        order_id: UUID | str,
        changes: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.update_order(_as_uuid(order_id, "order_id"), changes, identity)

        return self._run("update_order", identity, op, order_id=order_id)

    def delete_order(
        self, identity: SessionIdentity | None, order_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            reversals = o.ledger.delete_order(_as_uuid(order_id, "order_id"), identity)
            return {"reversals": reversals}

        return self._run("delete_order", identity, op, order_id=order_id)

    # -----------------------------------------------------------------
    # Payments
    # -----------------------------------------------------------------

    def add_payment(
        self,
        identity: SessionIdentity | None,
        order_id: UUID | str,
        fields: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.add_payment(
                _as_uuid(order_id, "order_id"),
                identity,
                **_checked_fields(o.ledger.add_payment, fields),
            )

        return self._run("add_payment", identity, op, order_id=order_id)

    def update_payment(
        self,
        identity: SessionIdentity | None,
        payment_id: UUID | str,
        changes: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.update_payment(
                _as_uuid(payment_id, "payment_id"), changes, identity
            )

        return self._run("update_payment", identity, op)

    def delete_payment(
        self, identity: SessionIdentity | None, payment_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            o.ledger.delete_payment(_as_uuid(payment_id, "payment_id"), identity)

        return self._run("delete_payment", identity, op)

    def add_employee_payment(
        self,
        identity: SessionIdentity | None,
        order_id: UUID | str,
        fields: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.add_employee_payment(
                _as_uuid(order_id, "order_id"),
                identity,
                **_checked_fields(o.ledger.add_employee_payment, fields),
            )

        return self._run("add_employee_payment", identity, op, order_id=order_id)

    def delete_employee_payment(
        self, identity: SessionIdentity | None, payment_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            reversal = o.ledger.delete_employee_payment(
                _as_uuid(payment_id, "payment_id"), identity
            )
            return {"reversal": reversal}

        return self._run("delete_employee_payment", identity, op)

    # -----------------------------------------------------------------
    # Manual transactions
    # -----------------------------------------------------------------

    def create_transaction(
        self, identity: SessionIdentity | None, fields: Mapping[str, Any]
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.create_transaction(
                identity, **_checked_fields(o.ledger.create_transaction, fields)
            )

        return self._run("create_transaction", identity, op)

    def update_transaction(
        self,
        identity: SessionIdentity | None,
        transaction_id: UUID | str,
        changes: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.ledger.update_transaction(
                _as_uuid(transaction_id, "transaction_id"), changes, identity
            )

        return self._run("update_transaction", identity, op)

    def delete_transaction(
        self, identity: SessionIdentity | None, transaction_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            o.ledger.delete_transaction(
                _as_uuid(transaction_id, "transaction_id"), identity
            )

        return self._run("delete_transaction", identity, op)

    # -----------------------------------------------------------------
    # Notifications
    # -----------------------------------------------------------------

    def create_notification(
        self, identity: SessionIdentity | None, fields: Mapping[str, Any]
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.billing.create_notification(
                identity, **_checked_fields(o.billing.create_notification, fields)
            )

        return self._run("create_notification", identity, op)

    def update_notification(
        self,
        identity: SessionIdentity | None,
        notification_id: UUID | str,
        changes: Mapping[str, Any],
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.billing.update_notification(
                _as_uuid(notification_id, "notification_id"), changes, identity
            )

        return self._run(
            "update_notification", identity, op, notification_id=notification_id
        )

    def delete_notification(
        self, identity: SessionIdentity | None, notification_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            reversals = o.billing.delete_notification(
                _as_uuid(notification_id, "notification_id"), identity
            )
            return {"reversals": reversals}

        return self._run(
            "delete_notification", identity, op, notification_id=notification_id
        )

    def record_send(
        self,
        identity: SessionIdentity | None,
        notification_id: UUID | str,
        acting_user_name: str | None = None,
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.billing.record_send(
                _as_uuid(notification_id, "notification_id"), acting_user_name, identity
            )

        return self._run("record_send", identity, op, notification_id=notification_id)

    def toggle_single_history_payout(
        self,
        identity: SessionIdentity | None,
        notification_id: UUID | str,
        timestamp: datetime | str,
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.billing.toggle_single_history_payout(
                _as_uuid(notification_id, "notification_id"),
                _as_instant(timestamp, "timestamp"),
                identity,
            )

        return self._run(
            "toggle_single_history_payout",
            identity,
            op,
            notification_id=notification_id,
        )

    def toggle_archive(
        self, identity: SessionIdentity | None, notification_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            return o.billing.toggle_archive(
                _as_uuid(notification_id, "notification_id"), identity
            )

        return self._run("toggle_archive", identity, op, notification_id=notification_id)

    def pay_all_for_employee(
        self,
        identity: SessionIdentity | None,
        employee_name: str,
        employee_id: UUID | str | None = None,
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            result = o.reconciler.pay_all_for_employee(
                employee_name,
                identity,
                _as_uuid(employee_id, "employee_id") if employee_id else None,
            )
            data = {**to_plain(result), "total_paid": str(result.total_paid)}
            if result.status is PayoutStatus.NOTHING_TO_PAY:
                return ActionResult.nothing_to_pay(data)
            if result.status is PayoutStatus.FAILED:
                first = result.failed_chunks[0]
                return ActionResult.failure(ActionStatus(first.error_code), first.message)
            return ActionResult.ok(data)

        return self._run("pay_all_for_employee", identity, op)

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def balance_sheet(
        self, identity: SessionIdentity | None, since: datetime | str | None = None
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            require_identity(identity, "balance_sheet")
            summary = o.ledger_selector.balance_sheet(
                _as_instant(since, "since") if since is not None else None
            )
            return {
                **to_plain(summary),
                "revenue": str(summary.revenue),
                "balance": str(summary.balance),
            }

        return self._run("balance_sheet", identity, op)

    def order_summary(
        self, identity: SessionIdentity | None, order_id: UUID | str
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            require_identity(identity, "order_summary")
            summary = o.ledger_selector.order_summary(_as_uuid(order_id, "order_id"))
            return {
                **to_plain(summary),
                "remaining_payout": str(summary.remaining_payout),
            }

        return self._run("order_summary", identity, op, order_id=order_id)

    def unpaid_by_employee(self, identity: SessionIdentity | None) -> ActionResult:
        def op(o: LedgerOrchestrator):
            require_identity(identity, "unpaid_by_employee")
            return o.payout_selector.unpaid_by_employee()

        return self._run("unpaid_by_employee", identity, op)

    def employee_stats(
        self,
        identity: SessionIdentity | None,
        employee_name: str,
        employee_id: UUID | str | None = None,
    ) -> ActionResult:
        def op(o: LedgerOrchestrator):
            require_identity(identity, "employee_stats")
            stats = o.payout_selector.employee_stats(
                employee_name,
                _as_uuid(employee_id, "employee_id") if employee_id else None,
            )
            return {**to_plain(stats), "outstanding": str(stats.outstanding)}

        return self._run("employee_stats", identity, op)
