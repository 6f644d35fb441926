"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Balance sheet and per-order money summaries, derived from
    Transaction and Payment rows at query time.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - balance = sum(INCOME) + sum(Payment.amount) - sum(EXPENSE).
    - No stored balances: every figure is recomputed from the rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import OrderInfo, TransactionInfo
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.domain.values import TransactionType
from ledger_kernel.exceptions import OrderNotFoundError
from ledger_kernel.models.order import Order, Payment
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceSummary:
    total_payments: Decimal
    total_income: Decimal
    total_expenses: Decimal
    since: datetime | None = None

    @property
    def revenue(self) -> Decimal:
        return self.total_income + self.total_payments

    @property
    def balance(self) -> Decimal:
        return self.revenue - self.total_expenses


@dataclass(frozen=True)
class OrderSummary:
    order_id: UUID
    total_price: Decimal
    is_paid: bool
    paid_by_client: Decimal
    employee_paid: Decimal
    payout_ceiling: Decimal

    @property
    def remaining_payout(self) -> Decimal:
        return max(self.payout_ceiling - self.employee_paid, _ZERO)


class LedgerSelector(BaseSelector[Transaction]):
    """Read access to the ledger."""

    def __init__(self, session: Session, policy: LedgerPolicy | None = None):
        super().__init__(session)
        self.policy = policy or LedgerPolicy()

    def _sum_transactions(self, type: TransactionType, since: datetime | None) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.type == type.value
        )
        if since is not None:
            stmt = stmt.where(Transaction.date >= since)
        return Decimal(self.session.execute(stmt).scalar_one())

    def balance_sheet(self, since: datetime | None = None) -> BalanceSummary:
        """Totals over all lines, or over lines dated at or after ``since``."""
        payments = select(func.coalesce(func.sum(Payment.amount), 0))
        if since is not None:
            payments = payments.where(Payment.payment_date >= since)

        return BalanceSummary(
            total_payments=Decimal(self.session.execute(payments).scalar_one()),
            total_income=self._sum_transactions(TransactionType.INCOME, since),
            total_expenses=self._sum_transactions(TransactionType.EXPENSE, since),
            since=since,
        )

    def get_order(self, order_id: UUID) -> OrderInfo:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order.to_dto()

    def order_summary(self, order_id: UUID) -> OrderSummary:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        paid_by_client = self.session.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.order_id == order_id
            )
        ).scalar_one()
        return OrderSummary(
            order_id=order.id,
            total_price=order.total_price,
            is_paid=order.is_paid,
            paid_by_client=Decimal(paid_by_client),
            employee_paid=order.employee_paid_amount,
            payout_ceiling=self.policy.payout_ceiling(order.total_price),
        )

    def transactions(
        self,
        *,
        order_id: UUID | None = None,
        category: str | None = None,
    ) -> list[TransactionInfo]:
        """Ledger lines in posting order, optionally for one order or category."""
        stmt = select(Transaction)
        if order_id is not None:
            stmt = stmt.where(Transaction.order_id == order_id)
        if category is not None:
            stmt = stmt.where(Transaction.category == category)
        stmt = stmt.order_by(Transaction.date, Transaction.created_at, Transaction.id)
        return [t.to_dto() for t in self.session.execute(stmt).scalars()]
