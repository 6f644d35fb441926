"""
Module: ledger_kernel.models.transaction
Responsibility: The income/expense ledger line.  Manual entries and every
    automatic entry (invoice settlement, salary, reversals) live here.
Architecture position: Kernel > Models.

Invariants enforced:
    - amount is positive; direction comes from ``type`` only.
    - order_id and employee_payment_id are weak references without foreign
      keys: reversal lines must outlive the order or payout they reverse.

Balance = sum(INCOME) + sum(Payment.amount) - sum(EXPENSE)
(see ledger_kernel.selectors.ledger_selector).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import TransactionInfo


class Transaction(TrackedBase):
    """One INCOME or EXPENSE line of the ledger."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_date", "date"),
        Index("idx_transactions_type", "type"),
        Index("idx_transactions_category", "category"),
        Index("idx_transactions_order", "order_id"),
        Index("idx_transactions_employee_payment", "employee_payment_id"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    date: Mapped[datetime] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employee_payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    def to_dto(self) -> TransactionInfo:
        return TransactionInfo(
            id=self.id,
            type=self.type,
            amount=self.amount,
            category=self.category,
            date=self.date,
            description=self.description,
            created_by=self.created_by,
            created_by_id=self.created_by_id,
            order_id=self.order_id,
            employee_payment_id=self.employee_payment_id,
        )

    def __repr__(self) -> str:
        return f"<Transaction {self.type} {self.amount} {self.category!r}>"
