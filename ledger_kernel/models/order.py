"""
Module: ledger_kernel.models.order
Responsibility: ORM models for client orders and the two money flows owned by
    an order: client payments (money in) and employee payments (money out).
Architecture position: Kernel > Models.  Mutated only through
    ledger_kernel.services; never patched directly by callers.

Invariants enforced (procedurally, by LedgerService):
    - employee_paid_amount == sum(EmployeePayment.amount) for the order.
    - sum(EmployeePayment.amount) <= total_price * payout ceiling ratio.
    - Deleting an order deletes its payments and employee payments
      (ORM cascade plus ON DELETE CASCADE).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import EmployeePaymentInfo, OrderInfo, PaymentInfo
from ledger_kernel.domain.values import OrderStatus


class Order(TrackedBase):
    """
    A piece of billable work for a client.

    Contract:
        ``employee`` is the display name the order was assigned to;
        ``employee_id`` is resolved by name once, at creation, and is not
        kept in sync afterwards.
        ``is_paid`` is the invoice-settled flag.  It is independent of the
        client Payment rows; both channels may coexist on one order.
    """

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_orders_employee", "employee"),
        Index("idx_orders_employee_id", "employee_id"),
        Index("idx_orders_created_by", "created_by_id"),
    )

    client: Mapped[str] = mapped_column(String(100), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
    service: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=OrderStatus.PENDING.value
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    employee: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    employee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    employee_paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)

    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Payment.payment_date",
    )

    employee_payments: Mapped[list["EmployeePayment"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="EmployeePayment.payment_date",
    )

    def to_dto(self) -> OrderInfo:
        return OrderInfo(
            id=self.id,
            client=self.client,
            client_name=self.client_name,
            description=self.description,
            service=self.service,
            status=self.status,
            employee=self.employee,
            employee_id=self.employee_id,
            total_price=self.total_price,
            employee_paid_amount=self.employee_paid_amount,
            is_paid=self.is_paid,
            created_by=self.created_by,
            created_by_id=self.created_by_id,
            start_date=self.start_date,
            end_date=self.end_date,
            notes=self.notes,
            payments=tuple(p.to_dto() for p in self.payments),
            employee_payments=tuple(ep.to_dto() for ep in self.employee_payments),
        )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.client} total={self.total_price} paid={self.is_paid}>"


class Payment(TrackedBase):
    """Money received from the client for an order."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payments_order", "order_id"),
        Index("idx_payments_date", "payment_date"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    received_by: Mapped[str] = mapped_column(String(255), nullable=False)
    received_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="payments")

    def to_dto(self) -> PaymentInfo:
        return PaymentInfo(
            id=self.id,
            order_id=self.order_id,
            amount=self.amount,
            payment_date=self.payment_date,
            payment_method=self.payment_method,
            received_by=self.received_by,
            received_by_id=self.received_by_id,
            receipt_number=self.receipt_number,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<Payment {self.id} order={self.order_id} amount={self.amount}>"


class EmployeePayment(TrackedBase):
    """
    Money paid out to an employee for work on an order.

    Contract:
        ``recipient`` is a free-text name and may differ from
        ``Order.employee``.  ``recipient_id`` is the stable key used for
        matching when the recipient resolved to a user at creation.
    """

    __tablename__ = "employee_payments"

    __table_args__ = (
        Index("idx_employee_payments_order", "order_id"),
        Index("idx_employee_payments_recipient", "recipient"),
        Index("idx_employee_payments_recipient_id", "recipient_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    processed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    processed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    recipient: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="employee_payments")

    def to_dto(self) -> EmployeePaymentInfo:
        return EmployeePaymentInfo(
            id=self.id,
            order_id=self.order_id,
            amount=self.amount,
            payment_date=self.payment_date,
            payment_method=self.payment_method,
            processed_by=self.processed_by,
            processed_by_id=self.processed_by_id,
            recipient=self.recipient,
            recipient_id=self.recipient_id,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<EmployeePayment {self.id} order={self.order_id} amount={self.amount}>"
