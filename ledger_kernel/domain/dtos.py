"""
Frozen data transfer objects handed across the action boundary.

ORM rows never leave a unit of work; every model converts itself with
``to_dto()`` before the session closes.  All monetary fields are Decimal.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    order_id: UUID
    amount: Decimal
    payment_date: datetime
    payment_method: str
    received_by: str
    received_by_id: UUID | None = None
    receipt_number: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class EmployeePaymentInfo:
    id: UUID
    order_id: UUID
    amount: Decimal
    payment_date: datetime
    payment_method: str
    processed_by: str
    processed_by_id: UUID | None = None
    recipient: str | None = None
    recipient_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    client: str
    client_name: str | None
    description: str
    service: str
    status: str
    employee: str
    employee_id: UUID | None
    total_price: Decimal
    employee_paid_amount: Decimal
    is_paid: bool
    created_by: str
    created_by_id: UUID
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None
    payments: tuple[PaymentInfo, ...] = ()
    employee_payments: tuple[EmployeePaymentInfo, ...] = ()


@dataclass(frozen=True)
class TransactionInfo:
    id: UUID
    type: str
    amount: Decimal
    category: str
    date: datetime
    description: str
    created_by: str
    created_by_id: UUID
    order_id: UUID | None = None
    employee_payment_id: UUID | None = None


@dataclass(frozen=True)
class SendRecord:
    """One entry of a notification's send history."""

    sequence: int
    user_id: UUID | None
    user_name: str
    timestamp: datetime
    is_paid: bool
    employee_payment_id: UUID | None = None


@dataclass(frozen=True)
class NotificationInfo:
    id: UUID
    customer: str
    ad_text: str
    quantity: int
    start_date: date
    end_date: date
    start_time: str
    end_time: str
    author: str
    author_id: UUID | None
    sent_count: int
    last_sent_time: datetime | None
    employee_rate: Decimal | None
    is_archived: bool
    order_id: UUID | None
    history: tuple[SendRecord, ...] = field(default=())


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    username: str
    display_name: str | None
    role: str

    @property
    def label(self) -> str:
        return self.display_name or self.username
