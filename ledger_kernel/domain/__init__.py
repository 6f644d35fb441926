"""
Pure domain layer: clock, caller identity, ledger vocabulary and DTOs.

Nothing here touches the ORM or the database.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    EmployeePaymentInfo,
    NotificationInfo,
    OrderInfo,
    PaymentInfo,
    SendRecord,
    TransactionInfo,
    UserInfo,
)
from ledger_kernel.domain.identity import Role, SessionIdentity
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.domain.values import (
    Category,
    OrderStatus,
    PaymentMethod,
    TransactionType,
)

__all__ = [
    "Category",
    "Clock",
    "DeterministicClock",
    "EmployeePaymentInfo",
    "LedgerPolicy",
    "NotificationInfo",
    "OrderInfo",
    "OrderStatus",
    "PaymentInfo",
    "PaymentMethod",
    "Role",
    "SendRecord",
    "SessionIdentity",
    "SystemClock",
    "TransactionInfo",
    "TransactionType",
    "UserInfo",
]
