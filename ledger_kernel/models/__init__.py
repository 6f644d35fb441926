"""ORM models for the ledger kernel."""

from ledger_kernel.models.notification import Notification, NotificationSend
from ledger_kernel.models.order import EmployeePayment, Order, Payment
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.models.user import User

__all__ = [
    "EmployeePayment",
    "Notification",
    "NotificationSend",
    "Order",
    "Payment",
    "Transaction",
    "User",
]
