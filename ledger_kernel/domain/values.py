"""
Ledger vocabulary: enums and reserved transaction categories.

The reserved categories are persisted verbatim (they are what the finance
screens filter and label by), so their Russian spelling is part of the data
format.
"""

from enum import Enum


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Category:
    """Reserved transaction categories."""

    SALARY = "Зарплата"
    INVOICE_PAID = "Счет оплачен"
    INVOICE_CANCELLED = "Отмена счета"
    ORDER_DELETED = "Удаление заказа"
    PAYOUT_CANCELLED = "Отмена выплаты"

    RESERVED: frozenset[str] = frozenset(
        {SALARY, INVOICE_PAID, INVOICE_CANCELLED, ORDER_DELETED, PAYOUT_CANCELLED}
    )


SYSTEM_ACTOR_NAME = "System"
