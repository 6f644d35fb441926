"""
Typed exception hierarchy for the ledger kernel.

Every error raised by a kernel service is a ``LedgerKernelError`` subclass
with a machine-readable ``code`` class attribute and structured attributes
carrying the context (ids, amounts, limits).  Callers catch by type, never
by message text.

    LedgerKernelError (base)
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |   +-- ForbiddenError
    |
    +-- EntityNotFoundError
    |   +-- OrderNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- EmployeePaymentNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- NotificationNotFoundError
    |   +-- HistoryEntryNotFoundError
    |
    +-- ValidationFailedError
    |
    +-- LimitError
        +-- DailyLimitReachedError
        +-- PayoutLimitExceededError

Category        | Code                 | When Raised
----------------|----------------------|-----------------------------------------
Authorization   | UNAUTHORIZED         | No session identity
                | FORBIDDEN            | Role/ownership check failed
----------------|----------------------|-----------------------------------------
Not found       | NOT_FOUND            | Referenced entity does not exist
----------------|----------------------|-----------------------------------------
Validation      | VALIDATION_FAILED    | Missing/malformed field
----------------|----------------------|-----------------------------------------
Limits          | DAILY_LIMIT_REACHED  | Notification sent ``quantity`` times today
                | LIMIT_EXCEEDED       | Employee payouts above the order ceiling

Storage failures are not wrapped: ``sqlalchemy.exc.SQLAlchemyError``
propagates to the action boundary, which rolls back and reports
``STORAGE_FAILURE``.
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Authorization


class AuthorizationError(LedgerKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """No authenticated session identity was supplied."""

    code: str = "UNAUTHORIZED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Authentication required for {action}")


class ForbiddenError(AuthorizationError):
    """Authenticated, but lacking the role or ownership the action needs."""

    code: str = "FORBIDDEN"

    def __init__(self, action: str, user_id: str, role: str):
        self.action = action
        self.user_id = user_id
        self.role = role
        super().__init__(
            f"User {user_id} with role {role} may not perform {action}"
        )


# Not found


class EntityNotFoundError(LedgerKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class OrderNotFoundError(EntityNotFoundError):
    entity = "Order"


class PaymentNotFoundError(EntityNotFoundError):
    entity = "Payment"


class EmployeePaymentNotFoundError(EntityNotFoundError):
    entity = "EmployeePayment"


class TransactionNotFoundError(EntityNotFoundError):
    entity = "Transaction"


class NotificationNotFoundError(EntityNotFoundError):
    entity = "Notification"


class HistoryEntryNotFoundError(EntityNotFoundError):
    """No send-history entry of the notification matches the timestamp."""

    entity = "History entry"

    def __init__(self, notification_id: str, timestamp: str):
        self.notification_id = notification_id
        self.timestamp = timestamp
        super().__init__(f"{notification_id}@{timestamp}")


# Validation


class ValidationFailedError(LedgerKernelError):
    """A required field is missing or malformed."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Limits


class LimitError(LedgerKernelError):
    """Base exception for quantitative limits."""

    code: str = "LIMIT_ERROR"


class DailyLimitReachedError(LimitError):
    """The notification was already sent ``quantity`` times today."""

    code: str = "DAILY_LIMIT_REACHED"

    def __init__(self, notification_id: str, sent_today: int, quantity: int):
        self.notification_id = notification_id
        self.sent_today = sent_today
        self.quantity = quantity
        super().__init__(
            f"Daily limit reached for notification {notification_id}: "
            f"{sent_today}/{quantity}"
        )


class PayoutLimitExceededError(LimitError):
    """An employee payment would push the order above its payout ceiling."""

    code: str = "LIMIT_EXCEEDED"

    def __init__(
        self,
        order_id: str,
        requested: Decimal,
        already_paid: Decimal,
        ceiling: Decimal,
    ):
        self.order_id = order_id
        self.requested = requested
        self.already_paid = already_paid
        self.ceiling = ceiling
        super().__init__(
            f"Payout of {requested} for order {order_id} exceeds ceiling "
            f"{ceiling} (already paid {already_paid})"
        )
