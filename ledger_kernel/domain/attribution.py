"""
Attribution of notification sends to employees.

Sends recorded before user ids were captured only carry a name snapshot, and
users may be renamed after sending.  A send therefore belongs to an employee
when its live label or its snapshot equals the name; when the caller knows
the employee's id, sends that carry an id are matched on the id alone.
"""

from collections.abc import Mapping
from uuid import UUID


def effective_name(
    user_id: UUID | None, user_name: str, labels: Mapping[UUID, str]
) -> str:
    """Live label of the sender, falling back to the stored snapshot."""
    if user_id is None:
        return user_name
    return labels.get(user_id, user_name)


def send_belongs_to(
    user_id: UUID | None,
    user_name: str,
    employee_name: str,
    labels: Mapping[UUID, str],
    employee_id: UUID | None = None,
) -> bool:
    if employee_id is not None and user_id is not None:
        return user_id == employee_id
    return (
        effective_name(user_id, user_name, labels) == employee_name
        or user_name == employee_name
    )
