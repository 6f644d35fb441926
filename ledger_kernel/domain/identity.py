"""
Session identity and role checks.

The portal's auth layer resolves the caller before any ledger action runs;
the kernel only sees the resulting ``SessionIdentity``.  ``require_*``
helpers raise the typed authorization errors so every service applies the
same rules before touching storage.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from ledger_kernel.exceptions import ForbiddenError, UnauthorizedError


class Role(str, Enum):
    """Portal roles, highest privilege first."""

    ADMIN = "ADMIN"
    CHIEF_EDITOR = "CHIEF_EDITOR"
    EDITOR = "EDITOR"
    AUTHOR = "AUTHOR"


DEFAULT_PRIVILEGED_ROLES: frozenset[str] = frozenset(
    {Role.ADMIN.value, Role.CHIEF_EDITOR.value}
)


@dataclass(frozen=True)
class SessionIdentity:
    """The authenticated caller of a ledger action."""

    user_id: UUID
    display_name: str
    role: str

    def is_privileged(
        self, privileged_roles: frozenset[str] = DEFAULT_PRIVILEGED_ROLES
    ) -> bool:
        return self.role in privileged_roles


def require_identity(identity: SessionIdentity | None, action: str) -> SessionIdentity:
    """Return the identity or raise UnauthorizedError."""
    if identity is None:
        raise UnauthorizedError(action)
    return identity


def require_privileged(
    identity: SessionIdentity | None,
    action: str,
    privileged_roles: frozenset[str] = DEFAULT_PRIVILEGED_ROLES,
) -> SessionIdentity:
    """Return the identity if it holds a privileged role."""
    identity = require_identity(identity, action)
    if not identity.is_privileged(privileged_roles):
        raise ForbiddenError(action, str(identity.user_id), identity.role)
    return identity


def require_owner_or_privileged(
    identity: SessionIdentity | None,
    action: str,
    owner_id: UUID | None,
    privileged_roles: frozenset[str] = DEFAULT_PRIVILEGED_ROLES,
) -> SessionIdentity:
    """Return the identity if it owns the record or holds a privileged role."""
    identity = require_identity(identity, action)
    if identity.is_privileged(privileged_roles):
        return identity
    if owner_id is not None and owner_id == identity.user_id:
        return identity
    raise ForbiddenError(action, str(identity.user_id), identity.role)
