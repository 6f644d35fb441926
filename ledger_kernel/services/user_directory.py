"""
UserDirectory -- name and id lookups against the portal's user table.

The ledger matches people by label (display name, else username) because
orders and send history were historically keyed by name.  New rows also
carry the user id; this service resolves between the two.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select

from ledger_kernel.domain.dtos import UserInfo
from ledger_kernel.models.user import User
from ledger_kernel.services.base import BaseService


class UserDirectory(BaseService[User]):
    """Read access to users, shared by the ledger services."""

    def find_user_by_name_or_id(
        self,
        name: str | None = None,
        user_id: UUID | None = None,
    ) -> UserInfo | None:
        """
        Find a user by id, or by exact (case-sensitive) name.

        A name matches a user's display_name or username.  When several users
        match, the first by username wins so the result is deterministic.
        """
        if user_id is not None:
            user = self.session.get(User, user_id)
            if user is not None:
                return user.to_dto()
        if not name:
            return None
        stmt = (
            select(User)
            .where(or_(User.display_name == name, User.username == name))
            .order_by(User.username)
            .limit(1)
        )
        user = self.session.execute(stmt).scalar_one_or_none()
        return user.to_dto() if user else None

    def resolve_display_name(self, user_id: UUID | None, fallback: str) -> str:
        """Current label of ``user_id``; ``fallback`` when unknown."""
        if user_id is None:
            return fallback
        user = self.session.get(User, user_id)
        return user.label if user is not None else fallback

    def labels_by_id(self, user_ids: Iterable[UUID]) -> dict[UUID, str]:
        """Bulk variant of ``resolve_display_name`` for history scans."""
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        rows = self.session.execute(select(User).where(User.id.in_(ids))).scalars()
        return {user.id: user.label for user in rows}
