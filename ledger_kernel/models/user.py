"""
Module: ledger_kernel.models.user
Responsibility: Read-mostly mirror of the portal's user directory.  The ledger
    only needs a user's id, how to label them, and their role.
Architecture position: Kernel > Models.

Invariants enforced:
    - username is unique.
    - The label shown anywhere in the ledger is display_name when set,
      otherwise username.
"""

from datetime import datetime

from sqlalchemy import Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UTCDateTime
from ledger_kernel.domain.dtos import UserInfo


class User(Base):
    """A portal account that can act on the ledger or be paid by it."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        Index("idx_users_display_name", "display_name"),
    )

    username: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="AUTHOR")

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def label(self) -> str:
        return self.display_name or self.username

    def to_dto(self) -> UserInfo:
        return UserInfo(
            id=self.id,
            username=self.username,
            display_name=self.display_name,
            role=self.role,
        )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role})>"
