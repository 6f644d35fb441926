"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service of the ledger.  Concrete services receive a
    SQLAlchemy ``Session`` and persist changes with ``session.flush()`` --
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  ``session_scope()`` (or the
    test harness) owns commit/rollback, so an order update and the ledger
    line it emits land together or not at all.

Failure modes:
    - If a subclass calls ``session.commit()`` the all-or-nothing guarantee
      of the multi-row operations is broken.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.  Nested savepoints
          (``session.begin_nested()``) are allowed.

    Non-goals:
        - Read-only queries belong in ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
