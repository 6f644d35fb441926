"""
Pytest fixtures for the newsroom ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (engine + tables)
- Seeded portal users and their session identities
- Kernel services wired through LedgerOrchestrator with a DeterministicClock
- Captured structured logs

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL for the tests marked ``postgres``
  (tests/concurrency).  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.identity import SessionIdentity
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.user import User
from ledger_services.orchestrator import LedgerOrchestrator

# 2024-03-10 is the "today" of every test unless a test moves the clock.
TODAY = date(2024, 3, 10)
NOON = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)

SEED_USERS = (
    ("admin", "Admin", "ADMIN"),
    ("chief", "Chief Editor", "CHIEF_EDITOR"),
    ("alex", "Alex", "AUTHOR"),
    ("maria", "Maria", "AUTHOR"),
    ("ivan", None, "EDITOR"),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger, admin):
            ledger.create_order(admin, ...)
            logs = captured_logs()
            assert any(r["message"] == "order_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: requires PostgreSQL via DATABASE_URL; skipped when it is unset"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all tables."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def users(session_factory) -> dict:
    """Seeded portal users, keyed by username, as UserInfo DTOs."""
    with session_scope(session_factory) as s:
        rows = [
            User(username=username, display_name=display_name, role=role)
            for username, display_name, role in SEED_USERS
        ]
        s.add_all(rows)
        s.flush()
        return {row.username: row.to_dto() for row in rows}


@pytest.fixture
def session(session_factory, users) -> Generator[Session, None, None]:
    """Session for service-level tests.  Never committed; rolled back at teardown."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Identities
# =============================================================================


def identity_for(user) -> SessionIdentity:
    return SessionIdentity(user_id=user.id, display_name=user.label, role=user.role)


@pytest.fixture
def admin(users) -> SessionIdentity:
    return identity_for(users["admin"])


@pytest.fixture
def chief(users) -> SessionIdentity:
    return identity_for(users["chief"])


@pytest.fixture
def alex(users) -> SessionIdentity:
    return identity_for(users["alex"])


@pytest.fixture
def maria(users) -> SessionIdentity:
    return identity_for(users["maria"])


@pytest.fixture
def editor(users) -> SessionIdentity:
    return identity_for(users["ivan"])


# =============================================================================
# Kernel services
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(NOON)


@pytest.fixture
def policy() -> LedgerPolicy:
    return LedgerPolicy()


@pytest.fixture
def orchestrator(session, policy, clock) -> LedgerOrchestrator:
    return LedgerOrchestrator(session, policy, clock)


@pytest.fixture
def ledger(orchestrator):
    return orchestrator.ledger


@pytest.fixture
def billing(orchestrator):
    return orchestrator.billing


@pytest.fixture
def reconciler(orchestrator):
    return orchestrator.reconciler


@pytest.fixture
def ledger_selector(orchestrator):
    return orchestrator.ledger_selector


@pytest.fixture
def payout_selector(orchestrator):
    return orchestrator.payout_selector


@pytest.fixture
def make_order(ledger, admin):
    """Create an order through LedgerService with sensible defaults."""

    def _make(total_price="1000", actor=None, **fields):
        fields.setdefault("client", "ACME")
        fields.setdefault("service", "Реклама")
        return ledger.create_order(actor or admin, total_price=total_price, **fields)

    return _make


@pytest.fixture
def make_notification(billing, alex):
    """Create a notification running today only, authored by the actor."""

    def _make(actor=None, **fields):
        fields.setdefault("customer", "Bakery")
        fields.setdefault("ad_text", "Fresh bread every morning")
        fields.setdefault("quantity", 5)
        fields.setdefault("start_date", TODAY)
        fields.setdefault("end_date", TODAY)
        return billing.create_notification(actor or alex, **fields)

    return _make


@pytest.fixture
def record_sends(billing, clock):
    """Record ``count`` sends as ``actor``, one clock second apart."""

    def _send(notification_id, actor, count=1):
        info = None
        for _ in range(count):
            clock.advance()
            info = billing.record_send(notification_id, None, actor)
        return info

    return _send


# =============================================================================
# PostgreSQL (concurrency tests)
# =============================================================================


def get_database_url() -> str | None:
    return os.environ.get("DATABASE_URL")


@pytest.fixture
def postgres_engine():
    """Engine against $DATABASE_URL with freshly created tables."""
    url = get_database_url()
    if not url:
        pytest.skip("DATABASE_URL not set; PostgreSQL concurrency tests skipped")
    from ledger_kernel.db.engine import drop_tables

    eng = init_engine_from_url(url, pool_size=10, max_overflow=10, pool_timeout=10)
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()
