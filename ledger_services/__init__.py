"""
Ledger services: the boundary the portal calls.

LedgerActions runs each operation in its own unit of work and returns an
ActionResult; LedgerOrchestrator wires the kernel services for one session.
"""

from ledger_services.actions import LedgerActions
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.results import ActionResult, ActionStatus, to_plain

__all__ = [
    "ActionResult",
    "ActionStatus",
    "LedgerActions",
    "LedgerOrchestrator",
    "to_plain",
]
