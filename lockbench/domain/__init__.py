"""
Domain package for the locking harness.

Exports the record/outcome models and the error taxonomy used across stores,
strategies, workers and the orchestrator.
"""

from lockbench.domain.errors import (
    ConflictError,
    HarnessError,
    PhaseTimeoutError,
    StoreConnectionError,
    UnexpectedStoreError,
)
from lockbench.domain.models import (
    ConflictReason,
    IsolationLevel,
    Outcome,
    OutcomeKind,
    PhaseReport,
    Record,
    WorkerState,
)

__all__ = [
    "ConflictError",
    "ConflictReason",
    "HarnessError",
    "IsolationLevel",
    "Outcome",
    "OutcomeKind",
    "PhaseReport",
    "PhaseTimeoutError",
    "Record",
    "StoreConnectionError",
    "UnexpectedStoreError",
    "WorkerState",
]
