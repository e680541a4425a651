"""
Domain models for the locking harness.

`Record` mirrors the single row under contention. `Outcome` is the one terminal
result every worker produces, and `PhaseReport` summarizes a phase once all of
its workers have finished.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IsolationLevel(str, Enum):
    DEFAULT = "default"
    SERIALIZABLE = "serializable"


class WorkerState(str, Enum):
    CREATED = "created"
    CONNECTING = "connecting"
    READING = "reading"
    DELAYING = "delaying"
    WRITING = "writing"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    CONFLICTED = "conflicted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({WorkerState.SUCCEEDED, WorkerState.CONFLICTED, WorkerState.FAILED})


class OutcomeKind(str, Enum):
    SUCCEEDED = "succeeded"
    CONFLICTED = "conflicted"
    FAILED = "failed"

    @property
    def terminal_state(self) -> WorkerState:
        return WorkerState(self.value)


class ConflictReason(str, Enum):
    VERSION_MISMATCH = "version_mismatch"
    SERIALIZATION_FAILURE = "serialization_failure"
    LOCK_TIMEOUT = "lock_timeout"


class Record(BaseModel):
    """
    Representation of the single row in the harness table.
    """

    id: int = Field(..., description="Primary key; fixed for the whole run.")
    value: str = Field(..., description="Grows by one marker per applied update.")
    version: int = Field(0, description="Bumped only by optimistic updates.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


class Outcome(BaseModel):
    """
    Terminal result of one worker.
    """

    worker_label: str
    phase: str
    strategy: str
    kind: OutcomeKind
    observed_value_before: Optional[str] = None
    observed_version: Optional[int] = None
    written_value: Optional[str] = None
    rows_affected: Optional[int] = None
    conflict_reason: Optional[ConflictReason] = None
    error_type: Optional[str] = None
    message: str = ""
    state_history: List[WorkerState] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED

    @property
    def conflicted(self) -> bool:
        return self.kind is OutcomeKind.CONFLICTED

    @property
    def failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED

    def to_line(self) -> Dict[str, Any]:
        """Structured line handed to reporters."""
        return {
            "worker_label": self.worker_label,
            "phase": self.phase,
            "outcome_kind": self.kind.value,
            "observed_value_before": self.observed_value_before,
            "written_value": self.written_value,
            "message": self.message,
        }


class PhaseReport(BaseModel):
    """
    Summary of a completed phase: record state around it plus every outcome in
    the order it was observed.
    """

    phase: str
    strategy: str
    worker_count: int
    record_before: Record
    record_after: Record
    outcomes: List[Outcome] = Field(default_factory=list)

    def _count(self, kind: OutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind is kind)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeKind.SUCCEEDED)

    @property
    def conflicted(self) -> int:
        return self._count(OutcomeKind.CONFLICTED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeKind.FAILED)

    @property
    def markers_added(self) -> int:
        return len(self.record_after.value) - len(self.record_before.value)

    @property
    def version_delta(self) -> int:
        return self.record_after.version - self.record_before.version

    @property
    def lost_updates(self) -> int:
        """Successful updates whose marker did not survive into the final value."""
        return max(self.succeeded - self.markers_added, 0)

    def summary(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "strategy": self.strategy,
            "workers": self.worker_count,
            "value_before": self.record_before.value,
            "value_after": self.record_after.value,
            "version_before": self.record_before.version,
            "version_after": self.record_after.version,
            "succeeded": self.succeeded,
            "conflicted": self.conflicted,
            "failed": self.failed,
            "lost_updates": self.lost_updates,
        }


__all__ = [
    "ConflictReason",
    "IsolationLevel",
    "Outcome",
    "OutcomeKind",
    "PhaseReport",
    "Record",
    "WorkerState",
]
