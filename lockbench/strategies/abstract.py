"""
Abstract strategy interfaces and result contracts for the locking harness.

A strategy is one read-modify-write protocol against a `StoreSession`. It opens
the transaction, reads, waits through the worker's delay, writes and commits.
It reports progress through the `WorkerContext` it is given and signals a
rejected write by raising `ConflictError`; everything else about turning the
attempt into an outcome belongs to the worker.
"""

from __future__ import annotations

import abc
from enum import Enum
from typing import Optional, Protocol, TypedDict, runtime_checkable

from lockbench.domain.models import Record, WorkerState
from lockbench.infrastructure.store import StoreSession


class StrategyKind(str, Enum):
    """Closed set of update strategies."""

    NO_LOCKING = "no_locking"
    OPTIMISTIC = "optimistic"
    PESSIMISTIC = "pessimistic"
    SERIALIZABLE = "serializable"


class StrategyResult(TypedDict, total=False):
    """
    What a strategy observed and wrote.

    `rows_affected == 0` without an exception means the write silently did not
    land; the worker reports that as a failure.
    """

    observed_value: str
    observed_version: int
    written_value: Optional[str]
    rows_affected: int


class WorkerContext(Protocol):
    """The slice of a worker a strategy is allowed to see."""

    label: str
    record_id: int
    marker: str

    def enter(self, state: WorkerState) -> None: ...

    def observe(self, record: Record) -> None:
        """Record what was read, before any write is attempted."""
        ...

    def delay(self) -> None: ...


@runtime_checkable
class UpdateStrategy(Protocol):
    """
    Common interface all update strategies must implement.

    Attributes
    ----------
    kind : StrategyKind
        Which protocol this is.
    name : str
        A short machine-friendly identifier (the kind's value).
    description : str
        A human-friendly summary of the approach.
    """

    kind: StrategyKind
    name: str
    description: str

    def execute(self, session: StoreSession, ctx: WorkerContext) -> StrategyResult:
        """
        Run one read-modify-write attempt on `session`.

        Raises
        ------
        ConflictError
            When the concurrency-control mechanism rejects the write.
        """
        ...


class AbstractUpdateStrategy(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses set `kind` and `description` and implement `execute`.
    """

    kind: StrategyKind
    description: str

    @property
    def name(self) -> str:
        return self.kind.value

    @abc.abstractmethod
    def execute(
        self, session: StoreSession, ctx: WorkerContext
    ) -> StrategyResult:  # pragma: no cover - interface only
        """Run the read-modify-write protocol."""
        raise NotImplementedError

    @staticmethod
    def _commit(session: StoreSession, ctx: WorkerContext) -> None:
        ctx.enter(WorkerState.COMMITTING)
        session.commit()


__all__ = [
    "AbstractUpdateStrategy",
    "StrategyKind",
    "StrategyResult",
    "UpdateStrategy",
    "WorkerContext",
]
