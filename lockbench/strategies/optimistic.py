"""
Optimistic locking strategy: version check at write time.

The read fetches the version along with the value. The UPDATE only matches if
the version is still the one that was read, and bumps it in the same
statement. Zero rows affected means someone else committed in between; that is
reported as a conflict, never retried here. A caller adding retries must
re-read before re-attempting, never reuse the stale value.
"""

from __future__ import annotations

from lockbench.domain.errors import ConflictError
from lockbench.domain.models import ConflictReason, IsolationLevel, WorkerState
from lockbench.infrastructure.store import StoreSession
from lockbench.strategies.abstract import (
    AbstractUpdateStrategy,
    StrategyKind,
    StrategyResult,
    WorkerContext,
)


class OptimisticLockingStrategy(AbstractUpdateStrategy):
    kind = StrategyKind.OPTIMISTIC
    description = "SELECT value, version + UPDATE ... WHERE version = read_version."

    def execute(self, session: StoreSession, ctx: WorkerContext) -> StrategyResult:
        ctx.enter(WorkerState.READING)
        session.begin(IsolationLevel.DEFAULT)
        record = session.read(ctx.record_id)
        ctx.observe(record)

        ctx.enter(WorkerState.DELAYING)
        ctx.delay()
        new_value = record.value + ctx.marker

        ctx.enter(WorkerState.WRITING)
        rows = session.conditional_write(ctx.record_id, new_value, record.version)
        if rows == 0:
            raise ConflictError(
                f"version {record.version} is stale; row was updated concurrently",
                ConflictReason.VERSION_MISMATCH,
                rows_affected=0,
            )

        self._commit(session, ctx)
        return StrategyResult(
            observed_value=record.value,
            observed_version=record.version,
            written_value=new_value,
            rows_affected=rows,
        )


__all__ = ["OptimisticLockingStrategy"]
