"""
Pessimistic locking strategy: SELECT ... FOR UPDATE held through the write.

The locking read tells the database an update is coming; any other worker's
locking read on the same row blocks until this transaction commits or rolls
back. Contention is resolved by waiting, not by failing, so no conflict signal
is needed unless the lock wait times out.
"""

from __future__ import annotations

from lockbench.domain.models import IsolationLevel, WorkerState
from lockbench.infrastructure.store import StoreSession
from lockbench.strategies.abstract import (
    AbstractUpdateStrategy,
    StrategyKind,
    StrategyResult,
    WorkerContext,
)


class PessimisticLockingStrategy(AbstractUpdateStrategy):
    kind = StrategyKind.PESSIMISTIC
    description = "SELECT ... FOR UPDATE, write through the locked row, commit to release."

    def execute(self, session: StoreSession, ctx: WorkerContext) -> StrategyResult:
        ctx.enter(WorkerState.READING)
        session.begin(IsolationLevel.DEFAULT)
        # Suspends here while another worker holds the row lock.
        handle = session.locking_read(ctx.record_id)
        record = handle.record
        ctx.observe(record)

        ctx.enter(WorkerState.DELAYING)
        ctx.delay()
        new_value = record.value + ctx.marker

        ctx.enter(WorkerState.WRITING)
        rows = session.write_via_handle(handle, new_value)

        self._commit(session, ctx)
        return StrategyResult(
            observed_value=record.value,
            observed_version=record.version,
            written_value=new_value if rows else None,
            rows_affected=rows,
        )


__all__ = ["PessimisticLockingStrategy"]
