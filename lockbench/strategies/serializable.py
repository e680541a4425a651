"""
Serializable isolation strategy: plain SQL, strictest isolation level.

The statements are the same as the no-locking strategy. The only difference is
that the transaction asks for SERIALIZABLE before its first read, so the
database itself must abort one of two overlapping read-modify-write
transactions with a serialization failure instead of losing an update.
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


class SerializableIsolationStrategy(AbstractUpdateStrategy):
    kind = StrategyKind.SERIALIZABLE
    description = "Plain SELECT + UPDATE inside a SERIALIZABLE transaction."

    def execute(self, session: StoreSession, ctx: WorkerContext) -> StrategyResult:
        ctx.enter(WorkerState.READING)
        session.begin(IsolationLevel.SERIALIZABLE)
        record = session.read(ctx.record_id)
        ctx.observe(record)

        ctx.enter(WorkerState.DELAYING)
        ctx.delay()
        new_value = record.value + ctx.marker

        ctx.enter(WorkerState.WRITING)
        # A serialization failure may surface here or at commit.
        rows = session.unconditional_write(ctx.record_id, new_value)

        self._commit(session, ctx)
        return StrategyResult(
            observed_value=record.value,
            observed_version=record.version,
            written_value=new_value if rows else None,
            rows_affected=rows,
        )


__all__ = ["SerializableIsolationStrategy"]
