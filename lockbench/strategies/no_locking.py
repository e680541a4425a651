"""
No-locking (negative control) strategy: plain SELECT, then plain UPDATE.

Exactly what you would type at an SQL console. Two workers whose delay windows
overlap both read the same value and the later commit overwrites the earlier
one: the classic lost update. Losing updates here is the property under test.
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
from lockbench.utils.logging import get_logger

log = get_logger(__name__)


class NoLockingStrategy(AbstractUpdateStrategy):
    """
    Read the value, wait, write `value + marker` back unconditionally.
    """

    kind = StrategyKind.NO_LOCKING
    description = "Plain SELECT + unconditional UPDATE; no concurrency control."

    def execute(self, session: StoreSession, ctx: WorkerContext) -> StrategyResult:
        ctx.enter(WorkerState.READING)
        session.begin(IsolationLevel.DEFAULT)
        record = session.read(ctx.record_id)
        ctx.observe(record)

        ctx.enter(WorkerState.DELAYING)
        ctx.delay()
        new_value = record.value + ctx.marker

        ctx.enter(WorkerState.WRITING)
        rows = session.unconditional_write(ctx.record_id, new_value)
        if rows == 0:
            log.warning(f"{ctx.label} Update failed", extra={"worker": ctx.label, "rows": rows})

        self._commit(session, ctx)
        return StrategyResult(
            observed_value=record.value,
            observed_version=record.version,
            written_value=new_value if rows else None,
            rows_affected=rows,
        )


__all__ = ["NoLockingStrategy"]
