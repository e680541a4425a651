"""
Worker: one strategy, one session, one terminal outcome.

A worker walks `created -> connecting -> reading -> delaying -> writing ->
committing` and ends in exactly one of `succeeded`, `conflicted` or `failed`.
Every exception is caught here and turned into that outcome; an open
transaction is rolled back first and the session is always closed.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional

from lockbench.domain.errors import ConflictError, HarnessError, StoreConnectionError
from lockbench.domain.models import Outcome, OutcomeKind, Record, WorkerState
from lockbench.infrastructure.store import Store, StoreSession
from lockbench.strategies.abstract import StrategyResult, UpdateStrategy
from lockbench.utils.logging import get_logger

log = get_logger(__name__)

# Called with the worker label between read and write.
DelayHook = Callable[[str], None]


def sleep_hook(seconds: float) -> DelayHook:
    """Wall-clock processing delay."""

    def _sleep(label: str) -> None:
        del label
        time.sleep(seconds)

    return _sleep


def no_delay(label: str) -> None:
    del label


class Worker:
    """
    Executes one update strategy end-to-end against its own store session.

    The worker is also the `WorkerContext` the strategy sees: it exposes the
    record id, the marker, the delay hook and state transitions.
    """

    def __init__(
        self,
        label: str,
        phase: str,
        strategy: UpdateStrategy,
        store: Store,
        record_id: int,
        marker: str = "$",
        delay_hook: Optional[DelayHook] = None,
    ) -> None:
        self.label = label
        self.phase = phase
        self.record_id = record_id
        self.marker = marker
        self._strategy = strategy
        self._store = store
        self._delay_hook = delay_hook or no_delay
        self.state = WorkerState.CREATED
        self.history: List[WorkerState] = [WorkerState.CREATED]
        self.observed: Optional[Record] = None

    def enter(self, state: WorkerState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"{self.label} already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)
        log.debug(
            f"{self.label} -> {state.value}",
            extra={"worker": self.label, "phase": self.phase, "state": state.value},
        )

    def observe(self, record: Record) -> None:
        self.observed = record
        log.info(
            f"{self.label} Value read: {record.value}",
            extra={"worker": self.label, "phase": self.phase, "version": record.version},
        )

    def delay(self) -> None:
        self._delay_hook(self.label)

    def run(self) -> Outcome:
        self.enter(WorkerState.CONNECTING)
        try:
            session = self._store.connect()
        except StoreConnectionError as exc:
            log.error(f"{self.label} Update failed: {exc}", extra={"worker": self.label})
            return self._finish(OutcomeKind.FAILED, message=str(exc), error=exc)
        except Exception as exc:  # noqa: BLE001 - every failure must become an outcome
            log.exception(f"{self.label} Update failed: {exc}", extra={"worker": self.label})
            return self._finish(OutcomeKind.FAILED, message=str(exc), error=exc)

        try:
            result = self._strategy.execute(session, self)
        except ConflictError as exc:
            self._rollback(session)
            log.info(
                f"{self.label} Update rejected: {exc}",
                extra={"worker": self.label, "reason": exc.reason.value},
            )
            return self._finish(
                OutcomeKind.CONFLICTED,
                message=str(exc),
                rows_affected=exc.rows_affected,
                conflict_reason=exc.reason,
            )
        except HarnessError as exc:
            self._rollback(session)
            log.error(f"{self.label} Update failed: {exc}", extra={"worker": self.label})
            return self._finish(OutcomeKind.FAILED, message=str(exc), error=exc)
        except Exception as exc:  # noqa: BLE001 - every failure must become an outcome
            self._rollback(session)
            log.exception(f"{self.label} Update failed: {exc}", extra={"worker": self.label})
            return self._finish(OutcomeKind.FAILED, message=str(exc), error=exc)
        finally:
            self._close(session)

        return self._from_result(result)

    def _from_result(self, result: StrategyResult) -> Outcome:
        rows = result.get("rows_affected", 0)
        written = result.get("written_value")
        if rows == 0 or written is None:
            return self._finish(
                OutcomeKind.FAILED, message="update affected no rows", rows_affected=rows
            )
        log.info(
            f"{self.label} Value written: {written}",
            extra={"worker": self.label, "phase": self.phase, "rows": rows},
        )
        return self._finish(
            OutcomeKind.SUCCEEDED,
            message=f"Value written: {written}",
            written_value=written,
            rows_affected=rows,
        )

    def _finish(
        self,
        kind: OutcomeKind,
        message: str,
        error: Optional[BaseException] = None,
        **fields,
    ) -> Outcome:
        self.enter(kind.terminal_state)
        observed = self.observed
        return Outcome(
            worker_label=self.label,
            phase=self.phase,
            strategy=self._strategy.name,
            kind=kind,
            observed_value_before=observed.value if observed else None,
            observed_version=observed.version if observed else None,
            error_type=type(error).__name__ if error is not None else None,
            message=message,
            state_history=list(self.history),
            **fields,
        )

    def _rollback(self, session: StoreSession) -> None:
        if not session.in_transaction:
            return
        try:
            session.rollback()
        except HarnessError as exc:
            log.warning(
                f"{self.label} Rollback failed: {exc}", extra={"worker": self.label}
            )

    def _close(self, session: StoreSession) -> None:
        try:
            session.close()
        except HarnessError as exc:
            log.warning(f"{self.label} Close failed: {exc}", extra={"worker": self.label})


__all__ = ["DelayHook", "Worker", "no_delay", "sleep_hook"]
