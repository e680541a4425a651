from __future__ import annotations

import pytest

from lockbench.config import StoreConfig
from lockbench.domain.models import IsolationLevel, OutcomeKind, Record, WorkerState
from lockbench.infrastructure.memory import InMemoryStore
from lockbench.infrastructure.store import RowHandle
from lockbench.strategies import NoLockingStrategy, OptimisticLockingStrategy
from lockbench.strategies.abstract import AbstractUpdateStrategy, StrategyKind
from lockbench.worker import Worker, no_delay


class _ExplodingStrategy(AbstractUpdateStrategy):
    """Takes the row lock, then fails with a non-store error."""

    kind = StrategyKind.PESSIMISTIC
    description = "test strategy that raises mid-transaction"

    def execute(self, session, ctx):
        ctx.enter(WorkerState.READING)
        session.begin(IsolationLevel.DEFAULT)
        ctx.observe(session.locking_read(ctx.record_id).record)
        raise RuntimeError("intentional failure")


class _ZeroRowSession:
    """Session whose writes match nothing."""

    def __init__(self) -> None:
        self.committed = False
        self.closed = False
        self._active = False

    @property
    def in_transaction(self) -> bool:
        return self._active

    def begin(self, isolation=IsolationLevel.DEFAULT) -> None:
        self._active = True

    def read(self, record_id: int) -> Record:
        return Record(id=record_id, value="$", version=0)

    def conditional_write(self, record_id, value, expected_version) -> int:
        return 0

    def unconditional_write(self, record_id, value) -> int:
        return 0

    def locking_read(self, record_id) -> RowHandle:
        return RowHandle(record=self.read(record_id))

    def write_via_handle(self, handle, value) -> int:
        return 0

    def commit(self) -> None:
        self.committed = True
        self._active = False

    def rollback(self) -> None:
        self._active = False

    def close(self) -> None:
        self.closed = True


class _ZeroRowStore:
    name = "zero"

    def __init__(self) -> None:
        self.config = StoreConfig()
        self.session = _ZeroRowSession()

    def connect(self) -> _ZeroRowSession:
        return self.session


def _worker(store, strategy, record_id: int = 1) -> Worker:
    return Worker(
        label="w-1",
        phase="test",
        strategy=strategy,
        store=store,
        record_id=record_id,
        marker="$",
        delay_hook=no_delay,
    )


def test_successful_worker_walks_every_state(memory_store):
    outcome = _worker(memory_store, OptimisticLockingStrategy()).run()

    assert outcome.kind is OutcomeKind.SUCCEEDED
    assert outcome.state_history == [
        WorkerState.CREATED,
        WorkerState.CONNECTING,
        WorkerState.READING,
        WorkerState.DELAYING,
        WorkerState.WRITING,
        WorkerState.COMMITTING,
        WorkerState.SUCCEEDED,
    ]
    assert outcome.observed_value_before == "$"
    assert outcome.observed_version == 0
    assert outcome.written_value == "$$"
    assert outcome.rows_affected == 1
    assert outcome.message == "Value written: $$"
    assert memory_store.open_sessions == 0


def test_connection_failure_is_reported_not_raised():
    store = InMemoryStore(unreachable=True)
    outcome = _worker(store, NoLockingStrategy()).run()

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.error_type == "StoreConnectionError"
    assert outcome.state_history == [
        WorkerState.CREATED,
        WorkerState.CONNECTING,
        WorkerState.FAILED,
    ]
    assert outcome.observed_value_before is None


def test_unexpected_error_rolls_back_and_releases_the_lock(memory_store):
    outcome = _worker(memory_store, _ExplodingStrategy()).run()

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.error_type == "RuntimeError"
    assert outcome.message == "intentional failure"
    assert outcome.observed_value_before == "$"
    assert memory_store.open_sessions == 0

    # The lock was released by the rollback, so another locking read succeeds at once.
    session = memory_store.connect()
    session.begin()
    assert session.locking_read(1).record.value == "$"
    session.close()


def test_missing_record_is_an_unexpected_store_error(memory_store):
    outcome = _worker(memory_store, NoLockingStrategy(), record_id=99).run()

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.error_type == "UnexpectedStoreError"
    assert "not found" in outcome.message
    assert memory_store.open_sessions == 0


def test_zero_rows_without_conflict_is_a_nonfatal_failure():
    store = _ZeroRowStore()
    outcome = _worker(store, NoLockingStrategy()).run()

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.message == "update affected no rows"
    assert outcome.rows_affected == 0
    assert outcome.written_value is None
    assert outcome.error_type is None
    assert store.session.committed
    assert store.session.closed


def test_zero_rows_under_version_check_is_a_conflict():
    store = _ZeroRowStore()
    outcome = _worker(store, OptimisticLockingStrategy()).run()

    assert outcome.kind is OutcomeKind.CONFLICTED
    assert outcome.rows_affected == 0
    assert not store.session.committed
    assert store.session.closed


def test_finished_worker_cannot_change_state(memory_store):
    worker = _worker(memory_store, NoLockingStrategy())
    worker.run()

    with pytest.raises(RuntimeError, match="already finished"):
        worker.enter(WorkerState.READING)
