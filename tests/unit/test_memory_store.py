from __future__ import annotations

import threading

import pytest

from lockbench.config import StoreConfig
from lockbench.domain.errors import ConflictError, StoreConnectionError, UnexpectedStoreError
from lockbench.domain.models import ConflictReason, IsolationLevel
from lockbench.infrastructure.memory import InMemoryStore
from lockbench.infrastructure.store import Store, StoreSession

BLOCK_CHECK_SECONDS = 0.2
JOIN_TIMEOUT_SECONDS = 5.0
CONCURRENT_SESSIONS = 16


def test_memory_store_satisfies_protocols(memory_store: InMemoryStore) -> None:
    assert isinstance(memory_store, Store)
    session = memory_store.connect()
    try:
        assert isinstance(session, StoreSession)
    finally:
        session.close()


def test_bootstrap_is_idempotent(memory_store: InMemoryStore) -> None:
    first = memory_store.bootstrap(reset=True)
    second = memory_store.bootstrap(reset=True)

    assert first == second
    assert second.value == "$"
    assert second.version == 0
    assert memory_store.row_count() == 1


def test_bootstrap_without_reset_keeps_accumulated_state(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin()
    session.conditional_write(1, "$$", expected_version=0)
    session.commit()
    session.close()

    record = memory_store.bootstrap(reset=False)

    assert record.value == "$$"
    assert record.version == 1
    assert memory_store.row_count() == 1


def test_read_outside_transaction_is_rejected(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    with pytest.raises(UnexpectedStoreError, match="no transaction"):
        session.read(1)
    session.close()


def test_read_missing_record_is_unexpected(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin()
    with pytest.raises(UnexpectedStoreError, match="not found"):
        session.read(42)
    session.close()


def test_conditional_write_checks_version(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin()
    assert session.conditional_write(1, "$$", expected_version=7) == 0
    assert session.conditional_write(1, "$$", expected_version=0) == 1
    session.commit()
    session.close()

    record = memory_store.fetch_record(1)
    assert record.value == "$$"
    assert record.version == 1


def test_rollback_discards_pending_writes(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin()
    session.unconditional_write(1, "$$$$")
    assert session.read(1).value == "$$$$"
    session.rollback()
    session.close()

    assert memory_store.fetch_record(1).value == "$"
    assert memory_store.open_sessions == 0


def test_uncommitted_write_is_invisible_to_other_sessions(memory_store: InMemoryStore) -> None:
    writer = memory_store.connect()
    reader = memory_store.connect()
    writer.begin()
    writer.unconditional_write(1, "$$")
    reader.begin()

    assert reader.read(1).value == "$"

    writer.commit()
    assert reader.read(1).value == "$$"
    reader.commit()
    writer.close()
    reader.close()


def test_locking_read_blocks_until_holder_commits(memory_store: InMemoryStore) -> None:
    holder = memory_store.connect()
    holder.begin()
    handle = holder.locking_read(1)
    seen: list[str] = []

    def _contender() -> None:
        session = memory_store.connect()
        session.begin()
        seen.append(session.locking_read(1).record.value)
        session.commit()
        session.close()

    thread = threading.Thread(target=_contender)
    thread.start()
    thread.join(timeout=BLOCK_CHECK_SECONDS)
    assert thread.is_alive(), "second locking read should be suspended"

    holder.write_via_handle(handle, handle.record.value + "$")
    holder.commit()
    thread.join(timeout=JOIN_TIMEOUT_SECONDS)

    assert not thread.is_alive()
    assert seen == ["$$"]
    holder.close()


def test_lock_wait_times_out_as_conflict() -> None:
    store = InMemoryStore(StoreConfig(lock_timeout_ms=50))
    store.bootstrap()
    holder = store.connect()
    holder.begin()
    holder.locking_read(1)

    contender = store.connect()
    contender.begin()
    with pytest.raises(ConflictError) as excinfo:
        contender.locking_read(1)

    assert excinfo.value.reason is ConflictReason.LOCK_TIMEOUT
    contender.close()
    holder.close()


def test_serializable_write_after_concurrent_commit_fails(memory_store: InMemoryStore) -> None:
    serializable = memory_store.connect()
    serializable.begin(IsolationLevel.SERIALIZABLE)
    assert serializable.read(1).value == "$"

    other = memory_store.connect()
    other.begin()
    other.unconditional_write(1, "$$")
    other.commit()
    other.close()

    # The snapshot still shows the old value.
    assert serializable.read(1).value == "$"
    with pytest.raises(ConflictError) as excinfo:
        serializable.unconditional_write(1, "$$")

    assert excinfo.value.reason is ConflictReason.SERIALIZATION_FAILURE
    serializable.rollback()
    serializable.close()
    assert memory_store.fetch_record(1).value == "$$"


def test_serializable_without_overlap_commits(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin(IsolationLevel.SERIALIZABLE)
    record = session.read(1)
    assert session.unconditional_write(1, record.value + "$") == 1
    session.commit()
    session.close()

    assert memory_store.fetch_record(1).value == "$$"


def test_handle_from_another_session_is_rejected(memory_store: InMemoryStore) -> None:
    owner = memory_store.connect()
    owner.begin()
    handle = owner.locking_read(1)

    intruder = memory_store.connect()
    intruder.begin()
    with pytest.raises(UnexpectedStoreError, match="does not hold a lock"):
        intruder.write_via_handle(handle, "$$")

    intruder.close()
    owner.close()


def test_begin_twice_is_rejected(memory_store: InMemoryStore) -> None:
    session = memory_store.connect()
    session.begin()
    with pytest.raises(UnexpectedStoreError, match="already open"):
        session.begin()
    session.close()


def test_unreachable_store_refuses_connections() -> None:
    store = InMemoryStore(unreachable=True)
    with pytest.raises(StoreConnectionError):
        store.connect()
    with pytest.raises(ConnectionError):
        store.connect()


def test_open_sessions_stays_exact_under_concurrent_close(memory_store: InMemoryStore) -> None:
    sessions = [memory_store.connect() for _ in range(CONCURRENT_SESSIONS)]
    start = threading.Barrier(CONCURRENT_SESSIONS, timeout=JOIN_TIMEOUT_SECONDS)

    def _close(session) -> None:
        start.wait()
        session.close()

    threads = [threading.Thread(target=_close, args=(session,)) for session in sessions]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=JOIN_TIMEOUT_SECONDS)

    assert memory_store.open_sessions == 0
