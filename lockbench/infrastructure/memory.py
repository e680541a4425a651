"""
In-memory transactional store.

A faithful small model of the PostgreSQL behaviour the strategies depend on,
so phases can run without a server and interleavings can be driven
deterministically from tests:

- writes take an exclusive row lock held until commit or rollback
  (a second writer blocks, like a row-level lock in READ COMMITTED)
- default isolation reads the latest committed row; a conditional write
  re-checks the version after acquiring the lock
- SERIALIZABLE pins a snapshot at the first read and raises a serialization
  failure when writing a row another transaction committed since then
- lock waits give up after `StoreConfig.lock_timeout_ms` (0 waits forever)
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from lockbench.config import StoreConfig
from lockbench.domain.errors import ConflictError, StoreConnectionError, UnexpectedStoreError
from lockbench.domain.models import ConflictReason, IsolationLevel, Record
from lockbench.infrastructure.store import RowHandle
from lockbench.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class _CommittedRow:
    value: str
    version: int
    commit_seq: int


class _RowLock:
    """Exclusive, owner-aware row lock."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: Optional[object] = None

    def acquire(self, owner: object, timeout: Optional[float]) -> bool:
        with self._cond:
            if self._owner is owner:
                return True
            if not self._cond.wait_for(lambda: self._owner is None, timeout=timeout):
                return False
            self._owner = owner
            return True

    def release(self, owner: object) -> None:
        with self._cond:
            if self._owner is owner:
                self._owner = None
                self._cond.notify_all()


class InMemorySession:
    """Session on an `InMemoryStore`; one open transaction at a time."""

    def __init__(self, store: "InMemoryStore", session_id: int) -> None:
        self._store = store
        self.session_id = session_id
        self._active = False
        self._isolation = IsolationLevel.DEFAULT
        self._snapshot: Dict[int, _CommittedRow] = {}
        self._pending: Dict[int, _CommittedRow] = {}
        self._held: set[int] = set()
        self._closed = False

    @property
    def in_transaction(self) -> bool:
        return self._active

    def begin(self, isolation: IsolationLevel = IsolationLevel.DEFAULT) -> None:
        self._check_open()
        if self._active:
            raise UnexpectedStoreError("a transaction is already open on this session")
        self._active = True
        self._isolation = isolation
        self._snapshot.clear()
        self._pending.clear()

    def read(self, record_id: int) -> Record:
        self._check_tx()
        return self._as_record(record_id, self._visible(record_id))

    def conditional_write(self, record_id: int, value: str, expected_version: int) -> int:
        current = self._lock_for_write(record_id)
        if current is None or current.version != expected_version:
            return 0
        self._pending[record_id] = _CommittedRow(value, expected_version + 1, current.commit_seq)
        return 1

    def unconditional_write(self, record_id: int, value: str) -> int:
        current = self._lock_for_write(record_id)
        if current is None:
            return 0
        self._pending[record_id] = _CommittedRow(value, current.version, current.commit_seq)
        return 1

    def locking_read(self, record_id: int) -> RowHandle:
        current = self._lock_for_write(record_id)
        if current is None:
            raise UnexpectedStoreError(f"record id={record_id} not found")
        return RowHandle(record=self._as_record(record_id, current), token=(self, record_id))

    def write_via_handle(self, handle: RowHandle, value: str) -> int:
        self._check_tx()
        owner, record_id = handle.token
        if owner is not self or record_id not in self._held:
            raise UnexpectedStoreError("row handle does not hold a lock in this session")
        current = self._pending.get(record_id) or self._store._committed(record_id)
        self._pending[record_id] = _CommittedRow(value, current.version, current.commit_seq)
        return 1

    def commit(self) -> None:
        self._check_tx()
        try:
            self._store._publish(self._pending)
        finally:
            self._end()

    def rollback(self) -> None:
        if self._active:
            self._end()

    def close(self) -> None:
        if self._closed:
            return
        self.rollback()
        self._closed = True
        self._store._session_closed()

    def _visible(self, record_id: int) -> Optional[_CommittedRow]:
        if record_id in self._pending:
            return self._pending[record_id]
        if self._isolation is IsolationLevel.SERIALIZABLE:
            if record_id not in self._snapshot:
                row = self._store._committed(record_id)
                if row is None:
                    return None
                self._snapshot[record_id] = row
            return self._snapshot[record_id]
        return self._store._committed(record_id)

    def _lock_for_write(self, record_id: int) -> Optional[_CommittedRow]:
        self._check_tx()
        if self._isolation is IsolationLevel.SERIALIZABLE:
            # Pin the snapshot before waiting so a commit made while blocked is detected.
            self._visible(record_id)
        if not self._store._lock(record_id).acquire(self, self._store.lock_timeout):
            raise ConflictError(
                f"lock wait on record id={record_id} timed out", ConflictReason.LOCK_TIMEOUT
            )
        self._held.add(record_id)
        if record_id in self._pending:
            return self._pending[record_id]
        latest = self._store._committed(record_id)
        if self._isolation is IsolationLevel.SERIALIZABLE and latest is not None:
            pinned = self._snapshot.get(record_id)
            if pinned is not None and latest.commit_seq != pinned.commit_seq:
                raise ConflictError(
                    "could not serialize access due to concurrent update",
                    ConflictReason.SERIALIZATION_FAILURE,
                )
        return latest

    def _end(self) -> None:
        for record_id in self._held:
            self._store._lock(record_id).release(self)
        self._held.clear()
        self._pending.clear()
        self._snapshot.clear()
        self._active = False

    def _check_open(self) -> None:
        if self._closed:
            raise UnexpectedStoreError("session is closed")

    def _check_tx(self) -> None:
        self._check_open()
        if not self._active:
            raise UnexpectedStoreError("no transaction is open on this session")

    @staticmethod
    def _as_record(record_id: int, row: Optional[_CommittedRow]) -> Record:
        if row is None:
            raise UnexpectedStoreError(f"record id={record_id} not found")
        return Record(id=record_id, value=row.value, version=row.version)


class InMemoryStore:
    """
    Process-local store implementing the `Store` protocol.

    `unreachable=True` makes every `connect` fail, for exercising connection
    failures without a network.
    """

    name: str = "memory"

    def __init__(self, config: Optional[StoreConfig] = None, unreachable: bool = False) -> None:
        self.config = config or StoreConfig()
        self.unreachable = unreachable
        self._mutex = threading.Lock()
        self._rows: Dict[int, _CommittedRow] = {}
        self._locks: Dict[int, _RowLock] = {}
        self._commit_seq = itertools.count(1)
        self._session_ids = itertools.count(1)
        self._sessions_opened = 0
        self._sessions_closed = 0

    @property
    def lock_timeout(self) -> Optional[float]:
        ms = self.config.lock_timeout_ms
        return ms / 1000.0 if ms else None

    @property
    def open_sessions(self) -> int:
        with self._mutex:
            return self._sessions_opened - self._sessions_closed

    def connect(self) -> InMemorySession:
        if self.unreachable:
            raise StoreConnectionError("in-memory store is marked unreachable")
        with self._mutex:
            self._sessions_opened += 1
            return InMemorySession(self, next(self._session_ids))

    def bootstrap(self, reset: bool = True) -> Record:
        record_id = self.config.record_id
        with self._mutex:
            if reset or record_id not in self._rows:
                self._rows = {
                    record_id: _CommittedRow(self.config.seed_value, 0, next(self._commit_seq))
                }
            row = self._rows[record_id]
        log.debug("Bootstrapped in-memory record", extra={"reset": reset, "value": row.value})
        return Record(id=record_id, value=row.value, version=row.version)

    def fetch_record(self, record_id: int) -> Record:
        row = self._committed(record_id)
        if row is None:
            raise UnexpectedStoreError(f"record id={record_id} not found")
        return Record(id=record_id, value=row.value, version=row.version)

    def row_count(self) -> int:
        with self._mutex:
            return len(self._rows)

    def close(self) -> None:
        """Nothing to release; sessions own their locks."""

    def _committed(self, record_id: int) -> Optional[_CommittedRow]:
        with self._mutex:
            return self._rows.get(record_id)

    def _session_closed(self) -> None:
        with self._mutex:
            self._sessions_closed += 1

    def _lock(self, record_id: int) -> _RowLock:
        with self._mutex:
            return self._locks.setdefault(record_id, _RowLock())

    def _publish(self, pending: Dict[int, _CommittedRow]) -> None:
        with self._mutex:
            for record_id, row in pending.items():
                self._rows[record_id] = _CommittedRow(row.value, row.version, next(self._commit_seq))


__all__ = ["InMemorySession", "InMemoryStore"]
