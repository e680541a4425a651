"""
Store interfaces consumed by the strategies.

A `Store` hands out independent `StoreSession` objects, one per worker. Each
session owns one connection and at most one open transaction. Strategies talk
only to these protocols, so the same protocol code runs against PostgreSQL and
against the in-memory store used in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from lockbench.config import StoreConfig
from lockbench.domain.models import IsolationLevel, Record


@dataclass(frozen=True)
class RowHandle:
    """
    Result of a locking read: the row as read plus whatever the store needs to
    write back through the same lock (a cursor name, a session token).
    """

    record: Record
    token: Any = None


@runtime_checkable
class StoreSession(Protocol):
    def begin(self, isolation: IsolationLevel = IsolationLevel.DEFAULT) -> None: ...

    def read(self, record_id: int) -> Record: ...

    def conditional_write(self, record_id: int, value: str, expected_version: int) -> int:
        """Write `value` and bump `version` only if it still equals `expected_version`."""
        ...

    def unconditional_write(self, record_id: int, value: str) -> int: ...

    def locking_read(self, record_id: int) -> RowHandle:
        """Read the row under an exclusive lock; blocks while another session holds it."""
        ...

    def write_via_handle(self, handle: RowHandle, value: str) -> int: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...

    @property
    def in_transaction(self) -> bool: ...


@runtime_checkable
class Store(Protocol):
    """
    Transactional store holding the record under contention.

    `connect` raises `StoreConnectionError` when no connection can be made.
    `bootstrap` is idempotent: it creates the table if needed and leaves exactly
    one seeded row behind (reset to the seed when `reset` is true).
    """

    name: str
    config: StoreConfig

    def connect(self) -> StoreSession: ...

    def bootstrap(self, reset: bool = True) -> Record: ...

    def fetch_record(self, record_id: int) -> Record: ...

    def close(self) -> None: ...


__all__ = ["RowHandle", "Store", "StoreSession"]
