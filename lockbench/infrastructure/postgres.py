"""
PostgreSQL store for the locking harness.

Every worker session owns a dedicated psycopg connection opened with automatic
retry (tenacity) for transient connection failures. Driver exceptions are
translated into the harness error taxonomy at this boundary:

- serialization failures (SQLSTATE 40001) -> ConflictError
- lock-wait timeouts (SQLSTATE 55P03) -> ConflictError
- anything else from the driver -> UnexpectedStoreError

The pessimistic path reproduces an updatable result set: the locking read is a
named server-side cursor declared with FOR UPDATE, and the write goes through
`UPDATE ... WHERE CURRENT OF` that same cursor.
"""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from typing import Iterator, List, Optional

import psycopg
from psycopg import Connection, ServerCursor, errors, sql
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from lockbench.config import StoreConfig
from lockbench.domain.errors import (
    ConflictError,
    HarnessError,
    StoreConnectionError,
    UnexpectedStoreError,
)
from lockbench.domain.models import ConflictReason, IsolationLevel, Record
from lockbench.infrastructure.store import RowHandle
from lockbench.utils.logging import get_logger

log = get_logger(__name__)


def translate_error(exc: psycopg.Error) -> HarnessError:
    """Map a psycopg exception onto the harness error taxonomy."""
    if isinstance(exc, errors.SerializationFailure):
        return ConflictError(str(exc).strip(), ConflictReason.SERIALIZATION_FAILURE)
    if isinstance(exc, errors.LockNotAvailable):
        return ConflictError(str(exc).strip(), ConflictReason.LOCK_TIMEOUT)
    return UnexpectedStoreError(f"{type(exc).__name__}: {str(exc).strip()}")


@contextmanager
def _translated() -> Iterator[None]:
    try:
        yield
    except psycopg.Error as exc:
        raise translate_error(exc) from exc


def open_connection(config: StoreConfig) -> Connection:
    """
    Open a dedicated connection, retrying transient failures with exponential backoff.

    Raises
    ------
    StoreConnectionError
        If the connection still fails after `config.connect_attempts` attempts.
    """
    retrying = Retrying(
        stop=stop_after_attempt(config.connect_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
        reraise=True,
    )
    try:
        return retrying(psycopg.connect, config.dsn, connect_timeout=config.connect_timeout)
    except psycopg.Error as exc:
        raise StoreConnectionError(f"cannot connect to {config.safe_dsn}: {exc}") from exc


class PostgresSession:
    """One connection, at most one open transaction."""

    def __init__(self, conn: Connection, config: StoreConfig) -> None:
        self._conn = conn
        self._config = config
        self._table = sql.Identifier(config.table)
        self._cursor_ids = itertools.count(1)
        self._lock_cursors: List[ServerCursor] = []
        self._active = False

    @property
    def in_transaction(self) -> bool:
        return self._active

    def begin(self, isolation: IsolationLevel = IsolationLevel.DEFAULT) -> None:
        if self._active:
            raise UnexpectedStoreError("a transaction is already open on this session")
        with _translated():
            # None leaves the server default (READ COMMITTED) in place.
            self._conn.isolation_level = (
                psycopg.IsolationLevel.SERIALIZABLE
                if isolation is IsolationLevel.SERIALIZABLE
                else None
            )
            self._active = True
            if self._config.lock_timeout_ms:
                # is_local=true scopes the timeout to this transaction, like SET LOCAL.
                self._conn.execute(
                    "SELECT set_config('lock_timeout', %s, true)",
                    (f"{self._config.lock_timeout_ms}ms",),
                )

    def read(self, record_id: int) -> Record:
        query = sql.SQL("SELECT id, value, version FROM {} WHERE id = %s").format(self._table)
        with _translated(), self._conn.cursor() as cur:
            cur.execute(query, (record_id,))
            row = cur.fetchone()
        return self._to_record(row, record_id)

    def conditional_write(self, record_id: int, value: str, expected_version: int) -> int:
        query = sql.SQL(
            "UPDATE {} SET value = %s, version = version + 1 WHERE id = %s AND version = %s"
        ).format(self._table)
        with _translated(), self._conn.cursor() as cur:
            cur.execute(query, (value, record_id, expected_version))
            return cur.rowcount

    def unconditional_write(self, record_id: int, value: str) -> int:
        query = sql.SQL("UPDATE {} SET value = %s WHERE id = %s").format(self._table)
        with _translated(), self._conn.cursor() as cur:
            cur.execute(query, (value, record_id))
            return cur.rowcount

    def locking_read(self, record_id: int) -> RowHandle:
        name = f"lockbench_row_{record_id}_{next(self._cursor_ids)}"
        query = sql.SQL("SELECT id, value, version FROM {} WHERE id = %s FOR UPDATE").format(
            self._table
        )
        cur = self._conn.cursor(name=name)
        self._lock_cursors.append(cur)
        with _translated():
            cur.execute(query, (record_id,))
            # Rows of a FOR UPDATE cursor are locked when fetched; this call blocks.
            row = cur.fetchone()
        return RowHandle(record=self._to_record(row, record_id), token=cur)

    def write_via_handle(self, handle: RowHandle, value: str) -> int:
        cursor = handle.token
        if not isinstance(cursor, ServerCursor) or cursor not in self._lock_cursors:
            raise UnexpectedStoreError("row handle does not belong to this session")
        query = sql.SQL("UPDATE {} SET value = %s WHERE CURRENT OF {}").format(
            self._table, sql.Identifier(cursor.name)
        )
        with _translated(), self._conn.cursor() as cur:
            cur.execute(query, (value,))
            return cur.rowcount

    def commit(self) -> None:
        try:
            with _translated():
                self._close_lock_cursors()
                self._conn.commit()
        finally:
            self._active = False

    def rollback(self) -> None:
        try:
            with _translated():
                self._close_lock_cursors()
                self._conn.rollback()
        finally:
            self._active = False

    def close(self) -> None:
        try:
            if self._active and not self._conn.closed:
                self.rollback()
        finally:
            self._conn.close()

    def _close_lock_cursors(self) -> None:
        while self._lock_cursors:
            self._lock_cursors.pop().close()

    def _to_record(self, row: Optional[tuple], record_id: int) -> Record:
        if row is None:
            raise UnexpectedStoreError(
                f"record id={record_id} not found in table '{self._config.table}'"
            )
        return Record(id=row[0], value=row[1], version=row[2])


class PostgresStore:
    """
    Store backed by a PostgreSQL table `(id, value, version)`.

    No connection is shared between sessions; `connect` opens a new one each time.
    """

    name: str = "postgres"

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        self._table = sql.Identifier(config.table)

    def connect(self) -> PostgresSession:
        conn = open_connection(self.config)
        log.debug("Opened session", extra={"dsn": self.config.safe_dsn})
        return PostgresSession(conn, self.config)

    def bootstrap(self, reset: bool = True) -> Record:
        """
        Create the table if missing and make sure exactly one seeded row exists.

        With `reset=False` an existing row keeps its accumulated value and version.
        """
        create = sql.SQL(
            "CREATE TABLE IF NOT EXISTS {} ("
            "id INTEGER PRIMARY KEY, "
            "value VARCHAR(255) NOT NULL, "
            "version INTEGER NOT NULL DEFAULT 0)"
        ).format(self._table)
        if reset:
            seed = sql.SQL(
                "INSERT INTO {} (id, value, version) VALUES (%s, %s, 0) "
                "ON CONFLICT (id) DO UPDATE SET value = EXCLUDED.value, version = EXCLUDED.version"
            ).format(self._table)
        else:
            seed = sql.SQL(
                "INSERT INTO {} (id, value, version) VALUES (%s, %s, 0) ON CONFLICT (id) DO NOTHING"
            ).format(self._table)
        purge = sql.SQL("DELETE FROM {} WHERE id <> %s").format(self._table)

        conn = open_connection(self.config)
        try:
            with _translated(), conn.cursor() as cur:
                cur.execute(create)
                cur.execute(seed, (self.config.record_id, self.config.seed_value))
                if reset:
                    cur.execute(purge, (self.config.record_id,))
            conn.commit()
        finally:
            conn.close()

        record = self.fetch_record(self.config.record_id)
        log.info(
            "Bootstrapped record table",
            extra={"table": self.config.table, "reset": reset, "value": record.value},
        )
        return record

    def fetch_record(self, record_id: int) -> Record:
        query = sql.SQL("SELECT id, value, version FROM {} WHERE id = %s").format(self._table)
        conn = open_connection(self.config)
        try:
            with _translated(), conn.cursor() as cur:
                cur.execute(query, (record_id,))
                row = cur.fetchone()
        finally:
            conn.close()
        if row is None:
            raise UnexpectedStoreError(
                f"record id={record_id} not found in table '{self.config.table}'"
            )
        return Record(id=row[0], value=row[1], version=row[2])

    def close(self) -> None:
        """Sessions own their connections; nothing is pooled at store level."""


__all__ = ["PostgresSession", "PostgresStore", "open_connection", "translate_error"]
