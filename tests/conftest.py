"""
Pytest configuration for the locking harness.

Provides fixtures for:
- In-memory stores seeded like the real table
- Barrier delay hooks that force every worker to read before any writes
- Database connection management for the PostgreSQL integration tests
"""

from __future__ import annotations

import os
import threading
from typing import Callable, Generator, List

import psycopg
from psycopg import sql
import pytest

from lockbench.config import Settings, StoreConfig
from lockbench.domain.models import Outcome, PhaseReport, Record
from lockbench.infrastructure.memory import InMemoryStore
from lockbench.infrastructure.postgres import PostgresStore
from lockbench.worker import DelayHook

BARRIER_TIMEOUT_SECONDS = 5.0


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig(lock_timeout_ms=2_000)


@pytest.fixture
def memory_store(store_config: StoreConfig) -> InMemoryStore:
    """A freshly seeded in-memory store holding (1, '$', 0)."""
    store = InMemoryStore(store_config)
    store.bootstrap(reset=True)
    return store


@pytest.fixture
def barrier_hook() -> Callable[[int], DelayHook]:
    """
    Build a delay hook that holds every worker until `parties` of them arrive.

    All workers have read before any of them writes, which makes the read-write
    overlap deterministic instead of relying on wall-clock sleeps.
    """

    def _make(parties: int) -> DelayHook:
        barrier = threading.Barrier(parties, timeout=BARRIER_TIMEOUT_SECONDS)

        def _wait(label: str) -> None:
            del label
            barrier.wait()

        return _wait

    return _make


class RecordingReporter:
    """Reporter that keeps everything it is given."""

    def __init__(self) -> None:
        self.started: List[tuple[str, str, Record]] = []
        self.lines: List[Outcome] = []
        self.completed: List[PhaseReport] = []

    def phase_started(self, phase: str, strategy: str, record: Record) -> None:
        self.started.append((phase, strategy, record))

    def emit(self, outcome: Outcome) -> None:
        self.lines.append(outcome)

    def phase_completed(self, report: PhaseReport) -> None:
        self.completed.append(report)


@pytest.fixture
def recording_reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        db_table=os.getenv("DB_TABLE", "lockbench_test_data"),
        db_connect_attempts=1,
        db_lock_timeout_ms=5_000,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def pg_store_config(test_settings: Settings) -> StoreConfig:
    return StoreConfig.from_settings(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(pg_store_config: StoreConfig) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(pg_store_config.dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def pg_store(
    pg_store_config: StoreConfig, db_connection_available: bool
) -> Generator[PostgresStore, None, None]:
    """
    A PostgreSQL store with a freshly seeded table; dropped afterwards.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    store = PostgresStore(pg_store_config)
    store.bootstrap(reset=True)
    try:
        yield store
    finally:
        with psycopg.connect(pg_store_config.dsn) as conn:
            conn.execute(
                sql.SQL("DROP TABLE IF EXISTS {}").format(
                    sql.Identifier(pg_store_config.table)
                )
            )
