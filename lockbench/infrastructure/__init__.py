"""
Infrastructure package for the locking harness.

Centralizes store concerns: the session/store protocols, the PostgreSQL
implementation and the in-memory implementation. Keep this layer focused on
I/O, locking and error translation, decoupled from strategy/orchestrator logic.
"""

from lockbench.infrastructure.factory import available_stores, create_store
from lockbench.infrastructure.memory import InMemorySession, InMemoryStore
from lockbench.infrastructure.postgres import PostgresSession, PostgresStore
from lockbench.infrastructure.store import RowHandle, Store, StoreSession

__all__ = [
    "InMemorySession",
    "InMemoryStore",
    "PostgresSession",
    "PostgresStore",
    "RowHandle",
    "Store",
    "StoreSession",
    "available_stores",
    "create_store",
]
