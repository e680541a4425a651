"""
Store selection by name, used by the CLI and tests.
"""

from __future__ import annotations

from typing import Callable, Dict

from lockbench.config import StoreConfig
from lockbench.infrastructure.memory import InMemoryStore
from lockbench.infrastructure.postgres import PostgresStore
from lockbench.infrastructure.store import Store


def _store_factories() -> Dict[str, Callable[[StoreConfig], Store]]:
    return {
        "postgres": lambda config: PostgresStore(config),
        "memory": lambda config: InMemoryStore(config),
    }


def available_stores() -> list[str]:
    return sorted(_store_factories().keys())


def create_store(name: str, config: StoreConfig) -> Store:
    factories = _store_factories()
    if name not in factories:
        raise ValueError(f"Unknown store '{name}'. Available: {', '.join(factories)}")
    return factories[name](config)


__all__ = ["available_stores", "create_store"]
