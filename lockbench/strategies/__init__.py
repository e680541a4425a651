"""
Strategies package for the locking harness.

This module re-exports the abstract interfaces and the four concrete update
strategies so downstream code can import from `lockbench.strategies` directly.
"""

from lockbench.strategies.abstract import (
    AbstractUpdateStrategy,
    StrategyKind,
    StrategyResult,
    UpdateStrategy,
    WorkerContext,
)
from lockbench.strategies.no_locking import NoLockingStrategy
from lockbench.strategies.optimistic import OptimisticLockingStrategy
from lockbench.strategies.pessimistic import PessimisticLockingStrategy
from lockbench.strategies.serializable import SerializableIsolationStrategy

__all__ = [
    # Abstracts
    "AbstractUpdateStrategy",
    "StrategyKind",
    "StrategyResult",
    "UpdateStrategy",
    "WorkerContext",
    # Concrete strategies
    "NoLockingStrategy",
    "OptimisticLockingStrategy",
    "PessimisticLockingStrategy",
    "SerializableIsolationStrategy",
]
