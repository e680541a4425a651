"""
Lockbench - a comparative harness for read-modify-write concurrency control.

Races concurrent workers against one versioned record and reports how each
concurrency-control strategy behaves:

- No locking (the lost-update negative control)
- Optimistic locking via a version column
- Pessimistic row locking (SELECT ... FOR UPDATE)
- Serializable transaction isolation

Every worker produces exactly one outcome: succeeded, conflicted or failed.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from lockbench.config import Settings, StoreConfig, get_settings
from lockbench.domain import (
    ConflictError,
    Outcome,
    OutcomeKind,
    PhaseReport,
    Record,
    StoreConnectionError,
    UnexpectedStoreError,
)
from lockbench.orchestrator import (
    RunConfig,
    available_strategies,
    run_phase,
    run_phases,
    start_phase,
)
from lockbench.strategies.abstract import StrategyKind, UpdateStrategy
from lockbench.utils.logging import configure_logging, get_logger
from lockbench.worker import sleep_hook

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "StoreConfig",
    "get_settings",
    # Domain
    "ConflictError",
    "Outcome",
    "OutcomeKind",
    "PhaseReport",
    "Record",
    "StoreConnectionError",
    "UnexpectedStoreError",
    # Orchestration
    "RunConfig",
    "available_strategies",
    "run_phase",
    "run_phases",
    "start_phase",
    "sleep_hook",
    # Strategy abstractions
    "StrategyKind",
    "UpdateStrategy",
    # Logging
    "configure_logging",
    "get_logger",
]
