"""
Orchestrator for running update strategies concurrently against one record.

A phase launches N workers running the same strategy, each on its own thread
and store session, and surfaces their outcomes in the order they finish. Phases
run strictly one after another and the record is not reset between them
unless asked: later phases inherit whatever value the previous one left.

Usage (example from a host program):
    from lockbench.orchestrator import RunConfig, run_phase, run_phases

    outcomes = run_phase(store, "optimistic", worker_count=2, delay_hook=sleep_hook(1.0))
    reports = run_phases(store, RunConfig(strategy_names=["all"], workers=2))
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Union

from lockbench.domain.errors import PhaseTimeoutError
from lockbench.domain.models import Outcome, PhaseReport, Record
from lockbench.infrastructure.store import Store
from lockbench.reporter import NullReporter, Reporter
from lockbench.strategies.abstract import StrategyKind, UpdateStrategy
from lockbench.strategies.no_locking import NoLockingStrategy
from lockbench.strategies.optimistic import OptimisticLockingStrategy
from lockbench.strategies.pessimistic import PessimisticLockingStrategy
from lockbench.strategies.serializable import SerializableIsolationStrategy
from lockbench.utils.logging import get_logger
from lockbench.worker import DelayHook, Worker, sleep_hook

log = get_logger(__name__)

# Order in which `all` runs the phases.
DEFAULT_PHASE_ORDER: List[StrategyKind] = [
    StrategyKind.NO_LOCKING,
    StrategyKind.OPTIMISTIC,
    StrategyKind.SERIALIZABLE,
    StrategyKind.PESSIMISTIC,
]


def _strategy_factories() -> Dict[str, Callable[[], UpdateStrategy]]:
    """Registry of available strategies."""
    return {
        StrategyKind.NO_LOCKING.value: lambda: NoLockingStrategy(),
        StrategyKind.OPTIMISTIC.value: lambda: OptimisticLockingStrategy(),
        StrategyKind.PESSIMISTIC.value: lambda: PessimisticLockingStrategy(),
        StrategyKind.SERIALIZABLE.value: lambda: SerializableIsolationStrategy(),
    }


def available_strategies() -> List[str]:
    """List available strategy names."""
    return sorted(_strategy_factories().keys())


def _resolve_strategy(name: Union[str, StrategyKind]) -> UpdateStrategy:
    key = name.value if isinstance(name, StrategyKind) else name
    factories = _strategy_factories()
    if key not in factories:
        raise ValueError(f"Unknown strategy '{key}'. Available: {', '.join(factories)}")
    return factories[key]()


def _check_marker(marker: str) -> None:
    # PhaseReport counts one marker per appended character.
    if len(marker) != 1:
        raise ValueError(f"marker must be exactly one character, got {marker!r}")


def _expand_names(strategy_names: Optional[Iterable[str]]) -> List[str]:
    names = list(strategy_names) if strategy_names is not None else ["all"]
    if len(names) == 1 and names[0] == "all":
        return [kind.value for kind in DEFAULT_PHASE_ORDER]
    for name in names:
        _resolve_strategy(name)
    return names


class PhaseHandle:
    """
    A running phase. `wait` blocks until every worker has reached a terminal state.
    """

    def __init__(
        self,
        phase: str,
        strategy: UpdateStrategy,
        workers: List[Worker],
        reporter: Reporter,
    ) -> None:
        self.phase = phase
        self.strategy = strategy
        self.workers = workers
        self._reporter = reporter
        self._executor = ThreadPoolExecutor(
            max_workers=len(workers), thread_name_prefix=f"{phase}-worker"
        )
        # Futures whose outcome has not been collected yet.
        self._pending: Dict[Future, Worker] = {
            self._executor.submit(worker.run): worker for worker in workers
        }
        self._outcomes: List[Outcome] = []

    def wait(self, timeout: Optional[float] = None) -> List[Outcome]:
        """
        Collect outcomes in order of observation, handing each to the reporter.

        Each outcome is collected and reported once, so `wait` can be called
        again after a timeout to pick up the workers that were still running.

        Raises
        ------
        PhaseTimeoutError
            If some workers are still running after `timeout` seconds. Running
            workers are not cancelled; they finish on their own.
        """
        if not self._pending:
            return list(self._outcomes)
        timed_out = False
        try:
            for future in as_completed(list(self._pending), timeout=timeout):
                del self._pending[future]
                outcome = future.result()
                self._outcomes.append(outcome)
                self._reporter.emit(outcome)
        except FuturesTimeoutError as exc:
            timed_out = True
            pending = [worker.label for worker in self._pending.values()]
            raise PhaseTimeoutError(
                f"phase '{self.phase}' timed out with workers still running: {', '.join(pending)}"
            ) from exc
        finally:
            if not timed_out:
                self._executor.shutdown(wait=not self._pending)
        return list(self._outcomes)


def start_phase(
    store: Store,
    strategy: Union[str, StrategyKind],
    worker_count: int,
    delay_hook: Optional[DelayHook] = None,
    reporter: Optional[Reporter] = None,
    phase: Optional[str] = None,
    record_id: Optional[int] = None,
    marker: str = "$",
) -> PhaseHandle:
    """
    Launch `worker_count` workers running `strategy` and return without waiting.
    """
    if worker_count < 1:
        raise ValueError("worker_count must be at least 1")
    _check_marker(marker)
    resolved = _resolve_strategy(strategy)
    phase_name = phase or resolved.name
    target_id = record_id if record_id is not None else store.config.record_id
    workers = [
        Worker(
            label=f"{phase_name}-{index}",
            phase=phase_name,
            strategy=resolved,
            store=store,
            record_id=target_id,
            marker=marker,
            delay_hook=delay_hook,
        )
        for index in range(1, worker_count + 1)
    ]
    log.info(
        f"[PHASE START] {phase_name} ({resolved.name}) with {worker_count} workers",
        extra={"phase": phase_name, "strategy": resolved.name, "workers": worker_count},
    )
    return PhaseHandle(phase_name, resolved, workers, reporter or NullReporter())


def run_phase(
    store: Store,
    strategy: Union[str, StrategyKind],
    worker_count: int,
    delay_hook: Optional[DelayHook] = None,
    reporter: Optional[Reporter] = None,
    phase: Optional[str] = None,
    record_id: Optional[int] = None,
    marker: str = "$",
    timeout: Optional[float] = None,
) -> List[Outcome]:
    """
    Run one phase to completion and return every outcome in observation order.
    """
    handle = start_phase(
        store,
        strategy,
        worker_count,
        delay_hook=delay_hook,
        reporter=reporter,
        phase=phase,
        record_id=record_id,
        marker=marker,
    )
    return handle.wait(timeout=timeout)


@dataclass
class RunConfig:
    """
    Parameters for a sequence of phases.

    `reseed` resets the record once before the first phase; `reseed_each_phase`
    resets it before every later phase too. Otherwise state accumulates.
    """

    strategy_names: Optional[List[str]] = None
    workers: int = 2
    delay_seconds: float = 1.0
    delay_hook: Optional[DelayHook] = None
    marker: str = "$"
    reseed: bool = True
    reseed_each_phase: bool = False
    phase_timeout: Optional[float] = None
    between_phases: Optional[Callable[[str], None]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        _check_marker(self.marker)


def run_phases(
    store: Store,
    config: Optional[RunConfig] = None,
    reporter: Optional[Reporter] = None,
) -> List[PhaseReport]:
    """
    Run phases one after another, each fully completed before the next starts.

    `config.between_phases` is called with the next phase name before every
    phase except the first; hosts use it for interactive pacing.
    """
    config = config or RunConfig()
    reporter = reporter or NullReporter()
    names = _expand_names(config.strategy_names)
    delay_hook = config.delay_hook or sleep_hook(config.delay_seconds)
    record_id = store.config.record_id

    # Without a reseed this only makes sure the table and row exist.
    store.bootstrap(reset=config.reseed)

    reports: List[PhaseReport] = []
    for index, name in enumerate(names):
        if index and config.between_phases is not None:
            config.between_phases(name)
        if config.reseed_each_phase and index:
            store.bootstrap(reset=True)

        before: Record = store.fetch_record(record_id)
        reporter.phase_started(name, name, before)
        outcomes = run_phase(
            store,
            name,
            config.workers,
            delay_hook=delay_hook,
            reporter=reporter,
            phase=name,
            record_id=record_id,
            marker=config.marker,
            timeout=config.phase_timeout,
        )
        after: Record = store.fetch_record(record_id)
        report = PhaseReport(
            phase=name,
            strategy=name,
            worker_count=config.workers,
            record_before=before,
            record_after=after,
            outcomes=outcomes,
        )
        reporter.phase_completed(report)
        reports.append(report)
        log.info(f"[PHASE COMPLETE] {name}", extra=report.summary())

    log.info(
        f"[ORCHESTRATOR COMPLETE] {len(names)} phase(s) executed",
        extra={"phases": names, "total_phases": len(names)},
    )
    return reports


__all__ = [
    "DEFAULT_PHASE_ORDER",
    "PhaseHandle",
    "RunConfig",
    "available_strategies",
    "run_phase",
    "run_phases",
    "start_phase",
]
