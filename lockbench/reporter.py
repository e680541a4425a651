from __future__ import annotations

from typing import List, Optional, Protocol

from rich import box
from rich.console import Console
from rich.table import Table

from lockbench.domain.models import Outcome, OutcomeKind, PhaseReport, Record
from lockbench.utils.logging import get_logger

log = get_logger(__name__)

_KIND_STYLES = {
    OutcomeKind.SUCCEEDED: "green",
    OutcomeKind.CONFLICTED: "yellow",
    OutcomeKind.FAILED: "red",
}


class Reporter(Protocol):
    """
    Output sink for a run. `emit` is called once per worker, in the order
    outcomes are observed, always from the orchestrating thread.
    """

    def phase_started(self, phase: str, strategy: str, record: Record) -> None: ...

    def emit(self, outcome: Outcome) -> None: ...

    def phase_completed(self, report: PhaseReport) -> None: ...


class NullReporter:
    def phase_started(self, phase: str, strategy: str, record: Record) -> None:
        pass

    def emit(self, outcome: Outcome) -> None:
        pass

    def phase_completed(self, report: PhaseReport) -> None:
        pass


class LogReporter:
    """Writes every outcome line as a structured log record."""

    def __init__(self, logger_name: str = "lockbench.outcomes") -> None:
        self._log = get_logger(logger_name)

    def phase_started(self, phase: str, strategy: str, record: Record) -> None:
        self._log.info(
            f"TEST: {strategy}",
            extra={"phase": phase, "value": record.value, "version": record.version},
        )

    def emit(self, outcome: Outcome) -> None:
        # "message" is reserved on LogRecord.
        line = {
            ("outcome_message" if key == "message" else key): value
            for key, value in outcome.to_line().items()
        }
        self._log.info(f"{outcome.worker_label} {outcome.kind.value}: {outcome.message}", extra=line)

    def phase_completed(self, report: PhaseReport) -> None:
        self._log.info(f"Phase {report.phase} complete", extra=report.summary())


class ConsoleReporter:
    """
    Renders outcome lines as they arrive and a summary table per phase.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def phase_started(self, phase: str, strategy: str, record: Record) -> None:
        self.console.rule(f"TEST: {strategy}")
        self.console.print(
            f"[dim]record before: value={record.value!r} version={record.version}[/dim]"
        )

    def emit(self, outcome: Outcome) -> None:
        style = _KIND_STYLES[outcome.kind]
        before = outcome.observed_value_before if outcome.observed_value_before is not None else "-"
        self.console.print(
            f"[cyan]{outcome.worker_label}[/cyan] "
            f"[{style}]{outcome.kind.value.upper()}[/{style}] "
            f"read={before!r} "
            f"wrote={outcome.written_value!r} "
            f"{outcome.message}",
            highlight=False,
        )

    def phase_completed(self, report: PhaseReport) -> None:
        self.console.print(
            f"[dim]record after: value={report.record_after.value!r} "
            f"version={report.record_after.version}[/dim]"
        )
        if report.lost_updates:
            self.console.print(
                f"[bold red]{report.lost_updates} lost update(s): "
                f"{report.succeeded} succeeded but only {report.markers_added} marker(s) landed"
                "[/bold red]"
            )


def print_results(reports: List[PhaseReport], console: Optional[Console] = None) -> None:
    """
    Render one summary row per phase as a rich table, in run order.
    """
    console = console or Console()

    if not reports:
        console.print("[yellow]No phases were run.[/yellow]")
        return

    table = Table(
        title="Locking Harness Results",
        box=box.ROUNDED,
        caption="State accumulates across phases unless reseeded",
    )
    table.add_column("Phase", style="cyan", no_wrap=True)
    table.add_column("Workers", justify="right", style="magenta")
    table.add_column("Value before → after", style="white")
    table.add_column("Version", justify="right", style="blue")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Conflicted", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Lost updates", justify="right", style="bold red")

    for report in reports:
        table.add_row(
            report.phase,
            str(report.worker_count),
            f"{report.record_before.value} → {report.record_after.value}",
            f"{report.record_before.version} → {report.record_after.version}",
            str(report.succeeded),
            str(report.conflicted),
            str(report.failed),
            str(report.lost_updates),
        )

    console.print(table)


__all__ = [
    "ConsoleReporter",
    "LogReporter",
    "NullReporter",
    "Reporter",
    "print_results",
]
