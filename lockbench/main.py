from __future__ import annotations

import sys
from typing import Optional

import typer

from lockbench.config import StoreConfig, get_settings
from lockbench.domain.errors import HarnessError
from lockbench.infrastructure.factory import available_stores, create_store
from lockbench.orchestrator import RunConfig, available_strategies, run_phases
from lockbench.reporter import ConsoleReporter, LogReporter, print_results
from lockbench.utils.logging import configure_logging

app = typer.Typer(help="Locking harness: race concurrent read-modify-write strategies on one record.")


def _store_config() -> StoreConfig:
    return StoreConfig.from_settings(get_settings())


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    config = StoreConfig.from_settings(settings)
    typer.echo(
        f"DB={config.safe_dsn} table={config.table} record_id={config.record_id} | "
        f"workers={settings.harness_workers} delay={settings.harness_delay_seconds}s "
        f"marker={settings.harness_marker!r} lock_timeout={config.lock_timeout_ms}ms"
    )


@app.command("list")
def list_strategies() -> None:
    """
    List available strategies and stores.
    """
    typer.echo("Available strategies: " + ", ".join(available_strategies()))
    typer.echo("Available stores: " + ", ".join(available_stores()))


@app.command()
def bootstrap(
    store: str = typer.Option("postgres", "--store", help="Store backend (postgres, memory)."),
    keep: bool = typer.Option(
        False, "--keep", help="Keep an existing row's value/version instead of reseeding."
    ),
) -> None:
    """
    Create the record table if needed and seed the single row.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    backend = create_store(store, _store_config())
    record = backend.bootstrap(reset=not keep)
    typer.echo(f"Record {record.id}: value={record.value!r} version={record.version}")


@app.command()
def run(
    strategy: str = typer.Option(
        "all",
        "--strategy",
        "--strategies",
        "-s",
        help="Strategy to run (no_locking, optimistic, pessimistic, serializable, all).",
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Concurrent workers per phase."
    ),
    delay: Optional[float] = typer.Option(
        None, "--delay", "-d", min=0.0, help="Seconds between read and write."
    ),
    store: str = typer.Option("postgres", "--store", help="Store backend (postgres, memory)."),
    reseed: bool = typer.Option(
        True, "--reseed/--no-reseed", help="Reset the record before the first phase."
    ),
    reseed_each_phase: bool = typer.Option(
        False, "--reseed-each-phase", help="Reset the record before every phase."
    ),
    interactive: bool = typer.Option(
        False, "--interactive/--no-interactive", help="Wait for RETURN between phases."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Emit JSON logs (same as LOG_JSON=true)."
    ),
) -> None:
    """
    Run one or all strategies, phase after phase, against the shared record.
    """
    settings = get_settings()
    use_json = settings.log_json or json_logs
    configure_logging(level=settings.log_level, json_logs=use_json)

    if strategy == "list":
        typer.echo("Available strategies: " + ", ".join(available_strategies()))
        return

    def _pause(next_phase: str) -> None:
        typer.prompt(
            f"Press RETURN to start the next test ({next_phase})",
            default="",
            show_default=False,
        )

    store_config = _store_config()
    delay_seconds = settings.harness_delay_seconds if delay is None else delay
    try:
        config = RunConfig(
            strategy_names=["all"] if strategy == "all" else [strategy],
            workers=workers or settings.harness_workers,
            delay_seconds=delay_seconds,
            marker=settings.harness_marker,
            reseed=reseed,
            reseed_each_phase=reseed_each_phase,
            phase_timeout=settings.harness_phase_timeout_seconds,
            between_phases=_pause if interactive else None,
        )
        backend = create_store(store, store_config)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    lock_timeout_ms = store_config.lock_timeout_ms
    if strategy in ("all", "pessimistic") and 0 < lock_timeout_ms <= delay_seconds * 1000:
        typer.echo(
            f"Warning: delay {delay_seconds}s is not shorter than the lock timeout "
            f"{lock_timeout_ms}ms; contending pessimistic workers will report lock_timeout "
            "conflicts instead of waiting (raise DB_LOCK_TIMEOUT_MS or lower --delay).",
            err=True,
        )

    console_reporter = ConsoleReporter()
    # Structured runs get outcome lines as log records instead of console text.
    reporter = LogReporter() if use_json else console_reporter
    try:
        reports = run_phases(backend, config, reporter=reporter)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    except HarnessError as exc:
        typer.echo(f"Run aborted: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        backend.close()

    print_results(reports, console=console_reporter.console)
    typer.echo("all done.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
