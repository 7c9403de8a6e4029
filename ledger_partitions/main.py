from __future__ import annotations

import json
import sys
from typing import NoReturn, Optional

import typer

from ledger_partitions import orchestrator, reporter
from ledger_partitions.config import ProvisioningConfig, get_settings
from ledger_partitions.domain.models import DateKey
from ledger_partitions.exceptions import PartitionError
from ledger_partitions.utils.logging import configure_logging

app = typer.Typer(help="Ledger partition management CLI.")


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    # Fail fast on invalid provisioning settings before touching the database.
    ProvisioningConfig.from_settings(settings)


def _parse_date(value: Optional[str]) -> Optional[DateKey]:
    if value is None:
        return None
    try:
        return DateKey.parse(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}") from exc


def _fail(exc: PartitionError) -> NoReturn:
    typer.echo(f"{type(exc).__name__}: {exc}", err=True)
    raise typer.Exit(code=exc.exit_code)


DATE_OPTION = typer.Option(
    None,
    "--date",
    "-d",
    help="Run as if today were this UTC date (YYYY-MM-DD). Defaults to the current day.",
)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    try:
        settings = get_settings()
        config = ProvisioningConfig.from_settings(settings)
    except PartitionError as exc:
        _fail(exc)
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"parent={config.parent_table} mode={config.mode.value} "
        f"look_ahead={config.look_ahead_days} backfill={config.initial_backfill_days} "
        f"timeout_ms={config.provision_timeout_ms} retries={config.retry_attempts}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the partition_logs table if it does not exist.
    """
    try:
        _setup()
        orchestrator.init_db()
    except PartitionError as exc:
        _fail(exc)
    typer.echo("partition_logs ready.")


@app.command()
def migrate(
    date: Optional[str] = DATE_OPTION,
    bypass_errors: bool = typer.Option(
        False,
        "--bypass-errors",
        help="Report a failed migration instead of exiting non-zero.",
    ),
) -> None:
    """
    One-time (idempotent, resumable) migration of the flat table to a partitioned one.
    """
    try:
        _setup()
        result = orchestrator.run_migration(today=_parse_date(date), bypass_errors=bypass_errors)
    except PartitionError as exc:
        _fail(exc)
    reporter.print_migration_result(result)


@app.command()
def sweep(
    date: Optional[str] = DATE_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the sweep report as JSON."),
) -> None:
    """
    Provision the look-ahead window and rebound the future catch-all. Run from cron.
    """
    try:
        _setup()
        report = orchestrator.run_sweep(today=_parse_date(date))
    except PartitionError as exc:
        _fail(exc)
    if as_json:
        typer.echo(json.dumps(report.as_dict(), indent=2))
    else:
        reporter.print_sweep_report(report)


@app.command()
def ensure(
    date: str = typer.Option(..., "--date", "-d", help="UTC date to provision (YYYY-MM-DD)."),
) -> None:
    """
    Provision the partition for a single day.
    """
    try:
        _setup()
        result = orchestrator.ensure_day(_parse_date(date))
    except PartitionError as exc:
        _fail(exc)
    typer.echo(f"{result.partition_name}: {result.status.value} {result.error or result.detail or ''}")
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def status() -> None:
    """
    List partitions with their bounds, row counts and sizes.
    """
    try:
        _setup()
        partitions = orchestrator.partition_status()
    except PartitionError as exc:
        _fail(exc)
    reporter.print_partitions(partitions)


@app.command()
def logs(
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Number of entries to show."),
) -> None:
    """
    Show the most recent partition log entries.
    """
    try:
        _setup()
        entries = orchestrator.recent_logs(limit=limit)
    except PartitionError as exc:
        _fail(exc)
    reporter.print_log_entries(entries)


@app.command()
def health(date: Optional[str] = DATE_OPTION) -> None:
    """
    Exit non-zero when today or tomorrow has no partition.
    """
    try:
        _setup()
        result = orchestrator.check_health(today=_parse_date(date))
    except PartitionError as exc:
        _fail(exc)
    reporter.print_health(result)
    if not result.healthy:
        raise typer.Exit(code=2)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
