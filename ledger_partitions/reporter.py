from __future__ import annotations

from datetime import date
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ledger_partitions.domain.models import Partition, PartitionLogEntry
from ledger_partitions.domain.results import HealthStatus, MigrationResult, SweepReport


def _bound(value: Optional[object], unbounded: str) -> str:
    return str(value) if value is not None else f"[dim]{unbounded}[/dim]"


def print_partitions(partitions: List[Partition], console: Optional[Console] = None) -> None:
    """
    Render the partition catalog as a rich table, ordered by lower bound.
    """
    console = console or Console()

    if not partitions:
        console.print("[yellow]No partitions found (is the table partitioned?).[/yellow]")
        return

    table = Table(title="Ledger Partitions", box=box.ROUNDED, caption=f"{len(partitions)} partitions")
    table.add_column("Partition", style="cyan", no_wrap=True)
    table.add_column("Kind", style="blue")
    table.add_column("From (incl.)", style="green")
    table.add_column("To (excl.)", style="green")
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Size", justify="right", style="yellow")

    def sort_key(p: Partition) -> tuple:
        # MINVALUE first, then by start date
        return (p.start is not None, p.start.day if p.start else date.min, p.name)

    for p in sorted(partitions, key=sort_key):
        rows = f"{p.row_count:,}" if p.row_count is not None else "N/A"
        table.add_row(
            p.name,
            p.kind.value,
            _bound(p.start, "MINVALUE"),
            _bound(p.end, "MAXVALUE"),
            rows,
            p.size or "N/A",
        )

    console.print(table)


def print_log_entries(entries: List[PartitionLogEntry], console: Optional[Console] = None) -> None:
    console = console or Console()

    if not entries:
        console.print("[yellow]Partition log is empty.[/yellow]")
        return

    table = Table(title="Partition Log", box=box.ROUNDED, caption="Newest first")
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("Operation", style="blue")
    table.add_column("Partition", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")

    for entry in entries:
        status_style = "green" if entry.status.value == "success" else "bold red"
        when = entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "-"
        table.add_row(
            when,
            entry.operation.value,
            entry.partition_name,
            f"[{status_style}]{entry.status.value}[/{status_style}]",
            entry.detail or "",
        )

    console.print(table)


def print_sweep_report(report: SweepReport, console: Optional[Console] = None) -> None:
    console = console or Console()

    if report.skipped:
        console.print(f"[yellow]Sweep for {report.run_date} skipped (provisioning disabled).[/yellow]")
        return
    if report.error:
        console.print(f"[bold red]Sweep for {report.run_date} failed:[/bold red] {report.error}")
        return

    table = Table(
        title=f"Sweep {report.run_date}",
        box=box.ROUNDED,
        caption=f"future catch-all from {report.future_bound} ({report.future_action})",
    )
    table.add_column("Day", style="cyan", no_wrap=True)
    table.add_column("Partition", style="cyan", no_wrap=True)
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")

    for result in report.results:
        style = "green" if result.ok else "bold red"
        table.add_row(
            str(result.day) if result.day else "-",
            result.partition_name,
            f"[{style}]{result.status.value}[/{style}]",
            result.error or result.detail or "",
        )

    console.print(table)


def print_migration_result(result: MigrationResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    if not result.ok:
        console.print(f"[bold red]Migration failed:[/bold red] {result.error}")
        return
    if result.status.value == "already_partitioned":
        console.print("[green]Table is already partitioned; nothing to do.[/green]")
        return
    resumed = " (resumed)" if result.resumed else ""
    console.print(
        f"[green]Migrated {result.rows:,} rows{resumed}; next id {result.max_id + 1}.[/green]"
    )
    for name in result.partitions:
        console.print(f"  - {name}")


def print_health(status: HealthStatus, console: Optional[Console] = None) -> None:
    console = console or Console()
    if status.healthy:
        console.print(f"[green]Imminent window covered ({status.checked_on} and next day).[/green]")
        return
    missing = ", ".join(str(day) for day in status.missing)
    console.print(f"[bold red]No partition for: {missing}[/bold red]")


__all__ = [
    "print_health",
    "print_log_entries",
    "print_migration_result",
    "print_partitions",
    "print_sweep_report",
]
