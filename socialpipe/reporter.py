from __future__ import annotations

from typing import Any, List, Sequence

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.table import Table

from socialpipe.infrastructure.storage import StorageEntry
from socialpipe.writer import WriteReport


def _row_dict(row: Any) -> dict:
    if isinstance(row, BaseModel):
        return row.model_dump()
    return dict(row)


def _format_cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.2f}"
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:,}"
    return str(value)


def print_write_report(report: WriteReport, console: Console | None = None) -> None:
    """
    Render a write report as a rich table, one row per partition.

    Failed partitions are highlighted and their error is shown inline.
    """
    console = console or Console()

    if not report.partitions:
        console.print(f"[yellow]No {report.kind.value} records to write.[/yellow]")
        return

    mem_mb = (report.peak_rss_bytes or 0) / (1024 * 1024)
    table = Table(
        title=f"{report.kind.value} -> {report.sink}:{report.base_path}",
        box=box.ROUNDED,
        caption=(
            f"{report.written_records:,}/{report.total_records:,} records in "
            f"{report.duration_seconds:.2f}s │ peak memory {mem_mb:.2f} MB"
        ),
    )
    table.add_column("Partition", style="cyan", no_wrap=True)
    table.add_column("Records", justify="right", style="magenta")
    table.add_column("Status")
    table.add_column("Location / Error", overflow="fold")
    table.add_column("Duration (s)", justify="right", style="green")

    for result in report.partitions:
        status = "[green]ok[/green]" if result.success else "[bold red]failed[/bold red]"
        detail = result.location if result.success else f"[red]{result.error}[/red]"
        table.add_row(
            str(result.key),
            f"{result.records:,}",
            status,
            detail or "-",
            f"{result.duration_seconds:.3f}",
        )

    console.print(table)


def print_rows(name: str, rows: Sequence[Any], console: Console | None = None) -> None:
    """Render query result rows; columns follow the first row's fields."""
    console = console or Console()

    if not rows:
        console.print(f"[yellow]{name}: no rows.[/yellow]")
        return

    dicts: List[dict] = [_row_dict(row) for row in rows]
    table = Table(title=name, box=box.ROUNDED, caption=f"{len(dicts)} row(s)")
    columns = list(dicts[0].keys())
    for column in columns:
        table.add_column(column, overflow="fold")
    for row in dicts:
        table.add_row(*(_format_cell(row.get(column)) for column in columns))

    console.print(table)


def print_entries(path: str, entries: Sequence[StorageEntry], console: Console | None = None) -> None:
    console = console or Console()
    if not entries:
        console.print(f"[yellow]{path or '/'}: empty.[/yellow]")
        return
    table = Table(title=path or "/", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Size (bytes)", justify="right", style="magenta")
    for entry in entries:
        table.add_row(entry.name, "dir" if entry.is_dir else "file", "-" if entry.is_dir else f"{entry.size:,}")
    console.print(table)
