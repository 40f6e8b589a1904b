"""Rich rendering for snapshot listings, details and results."""

from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.table import Table

from .core import (
    RestorePreview,
    RestoreResult,
    Snapshot,
    SnapshotSummary,
    SnapshotTrigger,
    StorageStats,
)
from .filtering import FilterDecision
from .utils import humanize_date, humanize_size


def display_snapshot_list(summaries: Sequence[SnapshotSummary], console: Console) -> None:
    """Table of snapshots, newest first."""
    if not summaries:
        console.print("[dim]No snapshots yet[/dim]")
        return

    table = Table(title=f"Snapshots ({len(summaries)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created")

    for summary in summaries:
        description = summary.description
        if summary.trigger == SnapshotTrigger.BACKUP:
            description = f"[dim]{description}[/dim]"
        table.add_row(
            summary.id,
            description,
            str(summary.file_count),
            humanize_size(summary.total_size),
            humanize_date(summary.created_at),
        )
    console.print(table)


def display_snapshot(snapshot: Snapshot, console: Console, limit: int = 20) -> None:
    """Header plus the first ``limit`` entries of a snapshot."""
    console.print(f"\n[bold]Snapshot:[/bold] [cyan]{snapshot.id}[/cyan]")
    console.print(f"  Description: {snapshot.description}")
    console.print(f"  Created:     {snapshot.created_at.isoformat()} ({humanize_date(snapshot.created_at)})")
    console.print(f"  Trigger:     {snapshot.trigger.value}")
    console.print(f"  Workspace:   {snapshot.base_path}")
    console.print(f"  Files:       {snapshot.file_count} ({humanize_size(snapshot.total_size)})")
    console.print(f"  Captured in: {snapshot.capture_seconds:.2f}s")

    if snapshot.entries:
        table = Table(show_header=True)
        table.add_column("Path", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Mode")
        table.add_column("Digest", style="dim")
        for entry in snapshot.entries[:limit]:
            path = f"{entry.path} [dim](binary)[/dim]" if entry.is_binary else entry.path
            mode = oct(entry.permissions) if entry.permissions is not None else "-"
            # Strip "sha256:" for display
            table.add_row(path, humanize_size(entry.size), mode, entry.checksum.split(":", 1)[-1][:12])
        console.print(table)
        if snapshot.file_count > limit:
            console.print(f"  ... and {snapshot.file_count - limit} more")

    if snapshot.skipped:
        console.print(f"\n[yellow]Skipped during capture ({len(snapshot.skipped)}):[/yellow]")
        for skipped in snapshot.skipped:
            console.print(f"  • {skipped.path}: {skipped.reason}")


def display_restore_result(result: RestoreResult, console: Console) -> None:
    if result.success:
        console.print(f"[green]{result.summary()}[/green]")
    elif result.rolled_back:
        console.print(f"[red]{result.summary()}[/red]")
    else:
        console.print(f"[yellow]{result.summary()}[/yellow]")

    if result.backup_snapshot_id:
        console.print(f"[dim]Backup snapshot: {result.backup_snapshot_id}[/dim]")
    for failure in result.failed:
        console.print(f"  [red]✗[/red] {failure.path}: {failure.error}")
    for failure in result.rollback_errors:
        console.print(f"  [red]⚠ rollback[/red] {failure.path}: {failure.error}")


def display_restore_preview(preview: RestorePreview, console: Console, threshold: int = 10) -> None:
    """Summary line, then per-file lists when they are short enough."""
    console.print(f"[bold]Restore preview for {preview.snapshot_id}:[/bold] {preview.summary()}")
    groups = [
        ("green", "+", preview.will_create),
        ("yellow", "~", preview.will_modify),
        ("dim", "·", preview.binary_placeholders),
    ]
    for color, marker, paths in groups:
        if len(paths) > threshold:
            console.print(f"  [{color}]{marker} {len(paths)} files[/{color}]")
            continue
        for path in paths:
            console.print(f"  [{color}]{marker} {path}[/{color}]")


def display_storage_stats(stats: StorageStats, console: Console) -> None:
    if stats.utilization_percent >= 90:
        color = "red"
    elif stats.utilization_percent >= 70:
        color = "yellow"
    else:
        color = "green"
    console.print(f"[bold]Snapshots:[/bold] {stats.snapshot_count}/{stats.max_snapshots}")
    console.print(
        f"[bold]Memory:[/bold] {stats.memory_usage_mb:.2f} MB / {stats.max_memory_mb} MB"
    )
    console.print(f"[bold]Utilization:[/bold] [{color}]{stats.utilization_percent:.1f}%[/{color}]")


def display_system_stats(system: Dict[str, Any], console: Console) -> None:
    display_storage_stats(StorageStats(**system["storage"]), console)
    console.print(f"[bold]Active operations:[/bold] {system['active_operations']}")

    table = Table(title="Configuration", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in system["configuration"].items():
        table.add_row(key, str(value))
    for key, value in system["filter"].items():
        table.add_row(f"filter.{key}", str(value))
    console.print(table)


def display_filter_decisions(results: List[Tuple[str, FilterDecision]], console: Console) -> None:
    """Table of (path, FilterDecision) pairs."""
    table = Table()
    table.add_column("Path", style="cyan")
    table.add_column("Decision")
    table.add_column("Reason")
    for path, decision in results:
        verdict = "[green]include[/green]" if decision.include else "[red]exclude[/red]"
        if decision.binary:
            verdict += " [dim](placeholder)[/dim]"
        table.add_row(path, verdict, decision.reason.value)
    console.print(table)
