"""CLI for workspace-snapshots."""

from datetime import datetime
import logging
import shlex
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from .config import SnapshotSettings, load_settings
from .core import RestoreOptions, SnapshotTrigger
from .display import (
    display_filter_decisions,
    display_restore_preview,
    display_restore_result,
    display_snapshot,
    display_snapshot_list,
    display_system_stats,
)
from .errors import ConfigurationError, IntegrityError, SnapshotError
from .filtering import FileFilter
from .manager import SnapshotManager


app = typer.Typer(help="""\
In-memory workspace snapshots. Capture the files of a directory, list
and inspect snapshots, and restore them with automatic rollback.""")

# Commands available inside `wsnap shell`
shell_app = typer.Typer(add_completion=False, help="Snapshot shell commands.")

console = Console()

SHELL_PROMPT = "wsnap> "


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_settings(ctx: typer.Context, root: Path) -> SnapshotSettings:
    """Load settings for a workspace, exiting with a readable error."""
    config_path = (ctx.obj or {}).get("config")
    try:
        return load_settings(path=config_path, root=root)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings file (default: .wsnap.yaml in the workspace)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    _setup_logging(verbose)
    ctx.obj = {"config": config}


@app.command()
def shell(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Workspace directory"),
):
    """Start an interactive snapshot session for a workspace.

    Snapshots live in memory and are gone when the session ends.

    Examples:
        wsnap shell                 # Current directory
        wsnap shell ~/project       # Another workspace
        wsnap -c snap.yaml shell    # Explicit settings file
    """
    if not path.is_dir():
        console.print(f"[red]✗[/red] Not a directory: {path}")
        raise typer.Exit(1)

    settings = _load_settings(ctx, path)
    try:
        manager = SnapshotManager(settings, root=path)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Workspace:[/bold] {manager.workspace.root}")
    console.print("[dim]Type 'help' for commands, 'exit' to quit[/dim]")

    while True:
        try:
            line = console.input(SHELL_PROMPT)
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if not run_shell_line(manager, line):
            break


def run_shell_line(manager: SnapshotManager, line: str) -> bool:
    """Run one shell line. Returns False when the session should end.

    Commands run in typer's standalone mode, so usage errors and aborts are
    printed by typer itself and end in SystemExit, which only ends the
    command. Engine errors propagate out of the command and are shown here.
    """
    try:
        args = shlex.split(line)
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        return True
    if not args:
        return True
    if args[0] in ("exit", "quit"):
        return False

    try:
        shell_app(args, obj=manager, prog_name="", standalone_mode=True)
    except SystemExit:
        pass
    except IntegrityError as e:
        console.print(f"[red]INTEGRITY ERROR[/red] {e}")
    except (SnapshotError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
    return True


# ============= Shell commands =============

@shell_app.command()
def create(
    ctx: typer.Context,
    description: List[str] = typer.Argument(..., help="Snapshot description"),
):
    """Capture the workspace into a new snapshot."""
    manager: SnapshotManager = ctx.obj
    snapshot = manager.create_snapshot(" ".join(description))
    console.print(
        f"[green]✓[/green] Created snapshot [cyan]{snapshot.id}[/cyan] "
        f"({snapshot.file_count} files)"
    )
    if snapshot.skipped:
        console.print(f"[yellow]⚠ {len(snapshot.skipped)} file(s) could not be read[/yellow]")


@shell_app.command(name="list")
def list_(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most N snapshots"),
    trigger: Optional[SnapshotTrigger] = typer.Option(None, "--trigger", "-t", help="Only manual or backup snapshots"),
    match: Optional[str] = typer.Option(None, "--match", "-m", help="Description contains this text"),
    since: Optional[datetime] = typer.Option(None, "--since", help="Created at or after (UTC)"),
    until: Optional[datetime] = typer.Option(None, "--until", help="Created at or before (UTC)"),
    oldest_first: bool = typer.Option(False, "--oldest-first", help="Oldest snapshots first"),
):
    """List snapshots, newest first."""
    manager: SnapshotManager = ctx.obj
    snapshots = manager.list_snapshots(
        limit,
        trigger=trigger,
        description=match,
        since=since,
        until=until,
        oldest_first=oldest_first,
    )
    display_snapshot_list(snapshots, console)


@shell_app.command()
def show(
    ctx: typer.Context,
    snapshot_id: str = typer.Argument(..., help="Snapshot ID or unique prefix"),
):
    """Show snapshot details."""
    manager: SnapshotManager = ctx.obj
    display_snapshot(manager.get_snapshot(snapshot_id), console)


@shell_app.command()
def preview(
    ctx: typer.Context,
    snapshot_id: str = typer.Argument(..., help="Snapshot ID or unique prefix"),
    files: Optional[List[str]] = typer.Option(None, "--file", "-f", help="Only this snapshot path (repeatable)"),
):
    """Show what a restore would change."""
    manager: SnapshotManager = ctx.obj
    threshold = manager.settings.restoration.preview_threshold
    display_restore_preview(manager.preview_restore(snapshot_id, files or None), console, threshold)


@shell_app.command()
def restore(
    ctx: typer.Context,
    snapshot_id: str = typer.Argument(..., help="Snapshot ID or unique prefix"),
    files: Optional[List[str]] = typer.Option(None, "--file", "-f", help="Only this snapshot path (repeatable)"),
    backup: Optional[bool] = typer.Option(None, "--backup/--no-backup", help="Snapshot current state first"),
    overwrite: Optional[bool] = typer.Option(None, "--overwrite/--keep-existing", help="Replace existing files"),
    permissions: Optional[bool] = typer.Option(None, "--permissions/--no-permissions", help="Restore file modes"),
    rollback: Optional[bool] = typer.Option(None, "--rollback/--no-rollback", help="Undo changes on failure"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation for large restores"),
):
    """Restore a snapshot onto the workspace.

    Restores touching more files than restoration.preview_threshold show a
    preview and ask for confirmation first.
    """
    manager: SnapshotManager = ctx.obj
    threshold = manager.settings.restoration.preview_threshold
    paths = files or None

    if not yes:
        plan = manager.preview_restore(snapshot_id, paths)
        if plan.impacted_files > threshold:
            display_restore_preview(plan, console, threshold)
            if not typer.confirm("Proceed with restore?"):
                console.print("[dim]Restore cancelled[/dim]")
                return

    options = RestoreOptions(
        create_backup=backup,
        overwrite_existing=overwrite,
        preserve_permissions=permissions,
        rollback_on_failure=rollback,
        paths=paths,
    )
    display_restore_result(manager.restore_snapshot(snapshot_id, options), console)


@shell_app.command()
def delete(
    ctx: typer.Context,
    snapshot_id: str = typer.Argument(..., help="Snapshot ID or unique prefix"),
):
    """Delete a snapshot."""
    manager: SnapshotManager = ctx.obj
    if manager.delete_snapshot(snapshot_id):
        console.print(f"[green]✓[/green] Deleted {snapshot_id}")
    else:
        console.print(f"[yellow]No unique snapshot matches {snapshot_id}[/yellow]")


@shell_app.command()
def exclude(
    ctx: typer.Context,
    pattern: str = typer.Argument(..., help="Gitignore-style pattern"),
    remove: bool = typer.Option(False, "--remove", help="Drop a pattern added earlier"),
):
    """Exclude a pattern from later snapshots."""
    manager: SnapshotManager = ctx.obj
    if remove:
        if manager.remove_exclusion_pattern(pattern):
            console.print(f"[green]✓[/green] No longer excluding {pattern}")
        else:
            console.print(f"[yellow]{pattern} is not a pattern added in this session[/yellow]")
    elif manager.add_exclusion_pattern(pattern):
        console.print(f"[green]✓[/green] Excluding {pattern}")
    else:
        console.print(f"[yellow]{pattern} is already excluded[/yellow]")


@shell_app.command()
def stats(ctx: typer.Context):
    """Show storage utilization and configuration."""
    manager: SnapshotManager = ctx.obj
    display_system_stats(manager.get_system_stats(), console)


@shell_app.command(name="help")
def help_():
    """List shell commands."""
    for command in shell_app.registered_commands:
        name = command.name or command.callback.__name__
        doc = (command.callback.__doc__ or "").strip().splitlines()[0]
        console.print(f"  [cyan]{name:<8}[/cyan] {doc}")
    console.print(f"  [cyan]{'exit':<8}[/cyan] End the session")


# ============= One-shot commands =============

@app.command(name="filter")
def filter_(
    ctx: typer.Context,
    paths: List[str] = typer.Argument(..., help="Workspace-relative paths to check"),
    root: Path = typer.Option(Path("."), "--root", "-r", help="Workspace directory"),
    size: Optional[int] = typer.Option(None, "--size", help="Assumed size for paths that don't exist"),
):
    """Show whether paths would be captured, and why.

    Existing files are checked with their real size; other paths use --size
    (default 1024 bytes).

    Examples:
        wsnap filter src/app.py node_modules/x.js logo.png
        wsnap filter big.log --size 20000000
    """
    settings = _load_settings(ctx, root)
    file_filter = FileFilter(settings.filters, settings.file_handling)

    results = []
    for raw in paths:
        candidate = root / raw
        if size is None and candidate.is_file():
            file_size = candidate.stat().st_size
        else:
            file_size = size if size is not None else 1024
        try:
            results.append((raw, file_filter.should_include(raw, file_size)))
        except ValueError as e:
            console.print(f"[red]✗[/red] {e}")
            raise typer.Exit(1)
    display_filter_decisions(results, console)


@app.command()
def config(
    ctx: typer.Context,
    root: Path = typer.Option(Path("."), "--root", "-r", help="Workspace directory"),
):
    """Print the effective settings as YAML."""
    settings = _load_settings(ctx, root)
    console.print(
        yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False),
        markup=False,
        highlight=False,
    )


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
