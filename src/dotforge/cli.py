"""Command-line interface for dotforge."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, ConfigError, load_config
from .errors import ApplyError, ConflictError, DotforgeError, LockMismatchError
from .manager import DotforgeManager
from .models import Action, ActionType, StatusReport, StatusState
from .workspace import Workspace, detect_workspace

app = typer.Typer(help="Declarative dotfiles reconciliation engine")
mod_app = typer.Typer(help="Manage module sources and the lockfile")
app.add_typer(mod_app, name="mod")
console = Console()

ACTION_STYLES = {
    ActionType.CREATE: "green",
    ActionType.UPDATE: "yellow",
    ActionType.DELETE: "red",
    ActionType.NOOP: "dim",
}

STARTER_CONFIG = """# dotforge configuration

[settings]
home_dir = "./home"
target_root = "~"
modules_dir = "./modules"

[vars]
# name = "value"

# [modules.example]
# enable = true
"""


def _load_manager(config: Path | None) -> DotforgeManager:
    if config is None:
        config = detect_workspace().config_path
    return DotforgeManager(load_config(config))


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, LockMismatchError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Run 'dotforge mod lock' after reviewing the mod-file changes.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message or "could not find" in message:
            console.print("[yellow]Use 'dotforge init' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, ConflictError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Each target may only be produced by one source.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ApplyError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]State was not updated; fix the failures and run 'dotforge apply' again.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, DotforgeError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_actions(actions: Iterable[Action], *, show_noop: bool = False) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Action")
    table.add_column("Target", overflow="fold")
    table.add_column("Source", overflow="fold")

    for action in actions:
        if action.type is ActionType.NOOP and not show_noop:
            continue
        style = ACTION_STYLES[action.type]
        if action.desired is not None:
            source = action.desired.source_info
        else:
            source = action.current.source_info if action.current else ""
        table.add_row(f"[{style}]{action.type.value}[/{style}]", str(action.target), source)

    console.print(table)


def _summarize(actions: list[Action]) -> str:
    counts = {kind: 0 for kind in ActionType}
    for action in actions:
        counts[action.type] += 1
    return ", ".join(f"{counts[kind]} {kind.value}" for kind in ActionType)


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Target", overflow="fold")
    table.add_column("State")
    table.add_column("Source", overflow="fold")
    table.add_column("Details", overflow="fold")

    status_styles = {
        StatusState.IN_SYNC: "green",
        StatusState.PENDING: "yellow",
        StatusState.MISSING: "red",
        StatusState.DRIFTED: "red",
        StatusState.ORPHANED: "yellow",
    }

    for entry in report.entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(
            str(entry.target),
            f"[{style}]{entry.state.value}[/{style}]",
            entry.source_info,
            entry.details or "",
        )

    console.print(table)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=False, show_path=False)],
        force=True,
    )


@app.command()
def init(
    directory: Path = typer.Argument(Path("."), help="Workspace directory to initialise", file_okay=False),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotforge configuration plus empty mod and sum files."""

    workspace = Workspace.at(directory.resolve())
    config_path = workspace.config_path
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    try:
        workspace.root.mkdir(parents=True, exist_ok=True)
        config_path.write_text(STARTER_CONFIG)
        (workspace.root / "home").mkdir(exist_ok=True)
        workspace.modules_dir.mkdir(exist_ok=True)
        workspace.ensure_files()
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def plan(
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
    all_actions: bool = typer.Option(False, "--all", help="Include no-op actions"),
) -> None:
    """Show the actions an apply would perform."""

    try:
        manager = _load_manager(config)
        try:
            actions = manager.plan()
        finally:
            manager.close()
        _format_actions(actions, show_noop=all_actions)
        console.print(_summarize(actions))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def apply(
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan only; do not touch the filesystem"),
) -> None:
    """Reconcile the target tree with the desired files."""

    try:
        manager = _load_manager(config)
        try:
            actions = manager.apply(dry_run=dry_run)
        finally:
            manager.close()
        _format_actions(actions)
        prefix = "[yellow]dry run:[/yellow] " if dry_run else ""
        console.print(f"{prefix}{_summarize(actions)}")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
) -> None:
    """Show managed entries and their current state."""

    try:
        manager = _load_manager(config)
        try:
            report = manager.status()
        finally:
            manager.close()
        _format_status(report)
        if not report.in_sync:
            console.print("[yellow]Some entries are out of sync. Run 'dotforge apply' to reconcile.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@mod_app.command("add")
def mod_add(
    name: str = typer.Argument(..., help="Module name"),
    source: str | None = typer.Argument(None, help="provider-or-alias:path (defaults to local:<name>)"),
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
) -> None:
    """Add or update a module source in the mod-file."""

    try:
        manager = _load_manager(config)
        try:
            spec = manager.add_module(name, source)
        finally:
            manager.close()
        console.print(f"[green]updated {manager.workspace.mod_path}: {name} = {spec}[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@mod_app.command("source")
def mod_source(
    alias: str = typer.Argument(..., help="Alias name"),
    spec: str = typer.Argument(..., help="provider:target[@ref], e.g. github:owner/repo@main"),
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
) -> None:
    """Add or update a source alias in the mod-file."""

    try:
        manager = _load_manager(config)
        try:
            path = manager.add_source(alias, spec)
        finally:
            manager.close()
        console.print(f"[green]updated {path}: source {alias} = {spec}[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@mod_app.command("lock")
def mod_lock(
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
) -> None:
    """Regenerate the sum-file from the mod-file and enabled modules."""

    try:
        manager = _load_manager(config)
        try:
            result = manager.lock()
        finally:
            manager.close()
        console.print(
            f"[green]wrote {manager.workspace.sum_path} ({result.sources} sources, {result.modules} modules)[/green]"
        )
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@mod_app.command("tidy")
def mod_tidy(
    config: Path | None = typer.Option(None, "--config", "-c", help=f"Path to {DEFAULT_CONFIG_FILENAME}"),
) -> None:
    """Alias for 'mod lock'."""

    mod_lock(config=config)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
