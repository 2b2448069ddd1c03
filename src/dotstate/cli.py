"""Command-line interface for dotstate."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.table import Table

from .config import ConfigError, load_config, save_config
from .errors import DotstateError, SyncError
from .log import setup_logging
from .manager import DotstateManager
from .models import AddAction, AddResult, RemoveAction, RemoveResult, SwitchResult, SymlinkIssue, ValidationResult
from .paths import display_path, home_dir
from .profiles import COMMON_NAME, sanitize_profile_name
from .symlinks import scan_symlinks

app = typer.Typer(help="Profile-based dotfiles manager with pre-flight safety checks")
profile_app = typer.Typer(help="Create, switch, rename and delete profiles")
app.add_typer(profile_app, name="profile")
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.toml")
StoreOption = typer.Option(None, "--store", "-s", help="Override the dotfiles store directory")
ProfileOption = typer.Option(None, "--profile", "-p", help="Override the active profile")


def _load_manager(config: Path | None, store: Path | None, profile: str | None) -> DotstateManager:
    settings = load_config(config).with_overrides(repo_path=store, active_profile=profile)
    return DotstateManager(settings)


def _relative_to_home(raw: str) -> str:
    """Accept ``~/x``, an absolute path under home, or a home-relative path."""

    if raw.startswith("~/"):
        return raw[2:]
    candidate = Path(raw)
    if candidate.is_absolute():
        try:
            return candidate.relative_to(home_dir()).as_posix()
        except ValueError:
            raise DotstateError(f"'{raw}' is not inside the home directory") from None
    return raw


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check the permissions of the home directory and the store.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, SyncError):
        console.print(f"[red]{exc}[/red]")
        if exc.backup_session is not None:
            console.print(f"[yellow]Recover the original from '{exc.backup_session}'.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, DotstateError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_issues(issues: Iterable[SymlinkIssue]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("Link", overflow="fold")
    table.add_column("Target", overflow="fold")
    table.add_column("Size", justify="right")

    for issue in issues:
        size = f"{issue.size / (1024 * 1024):.1f} MiB" if issue.size is not None else ""
        table.add_row(issue.kind.value, str(issue.link), str(issue.target), size)

    console.print(table)


def _format_verdict(relative: str, verdict: ValidationResult) -> None:
    if verdict.safe:
        console.print(f"[green]'{relative}' is safe to sync.[/green]")
        return
    console.print(f"[red]{verdict.reason}[/red]")
    if verdict.issues:
        _format_issues(verdict.issues)


def _format_add_result(result: AddResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry")
    table.add_column("Action")
    table.add_column("Backup", overflow="fold")
    table.add_row(result.relative_path, result.action.value, str(result.backup) if result.backup else "")
    console.print(table)


def _format_remove_result(result: RemoveResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry")
    table.add_column("Action")
    table.add_column("Restored to", overflow="fold")
    table.add_row(result.relative_path, result.action.value, display_path(result.source))
    console.print(table)
    if result.action is RemoveAction.DETACHED:
        console.print(
            f"[yellow]'{display_path(result.source)}' was left as is; "
            f"the stored copy remains at '{result.managed}'.[/yellow]"
        )


def _format_switch_result(result: SwitchResult) -> None:
    if not result.changed and result.previous == result.target:
        console.print(f"[yellow]Profile '{result.target}' is already active.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry")
    table.add_column("Action")
    for relative in result.removed:
        table.add_row(relative, "unlinked")
    for relative in result.linked:
        table.add_row(relative, "linked")
    console.print(table)
    if result.backup is not None:
        console.print(f"Displaced files were backed up to '{result.backup}'.")
    console.print(f"[green]Active profile is now '{result.target}'.[/green]")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")) -> None:
    setup_logging(verbose=verbose)


@app.command()
def check(
    path: str = typer.Argument(..., help="Path under the home directory"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Run the pre-flight checks for PATH without changing anything."""

    try:
        manager = _load_manager(config, store, profile)
        relative = _relative_to_home(path)
        verdict = manager.check(relative)
        _format_verdict(relative, verdict)
        if not verdict.safe:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def add(
    path: str = typer.Argument(..., help="Path under the home directory"),
    common: bool = typer.Option(False, "--common", help="Share PATH between every profile"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Move PATH into the store and replace it with a symlink."""

    try:
        manager = _load_manager(config, store, profile)
        result = manager.add(_relative_to_home(path), common=common)
        _format_add_result(result)
        if result.action is AddAction.REFUSED:
            console.print(f"[red]{result.reason}[/red]")
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def remove(
    path: str = typer.Argument(..., help="Managed path under the home directory"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Replace the symlink at PATH with the stored copy and stop managing it."""

    try:
        manager = _load_manager(config, store, profile)
        _format_remove_result(manager.remove(_relative_to_home(path)))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def link(
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Create any missing symlinks for the active profile and the common files."""

    try:
        manager = _load_manager(config, store, profile)
        result = manager.activate_profile()
        if not result.linked:
            console.print("[green]Every managed path is already linked.[/green]")
            return
        _format_switch_result(result)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def scan(directory: Path = typer.Argument(..., help="Directory to scan", exists=True, file_okay=False)) -> None:
    """List broken, circular and external symlinks below DIRECTORY."""

    result = scan_symlinks(directory)
    if result.safe:
        console.print("[green]No problematic symlinks found.[/green]")
        return
    _format_issues(result.issues)
    raise typer.Exit(code=1)


@app.command(name="list")
def list_managed(
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Show the paths managed by the active profile."""

    try:
        manager = _load_manager(config, store, profile)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Profile")
        table.add_column("Entry")
        table.add_column("Linked")
        entries = [(manager.profile, relative) for relative in manager.managed_paths()]
        entries.extend((COMMON_NAME, relative) for relative in manager.manifest.common_files)
        for owner, relative in entries:
            source = manager.source_path(relative)
            linked = "[green]yes[/green]" if source.is_symlink() else "[red]no[/red]"
            table.add_row(owner, relative, linked)
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@profile_app.command(name="list")
def profile_list(config: Path | None = ConfigOption, store: Path | None = StoreOption) -> None:
    """List profiles recorded in the manifest."""

    try:
        manager = _load_manager(config, store, None)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Profile")
        table.add_column("Description", overflow="fold")
        table.add_column("Files", justify="right")
        for entry in manager.manifest.profiles:
            name = entry.name
            if name == manager.settings.active_profile:
                name = f"[bold green]{name}[/bold green]"
            table.add_row(name, entry.description or "", str(len(entry.synced_files)))
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@profile_app.command(name="create")
def profile_create(
    name: str = typer.Argument(..., help="Profile name"),
    description: str | None = typer.Option(None, "--description", "-d", help="Optional description"),
    sanitize: bool = typer.Option(False, "--sanitize", help="Repair invalid characters in NAME"),
    copy_from: str | None = typer.Option(None, "--copy-from", help="Start with a copy of this profile's files"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
) -> None:
    """Create a profile, empty or seeded from another one."""

    try:
        manager = _load_manager(config, store, None)
        if sanitize:
            name = sanitize_profile_name(name)
        manager.create_profile(name, description, copy_from=copy_from)
        console.print(f"[green]Created profile '{name}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@profile_app.command(name="switch")
def profile_switch(
    name: str = typer.Argument(..., help="Profile to activate"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
) -> None:
    """Swap the home symlinks over to profile NAME and make it active."""

    try:
        settings = load_config(config)
        manager = DotstateManager(settings.with_overrides(repo_path=store))
        result = manager.switch_profile(name)
        if settings.active_profile != name:
            save_config(settings.model_copy(update={"active_profile": name}), config)
        _format_switch_result(result)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@profile_app.command(name="rename")
def profile_rename(
    old: str = typer.Argument(..., help="Current profile name"),
    new: str = typer.Argument(..., help="New profile name"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
) -> None:
    """Rename a profile and its store folder."""

    try:
        settings = load_config(config)
        manager = DotstateManager(settings.with_overrides(repo_path=store))
        manager.rename_profile(old, new)
        if settings.active_profile == old:
            save_config(settings.model_copy(update={"active_profile": new}), config)
        console.print(f"[green]Renamed profile '{old}' to '{new}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@profile_app.command(name="delete")
def profile_delete(
    name: str = typer.Argument(..., help="Profile name"),
    config: Path | None = ConfigOption,
    store: Path | None = StoreOption,
    profile: str | None = ProfileOption,
) -> None:
    """Delete a profile and its store folder."""

    try:
        manager = _load_manager(config, store, profile)
        manager.delete_profile(name)
        console.print(f"[green]Deleted profile '{name}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
