"""Commands that change the manifest or the installed plugins."""

from __future__ import annotations

import typer

from mpm.plugins.models import LATEST, AdoptPlan

from .. import helpers
from ..helpers import console


def init(
    name: str = typer.Argument("server", help="Project name stored in mpm.json"),
):
    """Create an empty mpm.json."""
    manifest = helpers.run(lambda rt: rt.engine.init(name))
    console.print(f"[green]Created[/green] mpm.json for [bold]{manifest.name}[/bold]")


def add(
    name: str = typer.Argument(..., help="Plugin name"),
    version: str = typer.Option(LATEST, "--version", "-v", help="Version to pin, or 'latest'"),
):
    """Put a plugin under management."""
    record = helpers.run(lambda rt: rt.engine.add(name, version))
    console.print(f"[green]Added[/green] {name} ({record.current.normalized})")
    console.print("[dim]Run 'mpm install' to download it.[/dim]")


def remove(
    name: str = typer.Argument(..., help="Plugin name"),
):
    """Remove a plugin from mpm.json, keeping its files."""
    helpers.run(lambda rt: rt.engine.remove(name))
    console.print(f"[green]Removed[/green] {name} from mpm.json")


def uninstall(
    name: str = typer.Argument(..., help="Plugin name"),
):
    """Remove a plugin from mpm.json and delete its artifact."""
    helpers.run(lambda rt: rt.engine.uninstall(name))
    console.print(f"[green]Uninstalled[/green] {name}")


def install(
    name: str = typer.Argument(None, help="Plugin name (default: every plugin in mpm.json)"),
):
    """Install plugins to match mpm.json."""
    if name:
        result = helpers.run(lambda rt: rt.engine.install(name))
        info = result.installed
        console.print(f"[green]Installed[/green] {info.name} {info.current_version}")
        if result.removed:
            console.print(f"[yellow]Removed[/yellow] {result.removed.file_name}")
        return

    bulk = helpers.run(lambda rt: rt.engine.install_all())
    if not bulk.installed and not bulk.failed:
        console.print("[green]Everything is up to date[/green]")
    for info in bulk.installed:
        console.print(f"[green]Installed[/green] {info.name} {info.current_version}")
    for removal in bulk.removed:
        console.print(f"[yellow]Removed[/yellow] {removal.file_name}")
    for failed_name, message in bulk.failed.items():
        console.print(f"[red]Failed[/red] {failed_name}: {message}")
    if bulk.failed:
        raise typer.Exit(1)


def update():
    """Update every unlocked plugin to its latest version."""
    results = helpers.run(lambda rt: rt.engine.update())
    if not results:
        console.print("[green]No updates available[/green]")
        return
    for result in results:
        console.print(
            f"[green]Updated[/green] {result.name} {result.old_version} -> {result.new_version}"
        )


def lock(
    name: str = typer.Argument(..., help="Plugin name"),
):
    """Exclude a plugin from updates."""
    helpers.run(lambda rt: rt.engine.lock(name))
    console.print(f"[green]Locked[/green] {name}")


def unlock(
    name: str = typer.Argument(..., help="Plugin name"),
):
    """Allow updates for a locked plugin."""
    helpers.run(lambda rt: rt.engine.unlock(name))
    console.print(f"[green]Unlocked[/green] {name}")


def prune():
    """Delete installed plugins that mpm.json does not mention."""
    removed = helpers.run(lambda rt: rt.engine.remove_unmanaged())
    if not removed:
        console.print("[green]Nothing to prune[/green]")
        return
    for name in removed:
        console.print(f"[yellow]Deleted[/yellow] {name}")


def adopt(
    soft: bool = typer.Option(False, "--soft", help="Also adopt declared dependencies"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be adopted"),
):
    """Bring hand-installed plugins under management."""
    result = helpers.run(lambda rt: rt.adoption.adopt(soft, dry_run))

    if isinstance(result, AdoptPlan):
        console.print(f"[bold]Adoptable ({len(result.matched)}):[/bold]")
        for name in result.matched:
            console.print(f"  • {name}")
        if result.skipped:
            console.print(f"[dim]No repository ({len(result.skipped)}):[/dim]")
            for name in result.skipped:
                console.print(f"  • {name}")
        return

    for added in result.adopted_plugins:
        info = added.install_result.installed
        suffix = " [dim](dependency)[/dim]" if added.is_dependency else ""
        console.print(f"[green]Adopted[/green] {info.name} {info.current_version}{suffix}")
    for name in result.skipped_plugins:
        console.print(f"[dim]Skipped[/dim] {name}: no repository")
    for name in result.not_found_dependencies:
        console.print(f"[yellow]Dependency not found[/yellow] {name}")
    for name, message in result.failed_plugins.items():
        console.print(f"[red]Failed[/red] {name}: {message}")
    console.print(f"\n{result.total_adopted} plugin(s) adopted")
    if not result.is_success:
        raise typer.Exit(1)
