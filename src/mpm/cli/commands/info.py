"""Read-only commands: list, outdated, versions."""

from __future__ import annotations

import json

import typer
from rich.table import Table

from .. import helpers
from ..helpers import console


def list_plugins(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List managed plugins."""
    records = helpers.run(lambda rt: rt.engine.list_managed())

    if json_output:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return

    if not records:
        console.print("[yellow]No managed plugins[/yellow]")
        return

    table = Table(title="Managed Plugins")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Latest")
    table.add_column("Source")
    table.add_column("Status")

    for record in records:
        status = "[yellow]locked[/yellow]" if record.locked else "[green]managed[/green]"
        repository = record.mpm_info.repository
        table.add_row(
            record.name,
            record.current.normalized,
            record.latest.normalized,
            f"{repository.type.value}:{repository.id}",
            status,
        )

    console.print(table)


def outdated(
    name: str = typer.Argument(None, help="Plugin name (default: all managed plugins)"),
):
    """Show plugins with a newer version available."""
    if name:
        infos = [helpers.run(lambda rt: rt.engine.check_outdated(name))]
    else:
        infos = helpers.run(lambda rt: rt.engine.check_all_outdated())

    stale = [info for info in infos if info.needs_update]
    if not stale:
        console.print("[green]All plugins are up to date[/green]")
        return

    table = Table(title="Outdated Plugins")
    table.add_column("Name", style="cyan")
    table.add_column("Current")
    table.add_column("Latest", style="green")
    table.add_column("Locked")
    for info in stale:
        table.add_row(
            info.name, info.current_version, info.latest_version, "yes" if info.locked else ""
        )
    console.print(table)


def versions(
    name: str = typer.Argument(..., help="Plugin name"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of versions to show"),
):
    """List versions published for a plugin."""
    available = helpers.run(lambda rt: rt.engine.get_versions(name))
    if not available:
        console.print(f"[yellow]No versions published for {name}[/yellow]")
        return
    console.print(f"[bold]{name}[/bold] ({len(available)} versions)")
    for version in available[:limit]:
        console.print(f"  • {version}")
    if len(available) > limit:
        console.print(f"[dim]... and {len(available) - limit} more[/dim]")
