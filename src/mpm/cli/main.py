"""mpm CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from mpm import __version__
from mpm.config.logging import configure_logging

from . import helpers
from .helpers import console

app = typer.Typer(
    name="mpm",
    help="Declarative plugin manager: keep plugins/ in sync with mpm.json.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]mpm[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log at DEBUG level.")
    ] = False,
):
    """mpm - manage server plugins from a manifest.

    [bold]Quick Start:[/bold]

        mpm init            Create mpm.json
        mpm add Vault       Manage a plugin
        mpm install         Download everything in mpm.json
        mpm adopt --dry-run Show hand-installed plugins mpm can manage
    """
    settings = helpers.load_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        format=settings.log_format,
        sanitize_logs=settings.sanitize_logs,
    )


# =============================================================================
# Register commands
# =============================================================================

from .commands.info import list_plugins, outdated, versions  # noqa: E402
from .commands.manage import (  # noqa: E402
    add,
    adopt,
    init,
    install,
    lock,
    prune,
    remove,
    uninstall,
    unlock,
    update,
)

app.command()(init)
app.command()(add)
app.command()(remove)
app.command()(uninstall)
app.command()(install)
app.command()(update)
app.command()(lock)
app.command()(unlock)
app.command()(prune)
app.command()(adopt)
app.command("list")(list_plugins)
app.command()(outdated)
app.command()(versions)


if __name__ == "__main__":
    app()
