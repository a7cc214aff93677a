"""Shared helpers for CLI modules: settings, runtime factory, outcome handling."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console

from mpm.config.settings import Settings, get_settings
from mpm.outcome import Outcome
from mpm.runtime import Runtime, build_runtime

console = Console()

T = TypeVar("T")


def load_settings() -> Settings:
    return get_settings()


def get_runtime() -> Runtime:
    """Build the runtime for one command invocation."""
    return build_runtime(load_settings())


def run(operation: Callable[[Runtime], Awaitable[Outcome[T]]]) -> T:
    """Run an engine operation and return its value.

    A failed outcome is printed in red and exits with status 1.
    """
    runtime = get_runtime()

    async def _run() -> Outcome[T]:
        try:
            return await operation(runtime)
        finally:
            await runtime.aclose()

    outcome = asyncio.run(_run())
    if not outcome:
        console.print(f"[red]Error:[/red] {outcome.message}")
        raise typer.Exit(1)
    return outcome.value
