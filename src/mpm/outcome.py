"""Explicit success/failure results for engine operations.

Expected failures (missing descriptors, registry outages, download errors)
travel as values instead of exceptions so batch operations can collect them
per item.

Example:
    outcome = await engine.install("Vault")
    if not outcome:
        print(outcome.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from mpm.errors import MpmError

T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Result of a fallible operation."""

    success: bool
    value: T | None = None
    error: MpmError | None = None

    def __bool__(self) -> bool:
        """Allow using the outcome in boolean context."""
        return self.success

    @classmethod
    def ok(cls, value: T = None) -> Outcome[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: MpmError) -> Outcome[T]:
        return cls(success=False, error=error)

    @property
    def message(self) -> str:
        """Human-readable failure message, empty on success."""
        return self.error.message if self.error else ""

    @property
    def code(self) -> str | None:
        return self.error.code if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if not self.success:
            raise self.error
        return self.value
