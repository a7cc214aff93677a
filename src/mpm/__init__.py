"""mpm - declarative plugin manager for plugin-based servers."""

__version__ = "0.4.0"

from .config import Settings, get_settings
from .errors import MpmError
from .outcome import Outcome
from .runtime import Runtime, build_runtime

__all__ = [
    "MpmError",
    "Outcome",
    "Runtime",
    "Settings",
    "build_runtime",
    "get_settings",
]
