"""Configuration module for mpm."""

from .logging import JSONFormatter, TextFormatter, configure_logging
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "JSONFormatter",
    "TextFormatter",
]
