"""mpm command line interface."""

from .main import app

__all__ = ["app"]
