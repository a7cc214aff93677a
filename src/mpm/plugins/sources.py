"""Repository source index: plugin name -> registry bindings."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .models import RepositoryFile

logger = logging.getLogger(__name__)


class RepositorySourceIndex:
    """Read-only index over repository descriptor files.

    Each directory holds one ``<plugin name>.json`` file per plugin. When the
    same name appears in several directories, the first directory wins.
    Lookups are case-insensitive and never raise: a descriptor that cannot be
    parsed is logged and treated as missing.
    """

    def __init__(self, directories: list[Path | str]):
        self.directories = [Path(d) for d in directories]
        self._files: dict[str, Path] | None = None

    def _scan(self) -> dict[str, Path]:
        if self._files is None:
            files: dict[str, Path] = {}
            for directory in self.directories:
                if not directory.is_dir():
                    logger.debug(f"Repository directory {directory} does not exist")
                    continue
                for path in sorted(directory.glob("*.json")):
                    files.setdefault(path.stem.lower(), path)
            self._files = files
            logger.debug(f"Indexed {len(files)} repository descriptors")
        return self._files

    def refresh(self) -> None:
        """Forget the scanned file list so the next lookup rescans."""
        self._files = None

    def available_plugins(self) -> list[str]:
        """Names of every plugin with a descriptor file."""
        return [path.stem for path in self._scan().values()]

    def contains(self, name: str) -> bool:
        return name.lower() in self._scan()

    def lookup(self, name: str) -> RepositoryFile | None:
        """Load the descriptor for a plugin name.

        Args:
            name: Plugin name (matched case-insensitively).

        Returns:
            The descriptor, or None if absent or unreadable.
        """
        path = self._scan().get(name.lower())
        if path is None:
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                data.setdefault("id", path.stem)
            return RepositoryFile.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to read repository descriptor {path}: {e}")
            return None
