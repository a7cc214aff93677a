"""Manifest store over mpm.json."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from mpm.errors import AlreadyExistsError, ConfigMissingError, ManifestError

from .metadata import atomic_write_text
from .models import Manifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "mpm.json"


class ManifestStore:
    """Loads and stores the desired manifest as a whole document.

    Raises :class:`ConfigMissingError` when the file is absent and
    :class:`ManifestError` when it cannot be parsed or written.
    """

    def __init__(self, root_dir: Path | str, file_name: str = MANIFEST_FILE):
        self.root_dir = Path(root_dir)
        self.path = self.root_dir / file_name

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Manifest:
        if not self.exists():
            raise ConfigMissingError(path=str(self.path))
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Manifest.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ManifestError(f"Failed to read {self.path}: {e}", {"path": str(self.path)}) from e

    def save(self, manifest: Manifest) -> None:
        content = json.dumps(manifest.model_dump(mode="json"), indent=2, ensure_ascii=False)
        try:
            atomic_write_text(self.path, content + "\n")
        except OSError as e:
            raise ManifestError(f"Failed to write {self.path}: {e}", {"path": str(self.path)}) from e

    def create(self, project_name: str) -> Manifest:
        """Write an empty manifest for a new project."""
        if self.exists():
            raise AlreadyExistsError(f"{self.path} already exists", {"path": str(self.path)})
        manifest = Manifest(name=project_name)
        self.save(manifest)
        logger.info(f"Created manifest {self.path}")
        return manifest
