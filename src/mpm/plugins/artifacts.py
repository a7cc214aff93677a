"""Inspection of installed plugin artifacts."""

from __future__ import annotations

import logging
import re
import zipfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import ArtifactDescriptor

logger = logging.getLogger(__name__)

DESCRIPTOR_FILES = ("plugin.yml", "paper-plugin.yml")

# "Vault-1.7.3.jar" -> "Vault", "LuckPerms-Bukkit-5.4.102.jar" -> "LuckPerms-Bukkit"
_VERSION_SUFFIX_RE = re.compile(r"^(?P<name>.+?)[-_ ]v?\d[\w.+-]*$")


def name_from_file(path: Path) -> str:
    """Best-effort plugin name from an artifact's file name."""
    match = _VERSION_SUFFIX_RE.match(path.stem)
    return match.group("name") if match else path.stem


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def _paper_dependencies(data: dict) -> tuple[list[str], list[str]]:
    """Split paper-plugin.yml dependencies into required and optional names."""
    depend: list[str] = []
    softdepend: list[str] = []
    dependencies = data.get("dependencies") or {}
    server = dependencies.get("server", dependencies) if isinstance(dependencies, dict) else {}
    if not isinstance(server, dict):
        return depend, softdepend
    for name, options in server.items():
        if not isinstance(options, dict):
            continue
        (depend if options.get("required", True) else softdepend).append(str(name))
    return depend, softdepend


class ArtifactInspector:
    """Reads the plugin directory and the descriptors embedded in artifacts."""

    def __init__(self, plugins_dir: Path | str):
        self.plugins_dir = Path(plugins_dir)

    def artifact_files(self) -> list[Path]:
        if not self.plugins_dir.is_dir():
            return []
        return sorted(p for p in self.plugins_dir.glob("*.jar") if p.is_file())

    def installed_plugins(self) -> dict[str, Path]:
        """Map declared plugin name to artifact path for every installed jar."""
        plugins: dict[str, Path] = {}
        for path in self.artifact_files():
            descriptor = self.read_descriptor(path)
            if descriptor.name in plugins:
                logger.warning(
                    f"Plugin {descriptor.name} is provided by both "
                    f"{plugins[descriptor.name].name} and {path.name}"
                )
                continue
            plugins[descriptor.name] = path
        return plugins

    def read_descriptor(self, path: Path | str) -> ArtifactDescriptor:
        """Read plugin.yml (or paper-plugin.yml) from an artifact.

        Falls back to a descriptor named after the file when the archive or
        its descriptor cannot be read.
        """
        path = Path(path)
        try:
            with zipfile.ZipFile(path) as archive:
                names = set(archive.namelist())
                for descriptor_file in DESCRIPTOR_FILES:
                    if descriptor_file in names:
                        data = yaml.safe_load(archive.read(descriptor_file))
                        return self._parse(descriptor_file, data, path)
        except (OSError, zipfile.BadZipFile, yaml.YAMLError, ValidationError) as e:
            logger.warning(f"Could not read plugin descriptor from {path.name}: {e}")
        return ArtifactDescriptor(name=name_from_file(path))

    def _parse(self, descriptor_file: str, data: Any, path: Path) -> ArtifactDescriptor:
        if not isinstance(data, dict) or not data.get("name"):
            logger.warning(f"{descriptor_file} in {path.name} has no plugin name")
            return ArtifactDescriptor(name=name_from_file(path))

        depend = _as_list(data.get("depend"))
        softdepend = _as_list(data.get("softdepend"))
        if descriptor_file == "paper-plugin.yml":
            required, optional = _paper_dependencies(data)
            depend += [n for n in required if n not in depend]
            softdepend += [n for n in optional if n not in softdepend]

        version = data.get("version")
        return ArtifactDescriptor(
            name=str(data["name"]),
            version=str(version) if version is not None else None,
            depend=depend,
            softdepend=softdepend,
        )
