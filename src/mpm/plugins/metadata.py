"""Metadata store: one YAML record per managed plugin."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import yaml
from pydantic import ValidationError

from mpm.errors import CorruptMetadataError, MetadataNotFoundError, MetadataWriteError
from mpm.outcome import Outcome

from .models import (
    HistoryEntry,
    ManagedPlugin,
    MetadataDownloadInfo,
    MpmInfo,
    PluginInfo,
    PluginSettings,
    RepositoryConfig,
    RepositoryInfo,
    RepositoryType,
    VersionData,
    VersionDetail,
    VersionManagement,
)
from .resolver import VersionResolver

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` in one step.

    The content goes to a temporary file in the same directory which is then
    renamed over the target, so readers see either the old or the new file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class MetadataStore:
    """Persists :class:`ManagedPlugin` records as ``<name>.yaml`` files.

    ``create`` and ``update`` only build records; nothing reaches the disk
    until ``save`` is called.
    """

    def __init__(self, metadata_dir: Path | str, clock: Callable[[], datetime] = _utc_now):
        self.metadata_dir = Path(metadata_dir)
        self._clock = clock

    def path_for(self, name: str) -> Path:
        return self.metadata_dir / f"{name}.yaml"

    def timestamp(self) -> str:
        return self._clock().isoformat()

    def create(
        self,
        name: str,
        config: RepositoryConfig,
        version_data: VersionData,
        action: str,
        latest_version_data: VersionData | None = None,
    ) -> ManagedPlugin:
        """Build a fresh record for a plugin that has none yet.

        Args:
            name: Plugin name.
            config: Authoritative repository config from the descriptor.
            version_data: Version being installed.
            action: History tag for the first entry.
            latest_version_data: Newest known version, defaults to ``version_data``.

        Returns:
            An unsaved record with exactly one history entry.
        """
        latest = latest_version_data or version_data
        pattern = config.version_pattern
        current = VersionDetail(
            raw=version_data.version,
            normalized=VersionResolver.normalize(version_data.version, pattern),
        )
        timestamp = self.timestamp()
        return ManagedPlugin(
            plugin_info=PluginInfo(name=name, version=current.normalized),
            mpm_info=MpmInfo(
                repository=RepositoryInfo(
                    type=RepositoryType(config.type.lower()), id=config.repository_id
                ),
                version=VersionManagement(
                    current=current,
                    latest=VersionDetail(
                        raw=latest.version,
                        normalized=VersionResolver.normalize(latest.version, pattern),
                    ),
                    last_checked=timestamp,
                ),
                download=MetadataDownloadInfo(download_id=version_data.download_id),
                settings=PluginSettings(),
                history=[
                    HistoryEntry(version=version_data.version, installed_at=timestamp, action=action)
                ],
                version_pattern=pattern,
                file_name_pattern=config.file_name_pattern,
                file_name_template=config.file_name_template,
            ),
        )

    def update(
        self,
        name: str,
        version_data: VersionData,
        latest_version_data: VersionData | None,
        action: str,
    ) -> Outcome[ManagedPlugin]:
        """Load a record and move it to a new current version.

        ``latest_version_data`` of None keeps the stored latest version. The
        returned record is not persisted.
        """
        loaded = self.load(name)
        if not loaded:
            return loaded
        record = loaded.value
        pattern = record.mpm_info.version_pattern
        timestamp = self.timestamp()

        current = VersionDetail(
            raw=version_data.version,
            normalized=VersionResolver.normalize(version_data.version, pattern),
        )
        info = record.mpm_info
        info.version.current = current
        if latest_version_data is not None:
            info.version.latest = VersionDetail(
                raw=latest_version_data.version,
                normalized=VersionResolver.normalize(latest_version_data.version, pattern),
            )
        info.version.last_checked = timestamp
        info.download.download_id = version_data.download_id
        info.history.append(
            HistoryEntry(version=version_data.version, installed_at=timestamp, action=action)
        )
        record.plugin_info.version = current.normalized
        return Outcome.ok(record)

    def load(self, name: str) -> Outcome[ManagedPlugin]:
        path = self.path_for(name)
        if not path.is_file():
            return Outcome.fail(
                MetadataNotFoundError(f"No metadata found for plugin '{name}'", name=name)
            )
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            return Outcome.ok(ManagedPlugin.model_validate(data))
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error(f"Failed to read metadata for {name}: {e}")
            return Outcome.fail(
                CorruptMetadataError(f"Metadata for plugin '{name}' is unreadable", name=name, cause=e)
            )

    def save(self, name: str, record: ManagedPlugin) -> Outcome[None]:
        """Write a record, replacing any previous file for the name."""
        content = yaml.safe_dump(
            record.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        try:
            atomic_write_text(self.path_for(name), content)
        except OSError as e:
            logger.error(f"Failed to write metadata for {name}: {e}")
            return Outcome.fail(
                MetadataWriteError(f"Could not write metadata for '{name}': {e}", {"name": name})
            )
        logger.debug(f"Saved metadata for {name}")
        return Outcome.ok()

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def delete(self, name: str) -> bool:
        """Remove a record; returns False if there was none."""
        path = self.path_for(name)
        if not path.is_file():
            return False
        path.unlink()
        logger.info(f"Deleted metadata for {name}")
        return True

    def list_names(self) -> list[str]:
        if not self.metadata_dir.is_dir():
            return []
        return sorted(path.stem for path in self.metadata_dir.glob("*.yaml"))

    def load_all(self) -> list[ManagedPlugin]:
        """Load every readable record; unreadable ones are logged and skipped."""
        records = []
        for name in self.list_names():
            outcome = self.load(name)
            if outcome:
                records.append(outcome.value)
        return records
