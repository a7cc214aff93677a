"""Install executor: places downloaded artifacts and records them."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import shutil
import time
from pathlib import Path

from mpm.errors import DownloadFailedError, FileMoveFailedError
from mpm.outcome import Outcome

from .downloader import Downloader
from .metadata import MetadataStore
from .models import (
    InstallResult,
    ManagedPlugin,
    PluginInstallInfo,
    PluginRemovalInfo,
    RegistryBinding,
    VersionData,
)
from .resolver import VersionResolver

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME_TEMPLATE = "<name>-<version>.jar"

_NAME_PLACEHOLDERS = ("<pluginInfo.name>", "<name>")
_VERSION_PLACEHOLDERS = ("<mpmInfo.version.current.normalized>", "<version>")


def render_file_name(template: str | None, name: str, version: str) -> str:
    """Substitute name and version placeholders in a file name template.

    Example:
        >>> render_file_name(None, "Vault", "1.7.3")
        'Vault-1.7.3.jar'
    """
    result = template or DEFAULT_FILE_NAME_TEMPLATE
    for placeholder in _NAME_PLACEHOLDERS:
        result = result.replace(placeholder, name)
    for placeholder in _VERSION_PLACEHOLDERS:
        result = result.replace(placeholder, version)
    # Never write outside the plugin directory
    return Path(result.replace("\\", "/")).name


def compute_checksum(path: Path) -> str:
    """Compute SHA256 checksum of file."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


class InstallExecutor:
    """Downloads a version, writes it to the plugin directory and saves the record.

    The new artifact is written before the previous one is deleted, so an
    interrupted install never leaves the plugin without a file.
    """

    def __init__(
        self,
        downloader: Downloader,
        plugins_dir: Path | str,
        metadata_store: MetadataStore,
    ):
        self.downloader = downloader
        self.plugins_dir = Path(plugins_dir)
        self.metadata_store = metadata_store

    async def execute(
        self,
        name: str,
        record: ManagedPlugin,
        binding: RegistryBinding,
        version_data: VersionData,
        previous_version: str | None = None,
    ) -> Outcome[InstallResult]:
        """Install ``version_data`` for a plugin.

        Args:
            name: Plugin name.
            record: Loaded or freshly created record already pointing at
                ``version_data``. Its ``download.file_name`` names the file
                currently on disk, if any.
            binding: Registry binding to download from.
            version_data: Version to download.
            previous_version: Version of the file being replaced, for the
                removal report. Derived from the history when omitted.

        Returns:
            The install result, or a download/file/metadata failure.
        """
        info = record.mpm_info
        start_time = time.perf_counter()
        log_context = {
            "plugin": name,
            "backend": binding.type,
            "version": version_data.version,
            "action": info.history[-1].action if info.history else None,
        }
        try:
            downloaded = await self.downloader.download_by_version(
                binding, version_data, info.file_name_pattern
            )
        except Exception as e:
            logger.error(
                f"Download of {name} {version_data.version} failed: {e}", extra=log_context
            )
            return Outcome.fail(
                DownloadFailedError(f"Failed to download {name} {version_data.version}: {e}")
            )
        if downloaded is None:
            logger.error(
                f"Download of {name} {version_data.version} returned no file", extra=log_context
            )
            return Outcome.fail(
                DownloadFailedError(f"Failed to download {name} {version_data.version}")
            )

        file_name = render_file_name(info.file_name_template, name, record.current.normalized)
        target = self.plugins_dir / file_name
        try:
            await asyncio.to_thread(self._place, Path(downloaded), target)
        except OSError as e:
            logger.error(
                f"Failed to move {name} artifact into {self.plugins_dir}: {e}", extra=log_context
            )
            return Outcome.fail(FileMoveFailedError(f"Failed to write {target}: {e}"))

        removed = None
        old_file_name = info.download.file_name
        if old_file_name and old_file_name != file_name:
            if self.delete_artifact(old_file_name):
                removed = PluginRemovalInfo(
                    name=name,
                    version=previous_version or self._previous_version(record),
                    file_name=old_file_name,
                )

        info.download.file_name = file_name
        info.download.sha256 = await asyncio.to_thread(compute_checksum, target)
        saved = self.metadata_store.save(name, record)
        if not saved:
            return Outcome.fail(saved.error)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Installed {name} {version_data.version} as {file_name} in {duration_ms:.1f}ms",
            extra={**log_context, "duration_ms": round(duration_ms, 2)},
        )
        return Outcome.ok(
            InstallResult(
                installed=PluginInstallInfo(
                    name=name,
                    current_version=record.current.raw,
                    latest_version=record.latest.raw,
                    file_name=file_name,
                ),
                removed=removed,
            )
        )

    def _place(self, downloaded: Path, target: Path) -> None:
        try:
            self.plugins_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(downloaded, target)
        finally:
            downloaded.unlink(missing_ok=True)

    def delete_artifact(self, file_name: str) -> bool:
        """Delete an artifact from the plugin directory if present."""
        path = self.plugins_dir / file_name
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
            return False
        logger.info(f"Removed artifact {file_name}")
        return True

    @staticmethod
    def _previous_version(record: ManagedPlugin) -> str:
        history = record.mpm_info.history
        if len(history) < 2:
            return record.current.normalized
        return VersionResolver.normalize(history[-2].version, record.mpm_info.version_pattern)
