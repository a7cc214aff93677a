"""Reconciliation engine: converges installed plugins with the manifest.

Public operations return :class:`Outcome` values. Internally the engine
raises :class:`MpmError` subclasses; the ``_outcome`` decorator is the only
place they are turned into failures.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mpm.errors import (
    AlreadyManagedError,
    MetadataNotFoundError,
    MpmError,
    NotFoundError,
    RepositoryNotFoundError,
)
from mpm.outcome import Outcome

from .artifacts import ArtifactInspector
from .cache import ManagedPluginCache
from .installer import InstallExecutor
from .locks import KeyedLocks
from .manifest import ManifestStore
from .metadata import MetadataStore
from .models import (
    LATEST,
    UNMANAGED,
    BulkInstallResult,
    InstallResult,
    ManagedPlugin,
    Manifest,
    OutdatedInfo,
    PluginAddResult,
    PluginInstallInfo,
    RegistryBinding,
    RepositoryConfig,
    UpdateResult,
    VersionData,
)
from .resolver import VersionResolver
from .sources import RepositorySourceIndex

logger = logging.getLogger(__name__)


def _outcome(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Outcome[Any]]]:
    """Wrap an engine operation so MpmError becomes ``Outcome.fail``."""

    @functools.wraps(func)
    async def wrapper(self: ReconciliationEngine, *args, **kwargs) -> Outcome[Any]:
        try:
            return Outcome.ok(await func(self, *args, **kwargs))
        except MpmError as e:
            logger.warning(f"{func.__name__} failed: {e.message}")
            return Outcome.fail(e)

    return wrapper


@dataclass
class _Decision:
    """Needs-install decision for one plugin."""

    needs_install: bool
    latest: VersionData | None = None


class ReconciliationEngine:
    """Decides what must be installed and drives the install executor.

    A plugin needs installation when it has no metadata record, when its
    recorded artifact is missing from the plugin directory, or when the
    record's ``current.raw`` differs from the manifest's requested version
    (``"latest"`` is resolved against the registry first). A pinned version
    equal to ``current.raw`` is decided without any registry call.

    Every operation on a plugin name holds that name's lock for the whole
    load-modify-save sequence. The manifest has its own lock, always taken
    after a name lock.
    """

    def __init__(
        self,
        manifest_store: ManifestStore,
        source_index: RepositorySourceIndex,
        resolver: VersionResolver,
        metadata_store: MetadataStore,
        executor: InstallExecutor,
        inspector: ArtifactInspector,
        cache: ManagedPluginCache[list[ManagedPlugin]] | None = None,
        max_concurrency: int = 1,
    ):
        self.manifest_store = manifest_store
        self.source_index = source_index
        self.resolver = resolver
        self.metadata_store = metadata_store
        self.executor = executor
        self.inspector = inspector
        self.cache = cache or ManagedPluginCache()
        self.max_concurrency = max(1, max_concurrency)
        self._locks = KeyedLocks()
        self._manifest_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Planning and installation
    # ------------------------------------------------------------------

    @_outcome
    async def plan(self) -> Outcome[list[str]]:
        """Names in the manifest that need installation right now."""
        manifest = self.manifest_store.load()
        decisions, failures = await self._plan(manifest)
        for name, message in failures.items():
            logger.warning(f"Could not determine state of {name}: {message}")
        return [name for name, decision in decisions.items() if decision.needs_install]

    @_outcome
    async def install_all(self) -> Outcome[BulkInstallResult]:
        """Install every plugin whose state diverges from the manifest.

        Per-plugin failures are collected in ``failed``; the batch always runs
        to completion.
        """
        manifest = self.manifest_store.load()
        decisions, failures = await self._plan(manifest)
        pending = [name for name, decision in decisions.items() if decision.needs_install]
        logger.info(f"{len(pending)} of {len(manifest.plugins)} plugins need installation")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(name: str) -> InstallResult | None:
            async with semaphore:
                try:
                    return await self._install_one(
                        name, manifest.plugins[name], latest=decisions[name].latest
                    )
                except MpmError as e:
                    logger.error(
                        f"Failed to install {name}: {e.message}",
                        extra={"plugin": name, "action": "install"},
                    )
                    failures[name] = e.message
                except Exception as e:
                    logger.exception(f"Unexpected error installing {name}")
                    failures[name] = str(e)
                return None

        results = await asyncio.gather(*(run(name) for name in pending))

        bulk = BulkInstallResult(failed=failures)
        for result in results:
            if result is None:
                continue
            bulk.installed.append(result.installed)
            if result.removed:
                bulk.removed.append(result.removed)
        return bulk

    @_outcome
    async def install(self, name: str) -> Outcome[InstallResult]:
        """Install one plugin at the version the manifest requests.

        An up-to-date plugin is reported as installed without downloading.
        """
        manifest = self.manifest_store.load()
        requested = self._requested_version(manifest, name)
        decision = await self._decide(name, requested)
        if not decision.needs_install:
            record = self.metadata_store.load(name).unwrap()
            return InstallResult(
                installed=PluginInstallInfo(
                    name=name,
                    current_version=record.current.raw,
                    latest_version=record.latest.raw,
                    file_name=record.mpm_info.download.file_name,
                )
            )
        return await self._install_one(name, requested, latest=decision.latest)

    async def _plan(self, manifest: Manifest) -> tuple[dict[str, _Decision], dict[str, str]]:
        decisions: dict[str, _Decision] = {}
        failures: dict[str, str] = {}
        for name, requested in manifest.plugins.items():
            if requested == UNMANAGED:
                continue
            try:
                decisions[name] = await self._decide(name, requested)
            except MpmError as e:
                failures[name] = e.message
        return decisions, failures

    async def _decide(self, name: str, requested: str) -> _Decision:
        loaded = self.metadata_store.load(name)
        if not loaded:
            if isinstance(loaded.error, MetadataNotFoundError):
                return _Decision(needs_install=True)
            raise loaded.error
        record = loaded.value

        if not self._artifact_present(record):
            return _Decision(needs_install=True)

        if requested != LATEST:
            return _Decision(needs_install=record.current.raw != requested)

        binding = self.resolver.binding_for(record.mpm_info.repository).unwrap()
        latest = (await self.resolver.latest(binding)).unwrap()
        return _Decision(needs_install=record.current.raw != latest.version, latest=latest)

    def _artifact_present(self, record: ManagedPlugin) -> bool:
        file_name = record.mpm_info.download.file_name
        return bool(file_name) and (self.executor.plugins_dir / file_name).is_file()

    async def _install_one(
        self,
        name: str,
        requested: str,
        latest: VersionData | None = None,
        action: str = "install",
    ) -> InstallResult:
        async with self._locks.hold(name):
            return await self._install_locked(name, requested, latest, action)

    async def _install_locked(
        self,
        name: str,
        requested: str,
        latest: VersionData | None,
        action: str,
    ) -> InstallResult:
        """Install body; the caller holds the name lock."""
        loaded = self.metadata_store.load(name)
        if loaded:
            record = loaded.value
            binding = self.resolver.binding_for(record.mpm_info.repository).unwrap()
        elif isinstance(loaded.error, MetadataNotFoundError):
            record = None
            config = self._primary_config(name)
            binding = self.resolver.binding_for(config).unwrap()
        else:
            raise loaded.error

        if requested == LATEST:
            latest = latest or (await self.resolver.latest(binding)).unwrap()
            version_data = latest
        else:
            version_data = (await self.resolver.by_name(binding, requested)).unwrap()

        if record is None:
            previous_version = None
            record = self.metadata_store.create(name, config, version_data, action, latest)
        else:
            previous_version = record.current.normalized
            record = self.metadata_store.update(name, version_data, latest, action).unwrap()

        return (
            await self.executor.execute(name, record, binding, version_data, previous_version)
        ).unwrap()

    # ------------------------------------------------------------------
    # Manifest editing
    # ------------------------------------------------------------------

    @_outcome
    async def add(self, name: str, version: str = LATEST) -> Outcome[ManagedPlugin]:
        """Put a plugin under management without downloading it.

        Resolves the version, saves a fresh record (action ``add``) and binds
        the name in the manifest. Fails if the name is already bound to
        anything other than ``"unmanaged"``.
        """
        self._ensure_addable(self.manifest_store.load(), name)
        async with self._locks.hold(name):
            config = self._primary_config(name)
            binding = self.resolver.binding_for(config).unwrap()
            version_data, latest = await self._resolve(binding, version)
            record = self.metadata_store.create(name, config, version_data, "add", latest)
            self.metadata_store.save(name, record).unwrap()
            await self._set_manifest_entry(name, version)
        logger.info(f"Added {name} ({version_data.version})")
        return record

    async def add_and_install(
        self,
        name: str,
        version: str = LATEST,
        action: str = "adopt",
        replaces: Path | None = None,
        replaces_version: str | None = None,
        is_dependency: bool = False,
    ) -> PluginAddResult:
        """Add a plugin and install it in one step.

        ``replaces`` names an existing artifact (for example a hand-installed
        jar) that the new artifact supersedes. Raises :class:`MpmError`.
        """
        self._ensure_addable(self.manifest_store.load(), name)
        async with self._locks.hold(name):
            config = self._primary_config(name)
            binding = self.resolver.binding_for(config).unwrap()
            version_data, latest = await self._resolve(binding, version)
            record = self.metadata_store.create(name, config, version_data, action, latest)
            if replaces is not None:
                record.mpm_info.download.file_name = replaces.name
            result = (
                await self.executor.execute(name, record, binding, version_data, replaces_version)
            ).unwrap()
            await self._set_manifest_entry(name, version)
        return PluginAddResult(install_result=result, is_dependency=is_dependency)

    @_outcome
    async def remove(self, name: str) -> Outcome[None]:
        """Drop a plugin from the manifest, leaving files and metadata alone."""
        async with self._manifest_lock:
            manifest = self.manifest_store.load()
            if name not in manifest.plugins:
                raise NotFoundError(f"{name} is not in the manifest", name=name)
            del manifest.plugins[name]
            self.manifest_store.save(manifest)
        logger.info(f"Removed {name} from the manifest")

    @_outcome
    async def uninstall(self, name: str) -> Outcome[None]:
        """Drop a plugin from the manifest and delete its artifact and record."""
        async with self._locks.hold(name):
            async with self._manifest_lock:
                manifest = self.manifest_store.load()
                if name not in manifest.plugins:
                    raise NotFoundError(f"{name} is not in the manifest", name=name)
                loaded = self.metadata_store.load(name)
                del manifest.plugins[name]
                self.manifest_store.save(manifest)

            if loaded:
                file_name = loaded.value.mpm_info.download.file_name
                if file_name:
                    self.executor.delete_artifact(file_name)
                self.metadata_store.delete(name)
            else:
                logger.warning(f"No metadata for {name}; only the manifest entry was removed")
        logger.info(f"Uninstalled {name}")

    @_outcome
    async def remove_unmanaged(self) -> Outcome[list[str]]:
        """Delete installed artifacts whose plugin is not in the manifest.

        An artifact recorded for a manifest entry is kept even when its
        declared name differs from the manifest key. Records of removed
        plugins do not protect their files.
        """
        manifest = self.manifest_store.load()
        recorded = set()
        for name in manifest.plugins:
            loaded = self.metadata_store.load(name)
            if loaded and loaded.value.mpm_info.download.file_name:
                recorded.add(loaded.value.mpm_info.download.file_name)
        removed = []
        for name, path in self.inspector.installed_plugins().items():
            if name in manifest.plugins or path.name in recorded:
                continue
            if self.executor.delete_artifact(path.name):
                removed.append(name)
        return removed

    @_outcome
    async def init(self, project_name: str) -> Outcome[Manifest]:
        return self.manifest_store.create(project_name)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    @_outcome
    async def update(self) -> Outcome[list[UpdateResult]]:
        """Move every unlocked managed plugin to its registry's latest version.

        Pinned manifest entries are re-pinned to the new version. Plugins that
        fail to update are logged and left as they were.
        """
        manifest = self.manifest_store.load()
        results = []
        for name, requested in manifest.plugins.items():
            if requested == UNMANAGED:
                continue
            try:
                result = await self._update_one(name, requested)
            except MpmError as e:
                logger.error(
                    f"Failed to update {name}: {e.message}",
                    extra={"plugin": name, "action": "update"},
                )
                continue
            if result:
                results.append(result)
        return results

    async def _update_one(self, name: str, requested: str) -> UpdateResult | None:
        async with self._locks.hold(name):
            loaded = self.metadata_store.load(name)
            if not loaded:
                if isinstance(loaded.error, MetadataNotFoundError):
                    logger.debug(f"{name} has no metadata yet; install it first")
                    return None
                raise loaded.error
            record = loaded.value
            if record.locked:
                logger.info(
                    f"Skipping locked plugin {name}", extra={"plugin": name, "action": "update"}
                )
                return None

            binding = self.resolver.binding_for(record.mpm_info.repository).unwrap()
            latest = (await self.resolver.latest(binding)).unwrap()
            if latest.version == record.current.raw:
                return None

            old_version = record.current.normalized
            result = await self._install_locked(name, LATEST, latest, "update")
            if requested != LATEST:
                await self._set_manifest_entry(name, latest.version)
        return UpdateResult(
            name=name,
            old_version=old_version,
            new_version=VersionResolver.normalize(
                result.installed.current_version, record.mpm_info.version_pattern
            ),
        )

    @_outcome
    async def lock(self, name: str) -> Outcome[None]:
        await self._set_lock(name, True)

    @_outcome
    async def unlock(self, name: str) -> Outcome[None]:
        await self._set_lock(name, False)

    async def _set_lock(self, name: str, locked: bool) -> None:
        self.manifest_store.load()
        async with self._locks.hold(name):
            record = self.metadata_store.load(name).unwrap()
            record.mpm_info.settings.lock = locked
            self.metadata_store.save(name, record).unwrap()
        logger.info(f"{'Locked' if locked else 'Unlocked'} {name}")

    @_outcome
    async def check_outdated(self, name: str) -> Outcome[OutdatedInfo]:
        self.manifest_store.load()
        return await self._check_outdated(name)

    @_outcome
    async def check_all_outdated(self) -> Outcome[list[OutdatedInfo]]:
        """Outdated status of every managed plugin with a record.

        Plugins whose check fails are logged and omitted.
        """
        manifest = self.manifest_store.load()
        results = []
        for name in manifest.plugins:
            if not manifest.is_managed(name) or not self.metadata_store.exists(name):
                continue
            try:
                results.append(await self._check_outdated(name))
            except MpmError as e:
                logger.warning(f"Could not check {name}: {e.message}")
        return results

    async def _check_outdated(self, name: str) -> OutdatedInfo:
        async with self._locks.hold(name):
            record = self.metadata_store.load(name).unwrap()
            binding = self.resolver.binding_for(record.mpm_info.repository).unwrap()
            latest = (await self.resolver.latest(binding)).unwrap()

            pattern = record.mpm_info.version_pattern
            record.latest.raw = latest.version
            record.latest.normalized = VersionResolver.normalize(latest.version, pattern)
            record.mpm_info.version.last_checked = self.metadata_store.timestamp()
            self.metadata_store.save(name, record).unwrap()

        return OutdatedInfo(
            name=name,
            current_version=record.current.normalized,
            latest_version=record.latest.normalized,
            needs_update=latest.version != record.current.raw,
            locked=record.locked,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @_outcome
    async def get_versions(self, name: str) -> Outcome[list[str]]:
        """Versions the registry publishes for a plugin, newest first."""
        self.manifest_store.load()
        descriptor = self.source_index.lookup(name)
        if descriptor is not None and descriptor.primary is not None:
            binding = self.resolver.binding_for(descriptor.primary).unwrap()
        else:
            loaded = self.metadata_store.load(name)
            if not loaded:
                raise RepositoryNotFoundError(f"No repository descriptor for {name}", name=name)
            binding = self.resolver.binding_for(loaded.value.mpm_info.repository).unwrap()
        return (await self.resolver.list_versions(binding)).unwrap()

    @_outcome
    async def list_managed(self) -> Outcome[list[ManagedPlugin]]:
        """Managed plugin records, served from the TTL cache."""
        self.manifest_store.load()
        return self.cache.get_or_compute(self.metadata_store.load_all)

    @_outcome
    async def unmanaged_plugins(self) -> Outcome[list[str]]:
        """Manifest entries marked unmanaged plus installed plugins not in the manifest."""
        return self.unmanaged_names(self.manifest_store.load())

    def unmanaged_names(self, manifest: Manifest) -> list[str]:
        names = manifest.unmanaged_names()
        for name in self.inspector.installed_plugins():
            if name not in manifest.plugins and name not in names:
                names.append(name)
        return names

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _primary_config(self, name: str) -> RepositoryConfig:
        descriptor = self.source_index.lookup(name)
        if descriptor is None:
            raise RepositoryNotFoundError(f"No repository descriptor for {name}", name=name)
        if descriptor.primary is None:
            raise RepositoryNotFoundError(f"Repository descriptor for {name} is empty", name=name)
        return descriptor.primary

    def _requested_version(self, manifest: Manifest, name: str) -> str:
        if name not in manifest.plugins:
            raise NotFoundError(f"{name} is not in the manifest", name=name)
        requested = manifest.plugins[name]
        if requested == UNMANAGED:
            raise NotFoundError(f"{name} is marked unmanaged", name=name)
        return requested

    @staticmethod
    def _ensure_addable(manifest: Manifest, name: str) -> None:
        existing = manifest.plugins.get(name)
        if existing is not None and existing != UNMANAGED:
            raise AlreadyManagedError(
                f"{name} is already managed ({existing})", name=name, version=existing
            )

    async def _resolve(
        self, binding: RegistryBinding, version: str
    ) -> tuple[VersionData, VersionData | None]:
        """Resolve a requested version; returns (version, latest if fetched)."""
        if version == LATEST:
            latest = (await self.resolver.latest(binding)).unwrap()
            return latest, latest
        return (await self.resolver.by_name(binding, version)).unwrap(), None

    async def _set_manifest_entry(self, name: str, version: str) -> None:
        async with self._manifest_lock:
            manifest = self.manifest_store.load()
            manifest.plugins[name] = version
            self.manifest_store.save(manifest)
