"""Adoption of hand-installed plugins into the manifest."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path

from mpm.errors import MpmError
from mpm.outcome import Outcome

from .artifacts import ArtifactInspector
from .models import LATEST, AdoptPlan, AdoptResult, ArtifactDescriptor, PluginAddResult
from .reconciler import ReconciliationEngine
from .sources import RepositorySourceIndex

logger = logging.getLogger(__name__)


class AdoptionResolver:
    """Promotes unmanaged plugins to managed ones.

    Unmanaged names are manifest entries marked ``"unmanaged"`` plus installed
    plugins the manifest does not mention. Each name with a repository
    descriptor is added and installed through the engine; the hand-installed
    artifact is replaced by the downloaded one. Names without a descriptor are
    skipped, which is not a failure.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        source_index: RepositorySourceIndex,
        inspector: ArtifactInspector,
    ):
        self.engine = engine
        self.source_index = source_index
        self.inspector = inspector

    def plan(self, unmanaged: list[str]) -> AdoptPlan:
        """Partition unmanaged names by whether a descriptor matches."""
        plan = AdoptPlan()
        for name in unmanaged:
            (plan.matched if self.source_index.contains(name) else plan.skipped).append(name)
        return plan

    async def adopt(
        self, include_soft_dependencies: bool = False, dry_run: bool = False
    ) -> Outcome[AdoptResult | AdoptPlan]:
        """Adopt every unmanaged plugin that has a repository descriptor.

        Args:
            include_soft_dependencies: Also adopt the plugins each adopted
                artifact declares in ``depend`` and ``softdepend``.
            dry_run: Only compute the matched/skipped partition.

        Returns:
            An :class:`AdoptPlan` on dry runs, otherwise an :class:`AdoptResult`.
            Per-plugin failures are collected in ``failed_plugins``.
        """
        try:
            manifest = self.engine.manifest_store.load()
        except MpmError as e:
            return Outcome.fail(e)

        unmanaged = self.engine.unmanaged_names(manifest)
        plan = self.plan(unmanaged)
        logger.info(f"{len(plan.matched)} adoptable, {len(plan.skipped)} without a repository")
        if dry_run:
            return Outcome.ok(plan)

        installed = self.inspector.installed_plugins()
        result = AdoptResult(skipped_plugins=list(plan.skipped))
        processed: set[str] = set()
        queue: deque[tuple[str, bool]] = deque((name, False) for name in plan.matched)

        while queue:
            name, is_dependency = queue.popleft()
            if name.lower() in processed:
                continue
            processed.add(name.lower())

            path = self._installed_path(installed, name)
            descriptor = self.inspector.read_descriptor(path) if path is not None else None
            try:
                added = await self.engine.add_and_install(
                    name,
                    LATEST,
                    action="adopt",
                    replaces=path,
                    replaces_version=descriptor.version if descriptor else None,
                    is_dependency=is_dependency,
                )
            except MpmError as e:
                logger.error(
                    f"Failed to adopt {name}: {e.message}",
                    extra={"plugin": name, "action": "adopt"},
                )
                result.failed_plugins[name] = e.message
                continue
            result.adopted_plugins.append(added)
            logger.info(f"Adopted {name}{' as a dependency' if is_dependency else ''}")

            if include_soft_dependencies:
                dependencies = self._declared_dependencies(descriptor, added)
                self._queue_dependencies(dependencies, manifest.plugins, processed, queue, result)

        return Outcome.ok(result)

    def _declared_dependencies(
        self, replaced: ArtifactDescriptor | None, added: PluginAddResult
    ) -> list[str]:
        """Dependencies of the replaced jar and of the freshly installed one."""
        descriptors = [replaced] if replaced is not None else []
        file_name = added.install_result.installed.file_name
        if file_name:
            installed_path = self.engine.executor.plugins_dir / file_name
            if installed_path.is_file():
                descriptors.append(self.inspector.read_descriptor(installed_path))

        dependencies: list[str] = []
        for descriptor in descriptors:
            for dependency in descriptor.depend + descriptor.softdepend:
                if dependency not in dependencies:
                    dependencies.append(dependency)
        return dependencies

    def _queue_dependencies(
        self,
        dependencies: list[str],
        manifest_plugins: dict[str, str],
        processed: set[str],
        queue: deque[tuple[str, bool]],
        result: AdoptResult,
    ) -> None:
        known = {name.lower() for name in manifest_plugins}
        for dependency in dependencies:
            key = dependency.lower()
            if key in processed or key in known:
                continue
            if any(key == queued.lower() for queued, _ in queue):
                continue
            if not self.source_index.contains(dependency):
                if dependency not in result.not_found_dependencies:
                    result.not_found_dependencies.append(dependency)
                continue
            queue.append((dependency, True))

    @staticmethod
    def _installed_path(installed: dict[str, Path], name: str) -> Path | None:
        if name in installed:
            return installed[name]
        lowered = name.lower()
        for installed_name, path in installed.items():
            if installed_name.lower() == lowered:
                return path
        return None
