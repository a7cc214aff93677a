"""Explicit wiring of mpm components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config.settings import Settings
from .plugins.adoption import AdoptionResolver
from .plugins.artifacts import ArtifactInspector
from .plugins.cache import ManagedPluginCache
from .plugins.downloader import Downloader, HTTPClientConfig, HttpDownloader
from .plugins.installer import InstallExecutor
from .plugins.manifest import ManifestStore
from .plugins.metadata import MetadataStore
from .plugins.reconciler import ReconciliationEngine
from .plugins.resolver import VersionResolver
from .plugins.sources import RepositorySourceIndex

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """The components a command needs, built once per invocation."""

    settings: Settings
    downloader: Downloader
    engine: ReconciliationEngine
    adoption: AdoptionResolver

    async def aclose(self) -> None:
        close = getattr(self.downloader, "aclose", None)
        if close is not None:
            await close()


def build_runtime(settings: Settings, downloader: Downloader | None = None) -> Runtime:
    """Build every component from settings.

    Args:
        settings: Resolved settings.
        downloader: Download capability; an :class:`HttpDownloader` is
            created from the settings when omitted.

    Returns:
        A runtime whose engine and adoption resolver share one set of stores.
    """
    if downloader is None:
        downloader = HttpDownloader(
            HTTPClientConfig(
                timeout=settings.http_timeout,
                user_agent=settings.user_agent,
                github_token=settings.github_token,
            )
        )

    source_index = RepositorySourceIndex(settings.resolved_repository_dirs)
    metadata_store = MetadataStore(settings.resolved_metadata_dir)
    inspector = ArtifactInspector(settings.plugins_dir)
    engine = ReconciliationEngine(
        manifest_store=ManifestStore(settings.root_dir, settings.manifest_file),
        source_index=source_index,
        resolver=VersionResolver(downloader),
        metadata_store=metadata_store,
        executor=InstallExecutor(downloader, settings.plugins_dir, metadata_store),
        inspector=inspector,
        cache=ManagedPluginCache(ttl_seconds=settings.cache_ttl_seconds),
        max_concurrency=settings.max_concurrency,
    )
    logger.debug(f"Runtime built for {settings.root_dir}")
    return Runtime(
        settings=settings,
        downloader=downloader,
        engine=engine,
        adoption=AdoptionResolver(engine, source_index, inspector),
    )
