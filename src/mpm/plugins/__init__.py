"""Plugin management core.

Manifest and metadata models, registry resolution, installation,
reconciliation and adoption of hand-installed plugins.
"""

from .adoption import AdoptionResolver
from .artifacts import ArtifactInspector
from .cache import ManagedPluginCache
from .downloader import Downloader, HTTPClientConfig, HttpDownloader
from .installer import InstallExecutor, render_file_name
from .locks import KeyedLocks
from .manifest import ManifestStore
from .metadata import MetadataStore
from .models import (
    LATEST,
    UNMANAGED,
    AdoptPlan,
    AdoptResult,
    ArtifactDescriptor,
    BulkInstallResult,
    GithubBinding,
    InstallResult,
    ManagedPlugin,
    Manifest,
    ModrinthBinding,
    OutdatedInfo,
    PluginAddResult,
    RegistryBinding,
    RepositoryConfig,
    RepositoryFile,
    RepositoryType,
    SpigotBinding,
    UpdateResult,
    VersionData,
)
from .reconciler import ReconciliationEngine
from .resolver import VersionResolver
from .sources import RepositorySourceIndex

__all__ = [
    # Engine
    "ReconciliationEngine",
    "AdoptionResolver",
    # Components
    "ArtifactInspector",
    "Downloader",
    "HTTPClientConfig",
    "HttpDownloader",
    "InstallExecutor",
    "KeyedLocks",
    "ManagedPluginCache",
    "ManifestStore",
    "MetadataStore",
    "RepositorySourceIndex",
    "VersionResolver",
    "render_file_name",
    # Models
    "LATEST",
    "UNMANAGED",
    "AdoptPlan",
    "AdoptResult",
    "ArtifactDescriptor",
    "BulkInstallResult",
    "GithubBinding",
    "InstallResult",
    "ManagedPlugin",
    "Manifest",
    "ModrinthBinding",
    "OutdatedInfo",
    "PluginAddResult",
    "RegistryBinding",
    "RepositoryConfig",
    "RepositoryFile",
    "RepositoryType",
    "SpigotBinding",
    "UpdateResult",
    "VersionData",
]
