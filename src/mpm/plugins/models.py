"""Plugin manifest, repository and metadata models."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNMANAGED = "unmanaged"
LATEST = "latest"


class RepositoryType(str, Enum):
    """Registries a plugin can be resolved from."""

    GITHUB = "github"
    MODRINTH = "modrinth"
    SPIGOTMC = "spigotmc"


# ---------------------------------------------------------------------------
# Registry bindings
# ---------------------------------------------------------------------------


class GithubBinding(BaseModel):
    """A GitHub repository publishing releases."""

    model_config = ConfigDict(frozen=True)

    type: Literal["github"] = "github"
    owner: str = Field(..., description="Repository owner")
    repository: str = Field(..., description="Repository name")

    @property
    def identifier(self) -> str:
        return f"{self.owner}/{self.repository}"


class ModrinthBinding(BaseModel):
    """A Modrinth project."""

    model_config = ConfigDict(frozen=True)

    type: Literal["modrinth"] = "modrinth"
    id: str = Field(..., description="Project id or slug")

    @property
    def identifier(self) -> str:
        return self.id


class SpigotBinding(BaseModel):
    """A SpigotMC resource."""

    model_config = ConfigDict(frozen=True)

    type: Literal["spigotmc"] = "spigotmc"
    resource_id: str = Field(..., description="SpigotMC resource id")

    @property
    def identifier(self) -> str:
        return self.resource_id


RegistryBinding = Annotated[
    GithubBinding | ModrinthBinding | SpigotBinding,
    Field(discriminator="type"),
]


class VersionData(BaseModel):
    """A concrete version as reported by a registry."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., description="Raw version string")
    download_id: str = Field(..., description="Registry-specific download identifier")


# ---------------------------------------------------------------------------
# Repository descriptors
# ---------------------------------------------------------------------------


class RepositoryConfig(BaseModel):
    """One backend binding inside a repository descriptor file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = Field(..., description="Backend type (github, modrinth, spigotmc)")
    repository_id: str = Field(..., description="Backend-specific identifier")
    version_pattern: str | None = Field(default=None, description="Version normalization regex")
    file_name_pattern: str | None = Field(
        default=None, description="Regex selecting the release asset to download"
    )
    file_name_template: str | None = Field(
        default=None, description="Template for the installed file name"
    )


class RepositoryFile(BaseModel):
    """Repository descriptor for a single plugin name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Plugin name")
    website: str | None = Field(default=None, description="Project website")
    source: str | None = Field(default=None, description="Source code URL")
    license: str | None = Field(default=None, description="License")
    repositories: list[RepositoryConfig] = Field(
        default_factory=list, description="Backends, first entry is authoritative"
    )

    @property
    def primary(self) -> RepositoryConfig | None:
        return self.repositories[0] if self.repositories else None


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class Manifest(BaseModel):
    """The desired plugin set (mpm.json)."""

    name: str = Field(default="server", description="Project name")
    plugins: dict[str, str] = Field(
        default_factory=dict, description="Plugin name -> requested version"
    )

    def is_managed(self, name: str) -> bool:
        return name in self.plugins and self.plugins[name] != UNMANAGED

    def unmanaged_names(self) -> list[str]:
        return [name for name, version in self.plugins.items() if version == UNMANAGED]


# ---------------------------------------------------------------------------
# Managed plugin record
# ---------------------------------------------------------------------------


class PluginInfo(BaseModel):
    name: str
    version: str
    description: str | None = None
    main: str | None = None
    author: str | None = None
    website: str | None = None


class RepositoryInfo(BaseModel):
    type: RepositoryType
    id: str


class VersionDetail(BaseModel):
    raw: str
    normalized: str


class VersionManagement(BaseModel):
    current: VersionDetail
    latest: VersionDetail
    last_checked: str


class MetadataDownloadInfo(BaseModel):
    download_id: str
    file_name: str | None = None
    url: str | None = None
    sha256: str | None = None


class PluginSettings(BaseModel):
    lock: bool = False
    auto_update: bool = False


class HistoryEntry(BaseModel):
    version: str
    installed_at: str
    action: str


class MpmInfo(BaseModel):
    repository: RepositoryInfo
    version: VersionManagement
    download: MetadataDownloadInfo
    settings: PluginSettings = Field(default_factory=PluginSettings)
    history: list[HistoryEntry] = Field(default_factory=list)
    version_pattern: str | None = None
    file_name_pattern: str | None = None
    file_name_template: str | None = None


class ManagedPlugin(BaseModel):
    """Persisted record of a plugin under management."""

    plugin_info: PluginInfo
    mpm_info: MpmInfo

    @property
    def name(self) -> str:
        return self.plugin_info.name

    @property
    def current(self) -> VersionDetail:
        return self.mpm_info.version.current

    @property
    def latest(self) -> VersionDetail:
        return self.mpm_info.version.latest

    @property
    def locked(self) -> bool:
        return self.mpm_info.settings.lock


# ---------------------------------------------------------------------------
# Artifacts on disk
# ---------------------------------------------------------------------------


class ArtifactDescriptor(BaseModel):
    """Descriptor embedded in a plugin artifact (plugin.yml)."""

    name: str = Field(..., description="Plugin name declared by the artifact")
    version: str | None = Field(default=None, description="Declared version")
    depend: list[str] = Field(default_factory=list, description="Hard dependencies")
    softdepend: list[str] = Field(default_factory=list, description="Soft dependencies")


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class PluginInstallInfo(BaseModel):
    name: str = Field(..., description="Plugin name")
    current_version: str = Field(..., description="Installed version (raw)")
    latest_version: str = Field(..., description="Latest known version (raw)")
    file_name: str | None = Field(None, description="Artifact file in the plugin directory")


class PluginRemovalInfo(BaseModel):
    name: str = Field(..., description="Plugin name")
    version: str = Field(..., description="Version of the removed artifact (normalized)")
    file_name: str | None = Field(default=None, description="Removed file name")


class InstallResult(BaseModel):
    installed: PluginInstallInfo
    removed: PluginRemovalInfo | None = None


class BulkInstallResult(BaseModel):
    installed: list[PluginInstallInfo] = Field(default_factory=list)
    removed: list[PluginRemovalInfo] = Field(default_factory=list)
    failed: dict[str, str] = Field(
        default_factory=dict, description="Plugin name -> error message"
    )


class PluginAddResult(BaseModel):
    install_result: InstallResult
    is_dependency: bool = Field(default=False, description="Pulled in as a dependency")


class AdoptPlan(BaseModel):
    """Partition of unmanaged names computed by a dry run."""

    matched: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class AdoptResult(BaseModel):
    adopted_plugins: list[PluginAddResult] = Field(default_factory=list)
    skipped_plugins: list[str] = Field(default_factory=list)
    failed_plugins: dict[str, str] = Field(default_factory=dict)
    not_found_dependencies: list[str] = Field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return not self.failed_plugins

    @property
    def total_adopted(self) -> int:
        return len(self.adopted_plugins)


class OutdatedInfo(BaseModel):
    name: str
    current_version: str
    latest_version: str
    needs_update: bool
    locked: bool = False


class UpdateResult(BaseModel):
    name: str
    old_version: str
    new_version: str
