"""Pytest configuration and fixtures."""

import json
import logging
import sys
import zipfile
from pathlib import Path

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mpm.errors import VersionNotFoundError  # noqa: E402
from mpm.plugins.adoption import AdoptionResolver  # noqa: E402
from mpm.plugins.artifacts import ArtifactInspector  # noqa: E402
from mpm.plugins.cache import ManagedPluginCache  # noqa: E402
from mpm.plugins.installer import InstallExecutor  # noqa: E402
from mpm.plugins.manifest import ManifestStore  # noqa: E402
from mpm.plugins.metadata import MetadataStore  # noqa: E402
from mpm.plugins.models import VersionData  # noqa: E402
from mpm.plugins.reconciler import ReconciliationEngine  # noqa: E402
from mpm.plugins.resolver import VersionResolver  # noqa: E402
from mpm.plugins.sources import RepositorySourceIndex  # noqa: E402


def write_jar(path: Path, name: str, version: str, depend=(), softdepend=()) -> Path:
    """Write a minimal plugin jar containing a plugin.yml."""
    descriptor = {"name": name, "version": version, "main": f"example.{name}"}
    if depend:
        descriptor["depend"] = list(depend)
    if softdepend:
        descriptor["softdepend"] = list(softdepend)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("plugin.yml", yaml.safe_dump(descriptor))
    return path


class FakeDownloader:
    """In-memory registry.

    ``releases`` maps a binding identifier to (plugin name, versions newest
    first). Every call is recorded in ``calls``.
    """

    def __init__(self, tmp_dir: Path):
        self.tmp_dir = tmp_dir
        self.releases: dict[str, tuple[str, list[str]]] = {}
        self.dependencies: dict[str, list[str]] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def publish(self, identifier: str, name: str, *versions: str, depend=()) -> None:
        self.releases[identifier] = (name, list(versions))
        self.dependencies[identifier] = list(depend)

    def _versions(self, binding) -> list[str]:
        return self.releases[binding.identifier][1]

    async def get_latest_version(self, binding) -> VersionData:
        self.calls.append(("latest", binding.identifier))
        version = self._versions(binding)[0]
        return VersionData(version=version, download_id=f"{binding.identifier}@{version}")

    async def get_version_by_name(self, binding, version: str) -> VersionData:
        self.calls.append(("by_name", binding.identifier))
        if version not in self._versions(binding):
            raise VersionNotFoundError(f"Version '{version}' not found", version=version)
        return VersionData(version=version, download_id=f"{binding.identifier}@{version}")

    async def list_versions(self, binding) -> list[str]:
        self.calls.append(("list", binding.identifier))
        return list(self._versions(binding))

    async def download_by_version(self, binding, version_data, file_name_pattern=None):
        self.calls.append(("download", binding.identifier))
        if binding.identifier in self.failing:
            raise RuntimeError(f"connection reset while downloading {binding.identifier}")
        name = self.releases[binding.identifier][0]
        target = self.tmp_dir / f"download-{name}-{version_data.version}.jar"
        return write_jar(
            target,
            name,
            version_data.version,
            depend=self.dependencies.get(binding.identifier, ()),
        )

    def network_calls(self) -> list[tuple[str, str]]:
        return list(self.calls)


class Workspace:
    """Directories and wired components for one test."""

    def __init__(self, base: Path):
        self.root = base / "mpm"
        self.plugins_dir = base / "plugins"
        self.repositories_dir = self.root / "repositories"
        self.metadata_dir = self.root / "metadata"
        for directory in (self.root, self.plugins_dir, self.repositories_dir):
            directory.mkdir(parents=True, exist_ok=True)

        downloads = base / "downloads"
        downloads.mkdir()
        self.downloader = FakeDownloader(downloads)
        self.clock_value = 0.0
        self.manifest_store = ManifestStore(self.root)
        self.source_index = RepositorySourceIndex([self.repositories_dir])
        self.metadata_store = MetadataStore(self.metadata_dir)
        self.inspector = ArtifactInspector(self.plugins_dir)
        self.cache = ManagedPluginCache(ttl_seconds=180, clock=lambda: self.clock_value)
        self.engine = ReconciliationEngine(
            manifest_store=self.manifest_store,
            source_index=self.source_index,
            resolver=VersionResolver(self.downloader),
            metadata_store=self.metadata_store,
            executor=InstallExecutor(self.downloader, self.plugins_dir, self.metadata_store),
            inspector=self.inspector,
            cache=self.cache,
        )
        self.adoption = AdoptionResolver(self.engine, self.source_index, self.inspector)

    def write_manifest(self, plugins: dict[str, str], name: str = "server") -> None:
        (self.root / "mpm.json").write_text(json.dumps({"name": name, "plugins": plugins}))

    def read_manifest(self) -> dict:
        return json.loads((self.root / "mpm.json").read_text())

    def add_repository(self, name: str, type: str, repository_id: str, **extra) -> None:
        entry = {"type": type, "repositoryId": repository_id, **extra}
        (self.repositories_dir / f"{name}.json").write_text(
            json.dumps({"id": name, "repositories": [entry]})
        )

    def install_by_hand(self, file_name: str, name: str, version: str, **kwargs) -> Path:
        return write_jar(self.plugins_dir / file_name, name, version, **kwargs)

    def read_metadata(self, name: str) -> dict:
        return yaml.safe_load((self.metadata_dir / f"{name}.yaml").read_text())


@pytest.fixture
def workspace(tmp_path):
    """Workspace with an empty plugin directory and no manifest."""
    return Workspace(tmp_path)


@pytest.fixture
def vault_workspace(workspace):
    """Workspace where Vault is published on GitHub as 1.0 and 1.1."""
    workspace.add_repository("Vault", "github", "MilkBowl/Vault")
    workspace.downloader.publish("MilkBowl/Vault", "Vault", "1.1", "1.0")
    return workspace


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """CLI invocations reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
