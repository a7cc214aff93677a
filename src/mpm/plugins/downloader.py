"""Download capability for plugin registries.

``Downloader`` is the structural interface the engine depends on.
``HttpDownloader`` implements it against the public APIs of GitHub releases,
Modrinth (v2) and SpigotMC (through Spiget).
"""

from __future__ import annotations

import logging
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx

from mpm.errors import UpstreamUnavailableError, VersionNotFoundError

from .models import GithubBinding, ModrinthBinding, RegistryBinding, SpigotBinding, VersionData

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
MODRINTH_API = "https://api.modrinth.com/v2"
SPIGET_API = "https://api.spiget.org/v2"


@runtime_checkable
class Downloader(Protocol):
    """Structural interface for registry access."""

    async def get_latest_version(self, binding: RegistryBinding) -> VersionData:
        """Return the newest version published for a binding."""

    async def get_version_by_name(self, binding: RegistryBinding, version: str) -> VersionData:
        """Return the version whose name equals ``version``."""

    async def list_versions(self, binding: RegistryBinding) -> list[str]:
        """Return published version names, newest first."""

    async def download_by_version(
        self,
        binding: RegistryBinding,
        version_data: VersionData,
        file_name_pattern: str | None = None,
    ) -> Path | None:
        """Download an artifact to a temporary file; None signals failure."""


@dataclass
class HTTPClientConfig:
    """Configuration for the registry HTTP client.

    Attributes:
        timeout: Default timeout in seconds
        max_retries: Connection retries performed by the transport
        pool_maxsize: Maximum open connections
        user_agent: User-Agent header sent to every registry
        github_token: Optional token for the GitHub API rate limit
    """

    timeout: float = 30.0
    max_retries: int = 3
    pool_maxsize: int = 10
    user_agent: str = "mpm"
    github_token: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


def _create_async_client(config: HTTPClientConfig) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with connection pooling."""
    limits = httpx.Limits(
        max_keepalive_connections=config.pool_maxsize,
        max_connections=config.pool_maxsize,
        keepalive_expiry=30.0,
    )
    timeout = httpx.Timeout(config.timeout, connect=10.0)
    transport = httpx.AsyncHTTPTransport(retries=config.max_retries)
    headers = {"User-Agent": config.user_agent, **config.headers}
    return httpx.AsyncClient(
        limits=limits,
        timeout=timeout,
        transport=transport,
        headers=headers,
        follow_redirects=True,
    )


class HttpDownloader:
    """Registry access over HTTP.

    Version identifiers per backend:
    - GitHub: version is the release tag, download id is the release id.
    - Modrinth: version is ``version_number``, download id is the version id.
    - SpigotMC: version is the Spiget version name, download id is its id.
    """

    def __init__(
        self,
        config: HTTPClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
        download_dir: Path | str | None = None,
    ):
        self.config = config or HTTPClientConfig()
        self._client = client
        self._owns_client = client is None
        self.download_dir = Path(download_dir) if download_dir else None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = _create_async_client(self.config)
            logger.info(f"Created registry HTTP client (max_connections={self.config.pool_maxsize})")
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this downloader created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpDownloader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Downloader interface
    # ------------------------------------------------------------------

    async def get_latest_version(self, binding: RegistryBinding) -> VersionData:
        match binding:
            case GithubBinding():
                release = await self._get_json(
                    binding, f"{GITHUB_API}/repos/{binding.identifier}/releases/latest"
                )
                return VersionData(version=release["tag_name"], download_id=str(release["id"]))
            case ModrinthBinding():
                versions = await self._modrinth_versions(binding)
                if not versions:
                    raise VersionNotFoundError(f"No versions published for {binding.id}")
                newest = versions[0]
                return VersionData(version=newest["version_number"], download_id=newest["id"])
            case SpigotBinding():
                latest = await self._get_json(
                    binding, f"{SPIGET_API}/resources/{binding.resource_id}/versions/latest"
                )
                return VersionData(version=latest["name"], download_id=str(latest["id"]))

    async def get_version_by_name(self, binding: RegistryBinding, version: str) -> VersionData:
        match binding:
            case GithubBinding():
                release = await self._get_json(
                    binding,
                    f"{GITHUB_API}/repos/{binding.identifier}/releases/tags/{version}",
                    missing_version=version,
                )
                return VersionData(version=release["tag_name"], download_id=str(release["id"]))
            case ModrinthBinding():
                for entry in await self._modrinth_versions(binding):
                    if entry["version_number"] == version:
                        return VersionData(version=version, download_id=entry["id"])
            case SpigotBinding():
                for entry in await self._spiget_versions(binding):
                    if entry["name"] == version:
                        return VersionData(version=version, download_id=str(entry["id"]))
        raise VersionNotFoundError(
            f"Version '{version}' not found for {binding.type}:{binding.identifier}",
            version=version,
        )

    async def list_versions(self, binding: RegistryBinding) -> list[str]:
        match binding:
            case GithubBinding():
                releases = await self._get_json(
                    binding,
                    f"{GITHUB_API}/repos/{binding.identifier}/releases",
                    params={"per_page": 100},
                )
                return [release["tag_name"] for release in releases]
            case ModrinthBinding():
                return [entry["version_number"] for entry in await self._modrinth_versions(binding)]
            case SpigotBinding():
                return [entry["name"] for entry in await self._spiget_versions(binding)]

    async def download_by_version(
        self,
        binding: RegistryBinding,
        version_data: VersionData,
        file_name_pattern: str | None = None,
    ) -> Path | None:
        url = await self._resolve_download_url(binding, version_data, file_name_pattern)
        if url is None:
            logger.warning(
                f"No downloadable file for {binding.type}:{binding.identifier} "
                f"{version_data.version}"
            )
            return None
        return await self._download_to_temp(binding, url)

    # ------------------------------------------------------------------
    # Backend helpers
    # ------------------------------------------------------------------

    async def _modrinth_versions(self, binding: ModrinthBinding) -> list[dict[str, Any]]:
        return await self._get_json(binding, f"{MODRINTH_API}/project/{binding.id}/version")

    async def _spiget_versions(self, binding: SpigotBinding) -> list[dict[str, Any]]:
        return await self._get_json(
            binding,
            f"{SPIGET_API}/resources/{binding.resource_id}/versions",
            params={"size": 100, "sort": "-releaseDate"},
        )

    async def _resolve_download_url(
        self,
        binding: RegistryBinding,
        version_data: VersionData,
        file_name_pattern: str | None,
    ) -> str | None:
        match binding:
            case GithubBinding():
                release = await self._get_json(
                    binding,
                    f"{GITHUB_API}/repos/{binding.identifier}/releases/{version_data.download_id}",
                )
                assets = [(a["name"], a["browser_download_url"]) for a in release.get("assets", [])]
                return _select_file(assets, file_name_pattern)
            case ModrinthBinding():
                version = await self._get_json(
                    binding, f"{MODRINTH_API}/version/{version_data.download_id}"
                )
                files = version.get("files", [])
                primary = [(f["filename"], f["url"]) for f in files if f.get("primary")]
                others = [(f["filename"], f["url"]) for f in files if not f.get("primary")]
                return _select_file(primary + others, file_name_pattern)
            case SpigotBinding():
                return (
                    f"{SPIGET_API}/resources/{binding.resource_id}"
                    f"/versions/{version_data.download_id}/download"
                )

    def _headers_for(self, binding: RegistryBinding) -> dict[str, str]:
        if isinstance(binding, GithubBinding) and self.config.github_token:
            return {"Authorization": f"Bearer {self.config.github_token}"}
        return {}

    async def _get_json(
        self,
        binding: RegistryBinding,
        url: str,
        params: dict[str, Any] | None = None,
        missing_version: str | None = None,
    ) -> Any:
        try:
            response = await self.client.get(url, params=params, headers=self._headers_for(binding))
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(
                f"Request to {binding.type} failed: {e}", backend=binding.type, cause=e
            ) from e

        if response.status_code == 404 and missing_version is not None:
            raise VersionNotFoundError(
                f"Version '{missing_version}' not found for {binding.type}:{binding.identifier}",
                version=missing_version,
            )
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                f"{binding.type} responded with HTTP {response.status_code} for {url}",
                backend=binding.type,
            )
        return response.json()

    async def _download_to_temp(self, binding: RegistryBinding, url: str) -> Path | None:
        suffix = Path(httpx.URL(url).path).suffix or ".jar"
        fd, name = tempfile.mkstemp(prefix="mpm-", suffix=suffix, dir=self.download_dir)
        target = Path(name)
        try:
            with open(fd, "wb") as handle:
                async with self.client.stream(
                    "GET", url, headers=self._headers_for(binding)
                ) as response:
                    if response.status_code >= 400:
                        logger.warning(f"Download of {url} failed with HTTP {response.status_code}")
                        target.unlink(missing_ok=True)
                        return None
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as e:
            target.unlink(missing_ok=True)
            raise UpstreamUnavailableError(
                f"Download from {binding.type} failed: {e}", backend=binding.type, cause=e
            ) from e
        logger.debug(f"Downloaded {url} to {target}")
        return target


def _select_file(files: list[tuple[str, str]], pattern: str | None) -> str | None:
    """Pick a download URL from (file name, url) pairs.

    With a pattern the first file whose name matches it wins; otherwise the
    first .jar, then the first file at all.
    """
    if pattern:
        regex = re.compile(pattern)
        for file_name, url in files:
            if regex.search(file_name):
                return url
        return None
    for file_name, url in files:
        if file_name.endswith(".jar"):
            return url
    return files[0][1] if files else None
