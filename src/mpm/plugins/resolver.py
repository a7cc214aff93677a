"""Version resolution across registry backends."""

from __future__ import annotations

import logging
import re

from mpm.errors import (
    InvalidBindingError,
    MpmError,
    UnsupportedBackendError,
    UpstreamUnavailableError,
    VersionNotFoundError,
)
from mpm.outcome import Outcome

from .downloader import Downloader
from .models import (
    GithubBinding,
    ModrinthBinding,
    RegistryBinding,
    RepositoryConfig,
    RepositoryInfo,
    RepositoryType,
    SpigotBinding,
    VersionData,
)

logger = logging.getLogger(__name__)


class VersionResolver:
    """Maps repository configuration to a registry binding and queries it.

    Every query goes through the injected download capability. Failures are
    returned as :class:`Outcome` values, never raised.
    """

    def __init__(self, downloader: Downloader):
        self.downloader = downloader

    def binding_for(self, config: RepositoryConfig | RepositoryInfo) -> Outcome[RegistryBinding]:
        """Build the binding for a descriptor entry or a stored record.

        Args:
            config: Repository config from a descriptor, or the repository
                info persisted in a metadata record.

        Returns:
            The binding, or a failure for unknown types and malformed ids.
        """
        if isinstance(config, RepositoryInfo):
            backend, repository_id = config.type.value, config.id
        else:
            backend, repository_id = config.type.lower(), config.repository_id

        try:
            repository_type = RepositoryType(backend)
        except ValueError:
            return Outcome.fail(
                UnsupportedBackendError(f"Unsupported repository type: {backend}", backend=backend)
            )

        if not repository_id:
            return Outcome.fail(InvalidBindingError(f"Empty repository id for {backend}"))

        match repository_type:
            case RepositoryType.GITHUB:
                owner, sep, repository = repository_id.partition("/")
                if not sep or not owner or not repository or "/" in repository:
                    return Outcome.fail(
                        InvalidBindingError(
                            f"GitHub repository id must be 'owner/repo', got '{repository_id}'",
                            {"repository_id": repository_id},
                        )
                    )
                return Outcome.ok(GithubBinding(owner=owner, repository=repository))
            case RepositoryType.MODRINTH:
                return Outcome.ok(ModrinthBinding(id=repository_id))
            case RepositoryType.SPIGOTMC:
                return Outcome.ok(SpigotBinding(resource_id=repository_id))

    async def latest(self, binding: RegistryBinding) -> Outcome[VersionData]:
        try:
            return Outcome.ok(await self.downloader.get_latest_version(binding))
        except Exception as e:
            logger.warning(f"Latest version lookup failed for {binding.type}:{binding.identifier}: {e}")
            return Outcome.fail(_as_upstream_error(binding, e))

    async def by_name(self, binding: RegistryBinding, version: str) -> Outcome[VersionData]:
        try:
            return Outcome.ok(await self.downloader.get_version_by_name(binding, version))
        except VersionNotFoundError as e:
            return Outcome.fail(e)
        except Exception as e:
            logger.warning(
                f"Version lookup '{version}' failed for {binding.type}:{binding.identifier}: {e}"
            )
            return Outcome.fail(_as_upstream_error(binding, e))

    async def list_versions(self, binding: RegistryBinding) -> Outcome[list[str]]:
        try:
            return Outcome.ok(list(await self.downloader.list_versions(binding)))
        except Exception as e:
            logger.warning(f"Version listing failed for {binding.type}:{binding.identifier}: {e}")
            return Outcome.fail(_as_upstream_error(binding, e))

    @staticmethod
    def normalize(raw: str, pattern: str | None) -> str:
        """Extract the comparable version from a raw registry version.

        The first regex match of ``pattern`` in ``raw`` is the normalized
        version. No pattern, no match or an invalid pattern yield ``raw``.

        Example:
            >>> VersionResolver.normalize("v1.2.3-SNAPSHOT", r"\\d+\\.\\d+\\.\\d+")
            '1.2.3'
        """
        if not pattern:
            return raw
        try:
            match = re.search(pattern, raw)
        except re.error as e:
            logger.warning(f"Invalid version pattern {pattern!r}: {e}")
            return raw
        return match.group(0) if match else raw


def _as_upstream_error(binding: RegistryBinding, error: Exception) -> MpmError:
    if isinstance(error, UpstreamUnavailableError):
        return error
    return UpstreamUnavailableError(
        f"{binding.type} lookup for {binding.identifier} failed: {error}",
        backend=binding.type,
        cause=error,
    )
