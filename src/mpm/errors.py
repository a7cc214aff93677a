"""mpm Error Hierarchy.

Structured exception types for manifest reconciliation, version resolution
and artifact installation. Lower layers raise these; the engine boundary
wraps them into :class:`mpm.outcome.Outcome` values.
"""

from __future__ import annotations


class MpmError(Exception):
    """Base error for all mpm exceptions."""

    code = "MPM_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Configuration Errors
class ConfigMissingError(MpmError):
    """The manifest document does not exist."""

    code = "CONFIG_MISSING"

    def __init__(self, message: str = None, path: str = None):
        super().__init__(
            message or "mpm.json does not exist. Run 'mpm init' first.",
            {"path": path},
        )
        self.path = path


class ManifestError(MpmError):
    """The manifest exists but could not be read or written."""

    code = "MANIFEST_ERROR"


class AlreadyExistsError(MpmError):
    """A document that should be created fresh already exists."""

    code = "ALREADY_EXISTS"


# Lookup Errors
class NotFoundError(MpmError):
    """A named item is absent."""

    code = "NOT_FOUND"

    def __init__(self, message: str, name: str = None):
        super().__init__(message, {"name": name})
        self.name = name


class RepositoryNotFoundError(NotFoundError):
    """No repository descriptor exists for a plugin name."""

    code = "REPOSITORY_NOT_FOUND"


class MetadataNotFoundError(NotFoundError):
    """No metadata record exists for a plugin name."""

    code = "METADATA_NOT_FOUND"


class AlreadyManagedError(MpmError):
    """The plugin is already bound to a version in the manifest."""

    code = "ALREADY_MANAGED"

    def __init__(self, message: str, name: str = None, version: str = None):
        super().__init__(message, {"name": name, "version": version})
        self.name = name
        self.version = version


# Registry Errors
class RegistryError(MpmError):
    """Base error for registry binding and resolution failures."""

    code = "REGISTRY_ERROR"


class UnsupportedBackendError(RegistryError):
    """Repository type is outside the supported set."""

    code = "UNSUPPORTED_BACKEND"

    def __init__(self, message: str, backend: str = None):
        super().__init__(message, {"backend": backend})
        self.backend = backend


class InvalidBindingError(RegistryError):
    """Repository id does not have the shape the backend expects."""

    code = "INVALID_BINDING"


class UpstreamUnavailableError(RegistryError):
    """A registry API call failed."""

    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, backend: str = None, cause: Exception = None):
        details = {"backend": backend}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.backend = backend
        self.cause = cause


class VersionNotFoundError(RegistryError):
    """The registry has no version with the requested name."""

    code = "VERSION_NOT_FOUND"

    def __init__(self, message: str, version: str = None):
        super().__init__(message, {"version": version})
        self.version = version


# Installation Errors
class InstallError(MpmError):
    """Base error for artifact installation failures."""

    code = "INSTALL_ERROR"


class DownloadFailedError(InstallError):
    """The artifact could not be downloaded."""

    code = "DOWNLOAD_FAILED"


class FileMoveFailedError(InstallError):
    """The downloaded artifact could not be placed in the plugin directory."""

    code = "FILE_MOVE_FAILED"


# State Errors
class CorruptMetadataError(MpmError):
    """A metadata record exists but cannot be parsed."""

    code = "CORRUPT_METADATA"

    def __init__(self, message: str, name: str = None, cause: Exception = None):
        details = {"name": name}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.name = name
        self.cause = cause


class MetadataWriteError(MpmError):
    """A metadata record could not be written."""

    code = "METADATA_WRITE_FAILED"
