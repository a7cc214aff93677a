"""Settings and configuration management."""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic import Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

# Regex for ${ENV_VAR} placeholders in YAML values
_ENV_VAR_PLACEHOLDER_RE = re.compile(r"^\$\{[A-Z_][A-Z0-9_]*\}$")

# YAML config search paths (checked in order, first found wins)
_YAML_SEARCH_PATHS = [
    Path("mpm.yaml"),
    Path("config/mpm.yaml"),
    Path.home() / ".config" / "mpm" / "mpm.yaml",
]


def _find_yaml_config() -> Path | None:
    """Find the first mpm.yaml in search paths."""
    for path in _YAML_SEARCH_PATHS:
        if path.is_file():
            return path
    return None


class Settings(BaseSettings):
    """Application settings.

    Priority chain: init kwargs > env vars > .env file > mpm.yaml > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="MPM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Class-level cache for the resolved YAML path (not a pydantic field)
    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Priority: init kwargs > env vars > .env file > mpm.yaml > file secrets > defaults
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
        ]

        yaml_path = _find_yaml_config()
        cls._yaml_path = yaml_path
        if yaml_path:
            sources.append(
                YamlConfigSettingsSource(
                    settings_cls,
                    yaml_file=yaml_path,
                    yaml_file_encoding="utf-8",
                )
            )

        sources.append(file_secret_settings)
        return tuple(sources)

    @model_validator(mode="before")
    @classmethod
    def _resolve_env_var_placeholders(cls, data: dict) -> dict:
        """Strip unresolved ${VAR} placeholders so they become None."""
        if not isinstance(data, dict):
            return data
        for key, value in data.items():
            if isinstance(value, str) and _ENV_VAR_PLACEHOLDER_RE.match(value):
                data[key] = None
        return data

    # Paths
    root_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "mpm",
        description="Directory holding mpm.json and the metadata store",
    )
    plugins_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "plugins",
        description="Directory holding installed plugin artifacts",
    )
    metadata_dir: Path | None = Field(
        None, description="Metadata store directory (default: <root_dir>/metadata)"
    )
    repository_dirs: list[Path] = Field(
        default_factory=list,
        description="Directories with <name>.json repository descriptors (default: <root_dir>/repositories)",
    )
    manifest_file: str = Field("mpm.json", description="Manifest file name inside root_dir")

    # Engine
    cache_ttl_seconds: float = Field(
        180.0, description="TTL for the managed-plugin list cache (default: 3 minutes)"
    )
    max_concurrency: int = Field(
        1, ge=1, description="Maximum plugins installed concurrently during a batch"
    )

    # HTTP
    http_timeout: float = Field(30.0, description="Registry request timeout in seconds")
    user_agent: str = Field("mpm/0.4.0", description="User-Agent sent to registries")
    github_token: str | None = Field(None, description="GitHub token for release API calls")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("text", description="Log format: 'text' or 'json'")
    sanitize_logs: bool = Field(True, description="Sanitize tokens from logs")

    @property
    def resolved_metadata_dir(self) -> Path:
        return self.metadata_dir or self.root_dir / "metadata"

    @property
    def resolved_repository_dirs(self) -> list[Path]:
        return self.repository_dirs or [self.root_dir / "repositories"]

    @property
    def manifest_path(self) -> Path:
        return self.root_dir / self.manifest_file

    def model_post_init(self, __context) -> None:
        """Ensure the artifact directory exists."""
        self.plugins_dir.mkdir(parents=True, exist_ok=True)
        if self._yaml_path:
            logger.debug("Loaded settings from %s", self._yaml_path)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
