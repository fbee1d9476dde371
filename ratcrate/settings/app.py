"""Application settings powered by Pydantic BaseSettings."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratcrate.fetch.config import FetchConfig
from ratcrate.fetch.constants import DEFAULT_TIMEOUT_SECONDS
from ratcrate.fetch.models import RetryPolicy
from ratcrate.registry.config import LoaderConfig
from ratcrate.registry.constants import DEFAULT_QUERY, DEFAULT_REGISTRY_URL


def default_cache_dir() -> Path:
    """Resolve the per-user cache directory (XDG_CACHE_HOME aware)."""
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "ratcrate"


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATCRATE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cache_dir: Path = Field(default_factory=default_cache_dir)
    registry_url: str = DEFAULT_REGISTRY_URL
    query: str = DEFAULT_QUERY
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_attempts: int = Field(default=4, ge=1, le=20)
    max_workers: int = Field(default=1, ge=1, le=16)
    max_snapshot_age_hours: float | None = Field(default=None, gt=0)
    log_level: str = "WARNING"
    log_json: bool = False

    def to_loader_config(self) -> LoaderConfig:
        """Build the loader configuration from these settings."""
        return LoaderConfig(
            cache_dir=self.cache_dir,
            registry_url=self.registry_url,
            query=self.query,
            max_workers=self.max_workers,
            max_snapshot_age_hours=self.max_snapshot_age_hours,
            fetch=FetchConfig(
                timeout_seconds=self.timeout_seconds,
                retry_policy=RetryPolicy(max_attempts=self.max_attempts),
            ),
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
