"""Configuration for the registry dataset loader."""

from pathlib import Path
from typing import Annotated
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ratcrate.fetch.config import FetchConfig
from ratcrate.registry.constants import (
    DEFAULT_CORE_PACKAGES,
    DEFAULT_ETAG_FILENAME,
    DEFAULT_PAGES_DIRNAME,
    DEFAULT_PER_PAGE,
    DEFAULT_QUERY,
    DEFAULT_REGISTRY_URL,
    DEFAULT_SNAPSHOT_FILENAME,
    DEFAULT_STALE_AFTER_DAYS,
)


class LoaderConfig(BaseModel):
    """Explicit configuration for the dataset loader.

    Replaces module-level path constants so tests can point every file at
    a temporary directory.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    cache_dir: Path
    snapshot_filename: Annotated[str, Field(min_length=1)] = DEFAULT_SNAPSHOT_FILENAME
    etag_filename: Annotated[str, Field(min_length=1)] = DEFAULT_ETAG_FILENAME
    pages_dirname: Annotated[str, Field(min_length=1)] = DEFAULT_PAGES_DIRNAME
    registry_url: Annotated[str, Field(min_length=1)] = DEFAULT_REGISTRY_URL
    query: str = DEFAULT_QUERY
    per_page: Annotated[int, Field(ge=1, le=100)] = DEFAULT_PER_PAGE
    max_pages: Annotated[int, Field(ge=1, le=1000)] = 100
    max_workers: Annotated[int, Field(ge=1, le=16)] = 1
    core_packages: frozenset[str] = DEFAULT_CORE_PACKAGES
    max_snapshot_age_hours: Annotated[float, Field(gt=0)] | None = Field(
        default=None,
        description="Refetch automatically when the snapshot is older than this",
    )
    stale_after_days: Annotated[float, Field(gt=0)] = DEFAULT_STALE_AFTER_DAYS
    fetch: FetchConfig = Field(default_factory=FetchConfig)

    @field_validator("registry_url")
    @classmethod
    def validate_registry_url(cls, v: str) -> str:
        """Require an absolute HTTP(S) URL without a query string."""
        if not v.startswith(("http://", "https://")):
            msg = "registry_url must start with http:// or https://"
            raise ValueError(msg)
        if "?" in v:
            msg = "registry_url must not contain a query string"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("core_packages")
    @classmethod
    def normalize_core_packages(cls, v: frozenset[str]) -> frozenset[str]:
        """Compare core package names case-insensitively."""
        return frozenset(name.lower() for name in v)

    @property
    def snapshot_path(self) -> Path:
        """Get the dataset snapshot file path."""
        return self.cache_dir / self.snapshot_filename

    @property
    def etag_path(self) -> Path:
        """Get the ETag cache file path."""
        return self.cache_dir / self.etag_filename

    @property
    def pages_dir(self) -> Path:
        """Get the directory holding remembered page bodies."""
        return self.cache_dir / self.pages_dirname

    def page_url(self, page: int) -> str:
        """Build the listing URL for a page.

        The parameter order is fixed so the same page always maps to the
        same ETag cache key.

        Args:
            page: Page number (1-indexed).

        Returns:
            Absolute page URL.
        """
        params = [f"page={page}", f"per_page={self.per_page}"]
        if self.query:
            params.insert(0, f"q={quote_plus(self.query)}")
        return f"{self.registry_url}?{'&'.join(params)}"

    def is_core(self, name: str) -> bool:
        """Check if a package name is one of the core libraries."""
        return name.lower() in self.core_packages
