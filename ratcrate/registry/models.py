"""Data models for registry listings and the dataset snapshot."""

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ratcrate.registry.utils import parse_github_repo


class RegistryRecord(BaseModel):
    """One package from the registry listing.

    Accepts the upstream crates.io field names and ignores anything else
    the registry sends.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Annotated[str, Field(min_length=1, description="Package id (unique key)")]
    name: Annotated[str, Field(min_length=1)]
    version: str | None = Field(
        default=None,
        validation_alias=AliasChoices("version", "max_version", "newest_version"),
    )
    description: str = ""
    downloads: Annotated[int, Field(ge=0)] = 0
    recent_downloads: Annotated[int, Field(ge=0)] = 0
    repository: str | None = None
    homepage: str | None = None
    documentation: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_core_library: bool = False

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, v: Any) -> Any:
        """Treat a null description as empty and trim whitespace."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("downloads", "recent_downloads", mode="before")
    @classmethod
    def coerce_counts(cls, v: Any) -> Any:
        """Treat null download counts as zero."""
        return 0 if v is None else v

    @property
    def github_repo(self) -> tuple[str, str] | None:
        """Get (owner, repo) if the repository is hosted on GitHub."""
        return parse_github_repo(self.repository)

    def is_newer_than(self, other: "RegistryRecord") -> bool:
        """Check if this listing entry was updated after another.

        Args:
            other: Previously seen entry for the same id.

        Returns:
            True only when both timestamps are known and this one is later.
        """
        if self.updated_at is None or other.updated_at is None:
            return False
        return self.updated_at > other.updated_at


class PageMeta(BaseModel):
    """Pagination metadata from a listing page."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    total: Annotated[int, Field(ge=0)]
    next_page: str | int | None = Field(
        default=None, validation_alias=AliasChoices("next_page", "nextPage")
    )


class ListingPage(BaseModel):
    """One page of the registry listing endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    records: list[RegistryRecord] = Field(
        validation_alias=AliasChoices("records", "crates")
    )
    meta: PageMeta


class SnapshotMetadata(BaseModel):
    """Generation metadata stored alongside the snapshot records."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    total_records: Annotated[int, Field(ge=0, alias="totalRecords")]
    core_count: Annotated[int, Field(ge=0, alias="coreCount")]
    community_count: Annotated[int, Field(ge=0, alias="communityCount")]
    generated_at: datetime = Field(alias="generatedAt")


class DatasetSnapshot(BaseModel):
    """Merged registry records plus generation metadata.

    This is what the presentation layer reads.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    metadata: SnapshotMetadata
    records: list[RegistryRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "DatasetSnapshot":
        """Ensure package ids are unique within the snapshot."""
        seen: set[str] = set()
        for record in self.records:
            if record.id in seen:
                msg = f"Duplicate package id in snapshot: {record.id}"
                raise ValueError(msg)
            seen.add(record.id)
        return self

    @classmethod
    def build(
        cls,
        records: Iterable[RegistryRecord],
        generated_at: datetime | None = None,
    ) -> "DatasetSnapshot":
        """Create a snapshot and derive its metadata.

        Args:
            records: Merged records (unique ids).
            generated_at: Generation timestamp (now if omitted).

        Returns:
            Snapshot with records sorted by id.
        """
        ordered = sorted(records, key=lambda r: r.id)
        core_count = sum(1 for r in ordered if r.is_core_library)
        metadata = SnapshotMetadata(
            total_records=len(ordered),
            core_count=core_count,
            community_count=len(ordered) - core_count,
            generated_at=generated_at or datetime.now(UTC),
        )
        return cls(metadata=metadata, records=ordered)

    def to_json(self) -> str:
        """Serialize to the snapshot file format."""
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "DatasetSnapshot":
        """Parse the snapshot file format.

        Raises:
            pydantic.ValidationError: If the content does not match.
        """
        return cls.model_validate_json(text)
