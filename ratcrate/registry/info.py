"""Cache inspection and record search for the presentation layer."""

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from ratcrate.registry.config import LoaderConfig
from ratcrate.registry.models import RegistryRecord


SECONDS_PER_DAY = 86400


class CacheInfo(BaseModel):
    """State of the on-disk snapshot."""

    model_config = ConfigDict(frozen=True)

    cache_dir: Path
    cache_file: Path
    exists: bool
    size_bytes: int | None = None
    modified_at: datetime | None = None
    age_seconds: float | None = None
    is_stale: bool = False


def get_cache_info(config: LoaderConfig, now: datetime | None = None) -> CacheInfo:
    """Describe the snapshot file: size, age and whether to suggest a refresh.

    Args:
        config: Loader configuration.
        now: Reference time (defaults to the current time).

    Returns:
        CacheInfo for the configured snapshot path.
    """
    cache_file = config.snapshot_path
    try:
        stat = cache_file.stat()
    except FileNotFoundError:
        return CacheInfo(cache_dir=config.cache_dir, cache_file=cache_file, exists=False)

    modified_at = datetime.fromtimestamp(stat.st_mtime, tz=UTC)
    age_seconds = max(0.0, ((now or datetime.now(UTC)) - modified_at).total_seconds())
    return CacheInfo(
        cache_dir=config.cache_dir,
        cache_file=cache_file,
        exists=True,
        size_bytes=stat.st_size,
        modified_at=modified_at,
        age_seconds=age_seconds,
        is_stale=age_seconds > config.stale_after_days * SECONDS_PER_DAY,
    )


def search_records(
    records: Iterable[RegistryRecord],
    query: str | None = None,
    core_only: bool = False,
) -> list[RegistryRecord]:
    """Filter records by a search term and/or core-library flag.

    The query matches case-insensitively against name and description.
    """
    needle = query.lower() if query else None
    matches = []
    for record in records:
        if core_only and not record.is_core_library:
            continue
        if needle and needle not in record.name.lower() and (
            needle not in record.description.lower()
        ):
            continue
        matches.append(record)
    return matches
