"""Registry dataset loading and snapshot caching."""

from ratcrate.registry.config import LoaderConfig
from ratcrate.registry.errors import (
    PageContentMissingError,
    RegistryError,
    RegistryResponseError,
    SnapshotPersistenceError,
)
from ratcrate.registry.info import CacheInfo, get_cache_info, search_records
from ratcrate.registry.loader import DatasetLoader
from ratcrate.registry.models import (
    DatasetSnapshot,
    ListingPage,
    PageMeta,
    RegistryRecord,
    SnapshotMetadata,
)
from ratcrate.registry.page_cache import PageCache
from ratcrate.registry.utils import parse_github_repo


__all__ = [
    "CacheInfo",
    "DatasetLoader",
    "DatasetSnapshot",
    "ListingPage",
    "LoaderConfig",
    "PageCache",
    "PageContentMissingError",
    "PageMeta",
    "RegistryError",
    "RegistryRecord",
    "RegistryResponseError",
    "SnapshotMetadata",
    "SnapshotPersistenceError",
    "get_cache_info",
    "parse_github_repo",
    "search_records",
]
