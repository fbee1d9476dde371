"""Resilient fetch and cache layer for the Ratatui crate registry."""

from ratcrate.api import (
    get_cache_dir,
    get_cache_file,
    get_cache_info,
    get_data,
    setup_logging,
)
from ratcrate.registry.models import DatasetSnapshot, RegistryRecord


__all__ = [
    "DatasetSnapshot",
    "RegistryRecord",
    "get_cache_dir",
    "get_cache_file",
    "get_cache_info",
    "get_data",
    "setup_logging",
]
