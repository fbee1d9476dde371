"""Collaborator-facing API consumed by the presentation layer.

These calls are the whole surface a CLI needs: the dataset, where it is
cached, and what state the cache is in.
"""

from pathlib import Path

import structlog

from ratcrate.observability.logging import configure_logging
from ratcrate.registry.info import CacheInfo, get_cache_info as _get_cache_info
from ratcrate.registry.loader import DatasetLoader
from ratcrate.registry.models import DatasetSnapshot
from ratcrate.settings import AppSettings, get_settings


logger = structlog.get_logger()


def get_data(
    force_refresh: bool = False,
    settings: AppSettings | None = None,
) -> DatasetSnapshot:
    """Get the registry dataset, downloading it if needed.

    Args:
        force_refresh: Refetch from the registry even if a snapshot exists.
        settings: Settings override (environment is read if omitted).

    Returns:
        The dataset snapshot.
    """
    settings = settings or get_settings()
    loader = DatasetLoader(settings.to_loader_config())
    snapshot = loader.get_data(force_refresh=force_refresh)
    for warning in loader.warnings:
        logger.warning("cache_not_persisted", error=str(warning))
    return snapshot


def get_cache_dir(settings: AppSettings | None = None) -> Path:
    """Get the cache directory, creating it if absent."""
    settings = settings or get_settings()
    cache_dir = settings.to_loader_config().cache_dir
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def get_cache_file(settings: AppSettings | None = None) -> Path:
    """Get the dataset snapshot file path."""
    settings = settings or get_settings()
    return get_cache_dir(settings) / settings.to_loader_config().snapshot_filename


def get_cache_info(settings: AppSettings | None = None) -> CacheInfo:
    """Get size, age and staleness of the cached snapshot."""
    settings = settings or get_settings()
    return _get_cache_info(settings.to_loader_config())


def setup_logging(settings: AppSettings | None = None) -> None:
    """Configure structured logging from settings."""
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
