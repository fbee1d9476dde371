"""Application settings loading."""

from .app import AppSettings, default_cache_dir, get_settings


__all__ = ["AppSettings", "default_cache_dir", "get_settings"]
