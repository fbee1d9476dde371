"""Shared, deterministic timestamps for tests."""

from datetime import UTC, datetime


# Fixed timestamp so snapshot ages and staleness checks are deterministic.
FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)
