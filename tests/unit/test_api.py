"""Unit tests for the collaborator-facing API."""

from pathlib import Path

import pytest

from ratcrate import api
from ratcrate.registry.errors import SnapshotPersistenceError
from ratcrate.registry.models import DatasetSnapshot, RegistryRecord
from ratcrate.settings import AppSettings
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    """Settings pointing the cache into a temp directory."""
    return AppSettings(cache_dir=tmp_path / "ratcrate")


class TestCachePaths:
    """Tests for cache location helpers."""

    @pytest.mark.unit
    def test_cache_dir_created(self, settings: AppSettings) -> None:
        """Test the cache directory exists after the call."""
        cache_dir = api.get_cache_dir(settings)

        assert cache_dir == settings.cache_dir
        assert cache_dir.is_dir()

    @pytest.mark.unit
    def test_cache_file(self, settings: AppSettings) -> None:
        """Test the snapshot path lives inside the cache directory."""
        assert api.get_cache_file(settings) == settings.cache_dir / "crates.json"

    @pytest.mark.unit
    def test_cache_info_without_snapshot(self, settings: AppSettings) -> None:
        """Test cache info before anything was downloaded."""
        info = api.get_cache_info(settings)

        assert info.exists is False
        assert info.cache_file == settings.cache_dir / "crates.json"


class TestGetData:
    """Tests for api.get_data."""

    @pytest.mark.unit
    def test_reuses_snapshot(self, settings: AppSettings) -> None:
        """Test a cached snapshot is returned without touching the network."""
        snapshot = DatasetSnapshot.build(
            [RegistryRecord(id="ratatui", name="ratatui", is_core_library=True)],
            generated_at=FIXED_NOW,
        )
        api.get_cache_file(settings).write_text(snapshot.to_json(), encoding="utf-8")

        assert api.get_data(settings=settings) == snapshot
        assert api.get_cache_info(settings).exists is True

    @pytest.mark.unit
    def test_forwards_refresh_and_reports_warnings(
        self,
        settings: AppSettings,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test force_refresh reaches the loader and warnings are logged."""
        calls: list[bool] = []
        snapshot = DatasetSnapshot.build([], generated_at=FIXED_NOW)

        class StubLoader:
            def __init__(self, config: object) -> None:
                self.warnings = [SnapshotPersistenceError("/x", "disk full")]

            def get_data(self, force_refresh: bool = False) -> DatasetSnapshot:
                calls.append(force_refresh)
                return snapshot

        monkeypatch.setattr(api, "DatasetLoader", StubLoader)

        assert api.get_data(force_refresh=True, settings=settings) is snapshot
        assert calls == [True]
