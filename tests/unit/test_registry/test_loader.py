"""Unit tests for the paginated dataset loader."""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

from ratcrate.fetch.config import FetchConfig
from ratcrate.fetch.errors import ClientRequestError, FetchCancelledError
from ratcrate.fetch.etag_store import ETagStore
from ratcrate.fetch.metrics import FetchMetrics
from ratcrate.fetch.models import RetryPolicy
from ratcrate.registry.config import LoaderConfig
from ratcrate.registry.errors import (
    PageContentMissingError,
    RegistryResponseError,
    SnapshotPersistenceError,
)
from ratcrate.registry.loader import DatasetLoader
from ratcrate.registry.models import DatasetSnapshot, RegistryRecord
from tests.helpers.registry import FakeRegistry, make_record
from tests.helpers.time import FIXED_NOW


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Start every test with fresh metrics."""
    FetchMetrics.reset()


def make_config(tmp_path: Path, **overrides: Any) -> LoaderConfig:
    """Loader config with two records per page and instant retries."""
    policy = RetryPolicy(max_attempts=3, base_delay_ms=0, jitter_factor=0.0)
    values: dict[str, Any] = {
        "cache_dir": tmp_path / "cache",
        "registry_url": "https://registry.test/api/v1/crates",
        "per_page": 2,
        "fetch": FetchConfig(retry_policy=policy),
    }
    values.update(overrides)
    return LoaderConfig(**values)


def make_loader(
    tmp_path: Path,
    transport: httpx.BaseTransport,
    **overrides: Any,
) -> DatasetLoader:
    """Build a loader backed by an in-process transport."""
    return DatasetLoader(
        make_config(tmp_path, **overrides),
        transport=transport,
        run_id="test-run",
    )


def crate_ids(snapshot: DatasetSnapshot) -> list[str]:
    """Get record ids in snapshot order."""
    return [record.id for record in snapshot.records]


@pytest.fixture
def registry() -> FakeRegistry:
    """Registry with five packages, three pages at two per page."""
    return FakeRegistry(
        [
            make_record("ratatui", "A library to build rich terminal UIs"),
            make_record("tui-logger", "Logger widget"),
            make_record("ansi-to-tui", "Convert ansi colored text"),
            make_record("tui-textarea", "Multi-line text editor"),
            make_record("ratatui-image", "Image widget"),
        ]
    )


class TestFreshFetch:
    """Tests for building the snapshot from scratch."""

    def test_fetches_all_pages(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """Test every page is fetched and merged into a sorted snapshot."""
        loader = make_loader(tmp_path, registry.transport())

        snapshot = loader.get_data()

        assert registry.requested_pages() == [1, 2, 3]
        assert crate_ids(snapshot) == sorted(r["id"] for r in registry.records)
        assert snapshot.metadata.total_records == 5
        assert loader.warnings == []

    def test_snapshot_and_etags_written(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test the snapshot file and ETag cache land on disk."""
        loader = make_loader(tmp_path, registry.transport())

        snapshot = loader.get_data()

        config = loader.config
        assert DatasetSnapshot.from_json(
            config.snapshot_path.read_text(encoding="utf-8")
        ) == snapshot
        etags = ETagStore(config.etag_path).load()
        assert sorted(etags.values()) == [registry.etag_for(p) for p in (1, 2, 3)]
        assert config.page_url(1) in etags

    def test_core_libraries_tagged(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test core package names are flagged and counted."""
        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        core = [r.id for r in snapshot.records if r.is_core_library]
        assert core == ["ratatui"]
        assert snapshot.metadata.core_count == 1
        assert snapshot.metadata.community_count == 4

    def test_upstream_fields_mapped(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test the upstream version field name is accepted."""
        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        record = snapshot.records[0]
        assert record.version == "0.1.0"
        assert record.github_repo == ("example", record.id)


class TestSnapshotReuse:
    """Tests for reading the cached snapshot."""

    def test_second_call_makes_no_requests(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test an existing snapshot is returned without network traffic."""
        first = make_loader(tmp_path, registry.transport()).get_data()
        registry.requests.clear()

        second = make_loader(tmp_path, registry.transport()).get_data()

        assert registry.requests == []
        assert second == first

    def test_force_refresh_uses_conditional_requests(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a forced refresh of an unchanged registry replays cached pages."""
        first = make_loader(tmp_path, registry.transport()).get_data()
        registry.requests.clear()

        second = make_loader(tmp_path, registry.transport()).get_data(force_refresh=True)

        assert registry.conditional_requests() == 3
        assert FetchMetrics.get_instance().http_not_modified_total == 3
        assert crate_ids(second) == crate_ids(first)

    def test_force_refresh_picks_up_changes(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test changed pages replace the snapshot contents."""
        make_loader(tmp_path, registry.transport()).get_data()
        registry.records.append(make_record("tui-big-text", "Large text"))
        registry.version = 2

        snapshot = make_loader(tmp_path, registry.transport()).get_data(
            force_refresh=True
        )

        assert "tui-big-text" in crate_ids(snapshot)
        assert snapshot.metadata.total_records == 6

    def test_corrupt_snapshot_is_refetched(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test an unreadable snapshot file triggers a fetch."""
        config = make_config(tmp_path)
        config.snapshot_path.parent.mkdir(parents=True)
        config.snapshot_path.write_text("{not json", encoding="utf-8")

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert snapshot.metadata.total_records == 5
        assert registry.requested_pages() == [1, 2, 3]

    def test_expired_snapshot_is_refetched(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a snapshot older than the age limit is refreshed."""
        config = make_config(tmp_path)
        old = DatasetSnapshot.build([], generated_at=FIXED_NOW)
        config.snapshot_path.parent.mkdir(parents=True)
        config.snapshot_path.write_text(old.to_json(), encoding="utf-8")

        snapshot = make_loader(
            tmp_path, registry.transport(), max_snapshot_age_hours=1
        ).get_data()

        assert snapshot.metadata.total_records == 5

    def test_old_snapshot_reused_without_age_limit(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test age alone never forces a refresh unless configured."""
        config = make_config(tmp_path)
        old = DatasetSnapshot.build([], generated_at=FIXED_NOW)
        config.snapshot_path.parent.mkdir(parents=True)
        config.snapshot_path.write_text(old.to_json(), encoding="utf-8")

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert snapshot.metadata.total_records == 0
        assert registry.requests == []

    def test_fresh_snapshot_within_age_limit(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a recent snapshot is reused under an age limit."""
        config = make_config(tmp_path)
        recent = DatasetSnapshot.build([], generated_at=datetime.now(UTC))
        config.snapshot_path.parent.mkdir(parents=True)
        config.snapshot_path.write_text(recent.to_json(), encoding="utf-8")

        make_loader(tmp_path, registry.transport(), max_snapshot_age_hours=24).get_data()

        assert registry.requests == []


class TestPagination:
    """Tests for pagination termination."""

    def test_stops_on_empty_page(self, tmp_path: Path) -> None:
        """Test an empty page ends pagination before the reported total."""
        registry = FakeRegistry(
            [make_record("a"), make_record("b"), make_record("c")], total=10
        )

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert registry.requested_pages() == [1, 2, 3]
        assert crate_ids(snapshot) == ["a", "b", "c"]

    def test_empty_first_page(self, tmp_path: Path) -> None:
        """Test an empty listing yields an empty snapshot."""
        registry = FakeRegistry([])

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert registry.requested_pages() == [1]
        assert snapshot.records == []
        assert snapshot.metadata.total_records == 0

    def test_max_pages_cap(self, tmp_path: Path) -> None:
        """Test no page beyond max_pages is requested."""
        registry = FakeRegistry([make_record(f"crate-{i:02d}") for i in range(10)])

        snapshot = make_loader(tmp_path, registry.transport(), max_pages=2).get_data()

        assert registry.requested_pages() == [1, 2]
        assert snapshot.metadata.total_records == 4

    def test_page_urls_carry_query(self, tmp_path: Path, registry: FakeRegistry) -> None:
        """Test the search term and page size are sent."""
        make_loader(tmp_path, registry.transport(), query="tui widgets").get_data()

        first = registry.requests[0].url
        assert first.params["q"] == "tui widgets"
        assert first.params["per_page"] == "2"


class TestDuplicateMerge:
    """Tests for merging entries that appear on several pages."""

    @pytest.mark.parametrize(
        ("second_updated_at", "expected_description"),
        [
            ("2025-02-01T00:00:00Z", "second"),
            ("2024-12-01T00:00:00Z", "first"),
            (None, "first"),
        ],
    )
    def test_newer_duplicate_replaces(
        self,
        tmp_path: Path,
        second_updated_at: str | None,
        expected_description: str,
    ) -> None:
        """Test a duplicate wins only with a later updated_at."""
        registry = FakeRegistry([], total=4)
        registry.page_bodies[1] = [
            make_record("a", "first", updated_at="2025-01-01T00:00:00Z"),
            make_record("b"),
        ]
        registry.page_bodies[2] = [
            make_record("a", "second", updated_at=second_updated_at),
            make_record("c"),
        ]

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert crate_ids(snapshot) == ["a", "b", "c"]
        assert snapshot.records[0].description == expected_description


class TestPageCache:
    """Tests for replaying not-modified pages."""

    def test_missing_page_body_is_refetched(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a 304 without a remembered body falls back to a plain GET."""
        loader = make_loader(tmp_path, registry.transport())
        first = loader.get_data()
        for path in loader.config.pages_dir.iterdir():
            path.unlink()
        registry.requests.clear()

        second = make_loader(tmp_path, registry.transport()).get_data(force_refresh=True)

        assert crate_ids(second) == crate_ids(first)
        assert registry.requested_pages() == [1, 1, 2, 2, 3, 3]
        assert registry.conditional_requests() == 3

    def test_corrupt_page_body_is_refetched(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a damaged remembered body falls back to a plain GET."""
        loader = make_loader(tmp_path, registry.transport())
        loader.get_data()
        for path in loader.config.pages_dir.iterdir():
            path.write_text("garbage", encoding="utf-8")

        snapshot = make_loader(tmp_path, registry.transport()).get_data(
            force_refresh=True
        )

        assert snapshot.metadata.total_records == 5

    def test_not_modified_without_content_fails(self, tmp_path: Path) -> None:
        """Test a server that never sends a body raises PageContentMissingError."""
        transport = httpx.MockTransport(lambda request: httpx.Response(304))

        with pytest.raises(PageContentMissingError) as exc_info:
            make_loader(tmp_path, transport).get_data()

        assert "page=1" in exc_info.value.url


class TestFailures:
    """Tests for aborted refreshes."""

    def test_page_failure_leaves_snapshot_untouched(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a failed page aborts the refresh and keeps the old file."""
        loader = make_loader(tmp_path, registry.transport())
        loader.get_data()
        before = loader.config.snapshot_path.read_bytes()

        registry.records.append(make_record("new-crate"))
        registry.version = 2
        registry.failures[2] = [404]

        with pytest.raises(ClientRequestError):
            make_loader(tmp_path, registry.transport()).get_data(force_refresh=True)

        assert loader.config.snapshot_path.read_bytes() == before

    def test_transient_page_failure_is_retried(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a 503 on one page is retried transparently."""
        registry.failures[2] = [503]

        snapshot = make_loader(tmp_path, registry.transport()).get_data()

        assert registry.requested_pages() == [1, 2, 2, 3]
        assert snapshot.metadata.total_records == 5

    def test_malformed_page(self, tmp_path: Path) -> None:
        """Test an unparseable listing raises RegistryResponseError."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"<html>oops</html>")
        )

        with pytest.raises(RegistryResponseError):
            make_loader(tmp_path, transport).get_data()

        assert not make_config(tmp_path).snapshot_path.exists()

    def test_cancel_aborts_running_refresh(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test cancel() during a refresh ends it at the next retry wait."""
        cancel_next = [True]

        def handler(request: httpx.Request) -> httpx.Response:
            if cancel_next:
                cancel_next.pop()
                loader.cancel()
                return httpx.Response(503)
            return registry(request)

        loader = make_loader(tmp_path, httpx.MockTransport(handler))

        with pytest.raises(FetchCancelledError):
            loader.get_data(force_refresh=True)

        assert registry.requests == []
        assert not loader.config.snapshot_path.exists()

    def test_loader_usable_after_cancel(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a cancelled loader refreshes normally on the next call."""
        cancel_next = [True]

        def handler(request: httpx.Request) -> httpx.Response:
            if cancel_next:
                cancel_next.pop()
                loader.cancel()
                return httpx.Response(503)
            return registry(request)

        loader = make_loader(tmp_path, httpx.MockTransport(handler))
        with pytest.raises(FetchCancelledError):
            loader.get_data(force_refresh=True)

        snapshot = loader.get_data(force_refresh=True)

        assert snapshot.metadata.total_records == 5
        assert registry.requested_pages() == [1, 2, 3]


class TestFingerprintIntegrity:
    """Tests keeping stored fingerprints in step with remembered pages."""

    def test_rejected_body_does_not_advance_fingerprint(self, tmp_path: Path) -> None:
        """Test a changed page that fails to parse keeps the old fingerprint."""
        registry = FakeRegistry([make_record("a", "OLD")])
        config = make_config(tmp_path)
        make_loader(tmp_path, registry.transport()).get_data()

        registry.records[0] = make_record("a", "NEW")
        registry.version = 2
        registry.raw_bodies[1] = b'{"crates": ['

        with pytest.raises(RegistryResponseError):
            make_loader(tmp_path, registry.transport()).get_data(force_refresh=True)

        assert ETagStore(config.etag_path).load() == {
            config.page_url(1): '"p1-v1"'
        }

        del registry.raw_bodies[1]
        snapshot = make_loader(tmp_path, registry.transport()).get_data(
            force_refresh=True
        )

        assert snapshot.records[0].description == "NEW"
        assert ETagStore(config.etag_path).load() == {
            config.page_url(1): registry.etag_for(1)
        }

    def test_unstored_body_does_not_record_fingerprint(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a page whose body could not be remembered is refetched in full."""
        config = make_config(tmp_path)
        config.cache_dir.mkdir(parents=True)
        # A file where the pages directory should be makes every put fail
        config.pages_dir.write_text("in the way", encoding="utf-8")

        loader = make_loader(tmp_path, registry.transport())
        snapshot = loader.get_data()

        assert snapshot.metadata.total_records == 5
        assert len(loader.warnings) == 3
        assert all(isinstance(w, SnapshotPersistenceError) for w in loader.warnings)
        assert ETagStore(config.etag_path).load() == {}

        registry.requests.clear()
        make_loader(tmp_path, registry.transport()).get_data(force_refresh=True)

        assert registry.conditional_requests() == 0


class TestPersistenceWarnings:
    """Tests for save failures that do not lose the data."""

    def test_unwritable_snapshot_returns_data_with_warning(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test a snapshot write failure is reported, not raised."""
        config = make_config(tmp_path)
        # A directory where the file should go makes the final rename fail
        config.snapshot_path.mkdir(parents=True)

        loader = make_loader(tmp_path, registry.transport())
        snapshot = loader.get_data()

        assert snapshot.metadata.total_records == 5
        assert len(loader.warnings) == 1
        assert isinstance(loader.warnings[0], SnapshotPersistenceError)

    def test_warnings_reset_per_call(
        self, tmp_path: Path, registry: FakeRegistry
    ) -> None:
        """Test warnings only describe the most recent call."""
        config = make_config(tmp_path)
        config.snapshot_path.mkdir(parents=True)
        loader = make_loader(tmp_path, registry.transport())
        loader.get_data()

        config.snapshot_path.rmdir()
        loader.get_data(force_refresh=True)

        assert loader.warnings == []


class TestParallelPages:
    """Tests for fetching pages on a worker pool."""

    def test_parallel_matches_sequential(self, tmp_path: Path) -> None:
        """Test concurrent fetching produces the same snapshot."""
        records = [make_record(f"crate-{i:02d}") for i in range(9)]

        sequential = make_loader(
            tmp_path / "seq", FakeRegistry(records).transport()
        ).get_data()
        registry = FakeRegistry(records)
        parallel = make_loader(
            tmp_path / "par", registry.transport(), max_workers=4
        ).get_data()

        assert crate_ids(parallel) == crate_ids(sequential)
        assert sorted(registry.requested_pages()) == [1, 2, 3, 4, 5]

    def test_parallel_failure_raises(self, tmp_path: Path) -> None:
        """Test a failing page aborts a concurrent refresh."""
        registry = FakeRegistry([make_record(f"crate-{i:02d}") for i in range(9)])
        registry.failures[3] = [404]

        with pytest.raises(ClientRequestError):
            make_loader(tmp_path, registry.transport(), max_workers=4).get_data()

        assert not make_config(tmp_path).snapshot_path.exists()

    def test_parallel_duplicates_merge_in_page_order(self, tmp_path: Path) -> None:
        """Test first-seen is decided by page number, not completion order."""
        registry = FakeRegistry([], total=6)
        registry.page_bodies[1] = [make_record("a", "one"), make_record("b")]
        registry.page_bodies[2] = [make_record("c"), make_record("d")]
        registry.page_bodies[3] = [make_record("a", "three"), make_record("e")]

        snapshot = make_loader(
            tmp_path, registry.transport(), max_workers=3
        ).get_data()

        by_id: dict[str, RegistryRecord] = {r.id: r for r in snapshot.records}
        assert by_id["a"].description == "one"
        assert sorted(by_id) == ["a", "b", "c", "d", "e"]
