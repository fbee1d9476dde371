"""Paginated registry retrieval with an on-disk snapshot cache."""

import math
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime, timedelta

import httpx
import structlog
from pydantic import ValidationError

from ratcrate.fetch.client import HttpFetcher
from ratcrate.fetch.errors import CachePersistenceError
from ratcrate.fetch.etag_store import ETagStore
from ratcrate.fetch.models import Changed
from ratcrate.io import atomic_write_text
from ratcrate.registry.config import LoaderConfig
from ratcrate.registry.errors import (
    PageContentMissingError,
    RegistryResponseError,
    SnapshotPersistenceError,
)
from ratcrate.registry.models import DatasetSnapshot, ListingPage, RegistryRecord
from ratcrate.registry.page_cache import PageCache


logger = structlog.get_logger()


class DatasetLoader:
    """Builds and caches the registry dataset snapshot.

    Reuses the snapshot on disk unless a refresh is forced (or it has
    expired). A refresh pages through the listing endpoint with conditional
    requests, merges the pages by package id, and replaces the snapshot
    file atomically. Any page failure aborts the refresh and leaves the
    previous snapshot untouched.
    """

    def __init__(
        self,
        config: LoaderConfig,
        fetcher: HttpFetcher | None = None,
        page_cache: PageCache | None = None,
        transport: httpx.BaseTransport | None = None,
        run_id: str | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            config: Loader configuration (paths, endpoint, fetch policy).
            fetcher: HTTP fetcher (built from config if omitted).
            page_cache: Page body cache (built from config if omitted).
            transport: Optional httpx transport when building the fetcher.
            run_id: Unique run identifier for logging.
        """
        self._config = config
        self._run_id = run_id or str(uuid.uuid4())
        if fetcher is None:
            etag_store = ETagStore(config.etag_path, run_id=self._run_id)
            fetcher = HttpFetcher(
                config.fetch,
                etag_store,
                transport=transport,
                run_id=self._run_id,
            )
        self._fetcher = fetcher
        self._pages = page_cache or PageCache(config.pages_dir, run_id=self._run_id)
        self._warnings: list[Exception] = []
        self._warnings_lock = threading.Lock()
        self._log = logger.bind(component="loader", run_id=self._run_id)

    @property
    def config(self) -> LoaderConfig:
        """Get the loader configuration."""
        return self._config

    @property
    def warnings(self) -> list[Exception]:
        """Get non-fatal errors from the last ``get_data`` call."""
        with self._warnings_lock:
            return list(self._warnings)

    def cancel(self) -> None:
        """Abort the running ``get_data`` call.

        Pending retry waits end immediately and in-flight pages fail
        promptly. The next ``get_data`` call starts uncancelled.
        """
        self._fetcher.cancel_event.set()

    def get_data(self, force_refresh: bool = False) -> DatasetSnapshot:
        """Get the dataset, from the local snapshot when possible.

        Args:
            force_refresh: Refetch from the registry even if a snapshot exists.

        Returns:
            The dataset snapshot.

        Raises:
            FetchError: A page could not be fetched.
            RegistryError: A page was malformed or had no remembered body.
        """
        with self._warnings_lock:
            self._warnings = []
        self._fetcher.cancel_event.clear()

        if not force_refresh:
            snapshot = self.load_snapshot()
            if snapshot is not None and not self._is_expired(snapshot):
                self._log.info(
                    "snapshot_reused",
                    path=str(self._config.snapshot_path),
                    total_records=snapshot.metadata.total_records,
                )
                return snapshot
            self._log.info(
                "snapshot_refetching",
                reason="missing" if snapshot is None else "expired",
            )

        return self.refresh()

    def load_snapshot(self) -> DatasetSnapshot | None:
        """Read the snapshot file.

        Returns:
            The snapshot, or None if missing or unreadable.
        """
        path = self._config.snapshot_path
        if not path.exists():
            return None
        try:
            return DatasetSnapshot.from_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            self._log.warning("snapshot_corrupt", path=str(path), error=str(e))
            return None

    def refresh(self) -> DatasetSnapshot:
        """Fetch every listing page and replace the snapshot.

        Returns:
            The freshly built snapshot (even if it could not be saved).
        """
        log = self._log.bind(registry_url=self._config.registry_url)
        log.info("refresh_started", query=self._config.query)

        try:
            records = self._collect_records()
        finally:
            self._save_etags()

        snapshot = DatasetSnapshot.build(records)
        self._save_snapshot(snapshot)

        log.info(
            "refresh_complete",
            total_records=snapshot.metadata.total_records,
            core_count=snapshot.metadata.core_count,
            community_count=snapshot.metadata.community_count,
            warnings=len(self.warnings),
        )
        return snapshot

    def _collect_records(self) -> list[RegistryRecord]:
        """Page through the listing and merge records by id."""
        merged: dict[str, RegistryRecord] = {}

        first = self._fetch_page(1)
        total = first.meta.total
        if self._merge_records(merged, first.records) == 0:
            self._log.info("pagination_stopped", page=1, reason="empty_page")
            return list(merged.values())

        last_page = min(
            self._config.max_pages,
            max(1, math.ceil(total / self._config.per_page)),
        )

        if self._config.max_workers > 1 and last_page > 1:
            pages = self._fetch_pages_parallel(list(range(2, last_page + 1)))
            for page in sorted(pages):
                if not self._merge_next(merged, page, pages[page], total):
                    break
        else:
            page = 2
            while len(merged) < total and page <= self._config.max_pages:
                if not self._merge_next(merged, page, self._fetch_page(page), total):
                    break
                page += 1

        if len(merged) < total:
            self._log.info(
                "pagination_short",
                reported_total=total,
                merged=len(merged),
            )
        return list(merged.values())

    def _merge_next(
        self,
        merged: dict[str, RegistryRecord],
        page: int,
        listing: ListingPage,
        total: int,
    ) -> bool:
        """Merge one page; return False when pagination should stop."""
        if len(merged) >= total:
            return False
        added = self._merge_records(merged, listing.records)
        if added == 0:
            self._log.info("pagination_stopped", page=page, reason="empty_page")
            return False
        return True

    def _merge_records(
        self,
        merged: dict[str, RegistryRecord],
        records: list[RegistryRecord],
    ) -> int:
        """Merge records keyed by id.

        A duplicate only replaces the earlier entry when it reports a newer
        ``updated_at``; otherwise the first-seen entry wins.

        Returns:
            Number of ids not seen before.
        """
        added = 0
        for record in records:
            tagged = record.model_copy(
                update={"is_core_library": self._config.is_core(record.name)}
            )
            existing = merged.get(tagged.id)
            if existing is None:
                merged[tagged.id] = tagged
                added += 1
            elif tagged.is_newer_than(existing):
                merged[tagged.id] = tagged
        return added

    def _fetch_pages_parallel(self, pages: list[int]) -> dict[int, ListingPage]:
        """Fetch pages on a bounded worker pool.

        Every page runs to completion before the first failure (by page
        number) is raised, so one bad page does not hide the others.
        """
        results: dict[int, ListingPage] = {}
        errors: dict[int, Exception] = {}

        with ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="ratcrate-page",
        ) as pool:
            futures = {pool.submit(self._fetch_page, page): page for page in pages}
            try:
                for future in as_completed(futures):
                    page = futures[future]
                    try:
                        results[page] = future.result()
                    except Exception as e:
                        self._log.warning("page_failed", page=page, error=str(e))
                        errors[page] = e
            except KeyboardInterrupt:
                self.cancel()
                pool.shutdown(wait=False, cancel_futures=True)
                raise

        if errors:
            raise errors[min(errors)]
        return results

    def _fetch_page(self, page: int) -> ListingPage:
        """Fetch and parse one listing page.

        Unchanged pages are replayed from the page cache. If nothing usable
        is remembered, the page is refetched without a fingerprint.
        """
        url = self._config.page_url(page)
        outcome = self._fetcher.fetch(url, record_etag=False)

        if isinstance(outcome, Changed):
            return self._accept_page(url, outcome)

        cached = self._pages.get(url)
        if cached is not None:
            try:
                listing = self._parse_page(url, cached)
            except RegistryResponseError as e:
                self._log.warning("page_cache_corrupt", url=url, error=e.reason)
            else:
                self._log.debug("page_reused", page=page, url=url)
                return listing

        self._log.warning("page_cache_missing_refetching", page=page, url=url)
        outcome = self._fetcher.fetch(url, conditional=False, record_etag=False)
        if not isinstance(outcome, Changed):
            raise PageContentMissingError(url)
        return self._accept_page(url, outcome)

    def _accept_page(self, url: str, outcome: Changed) -> ListingPage:
        """Parse a fresh page body and remember it with its fingerprint.

        The fingerprint is recorded only after the body parsed and was
        stored, so a later 304 always replays the body it describes.
        """
        listing = self._parse_page(url, outcome.body)
        if self._remember_page(url, outcome.body) and outcome.etag:
            self._fetcher.etag_store.set(url, outcome.etag)
        return listing

    def _parse_page(self, url: str, body: bytes) -> ListingPage:
        try:
            return ListingPage.model_validate_json(body)
        except ValidationError as e:
            raise RegistryResponseError(url, str(e)) from e

    def _remember_page(self, url: str, body: bytes) -> bool:
        try:
            self._pages.put(url, body)
        except SnapshotPersistenceError as e:
            self._log.warning("page_cache_save_failed", url=url, error=e.reason)
            self._add_warning(e)
            return False
        return True

    def _save_etags(self) -> None:
        try:
            self._fetcher.etag_store.save()
        except CachePersistenceError as e:
            self._add_warning(e)

    def _save_snapshot(self, snapshot: DatasetSnapshot) -> None:
        path = self._config.snapshot_path
        try:
            atomic_write_text(path, snapshot.to_json())
        except OSError as e:
            self._log.warning("snapshot_save_failed", path=str(path), error=str(e))
            self._add_warning(SnapshotPersistenceError(str(path), str(e)))
            return
        self._log.info("snapshot_saved", path=str(path))

    def _is_expired(self, snapshot: DatasetSnapshot) -> bool:
        max_age = self._config.max_snapshot_age_hours
        if max_age is None:
            return False
        generated_at = snapshot.metadata.generated_at
        if generated_at.tzinfo is None:
            generated_at = generated_at.replace(tzinfo=UTC)
        return datetime.now(UTC) - generated_at > timedelta(hours=max_age)

    def _add_warning(self, error: Exception) -> None:
        with self._warnings_lock:
            self._warnings.append(error)
