"""Persistent URL -> ETag mapping for conditional requests."""

import json
import threading
from pathlib import Path
from types import TracebackType

import structlog

from ratcrate.fetch.errors import CachePersistenceError
from ratcrate.io import atomic_write_text


logger = structlog.get_logger()


class ETagStore:
    """JSON-file backed ETag cache.

    The file holds a single JSON object mapping request URL to the last
    fingerprint the server returned for it. The in-memory mapping is
    authoritative during a run and replaces the file on ``save()``.

    A missing or corrupt file degrades to an empty cache: every URL is then
    fetched unconditionally instead of failing the caller.
    """

    def __init__(self, path: Path | str, run_id: str | None = None) -> None:
        """Initialize the store.

        Args:
            path: Location of the JSON cache file.
            run_id: Optional run ID for logging context.
        """
        self._path = Path(path)
        self._etags: dict[str, str] = {}
        self._loaded = False
        self._lock = threading.Lock()
        self._log = logger.bind(component="etag_store", path=str(self._path))
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    @property
    def path(self) -> Path:
        """Get the backing file path."""
        return self._path

    def load(self) -> dict[str, str]:
        """Read the backing file into memory.

        Returns:
            Copy of the loaded mapping (empty if the file is missing or bad).
        """
        etags = self._read_file()
        with self._lock:
            self._etags = etags
            self._loaded = True
            return dict(self._etags)

    def get(self, url: str) -> str | None:
        """Get the fingerprint stored for a URL.

        Args:
            url: Exact request URL.

        Returns:
            The ETag, or None if the URL has never succeeded.
        """
        self._ensure_loaded()
        with self._lock:
            return self._etags.get(url)

    def set(self, url: str, etag: str) -> None:
        """Insert or overwrite the fingerprint for a URL.

        Args:
            url: Exact request URL.
            etag: Fingerprint from a successful response.
        """
        self._ensure_loaded()
        with self._lock:
            self._etags[url] = etag

    def snapshot(self) -> dict[str, str]:
        """Get a copy of the current mapping."""
        self._ensure_loaded()
        with self._lock:
            return dict(self._etags)

    def save(self) -> None:
        """Persist the full mapping, replacing the backing file atomically.

        Raises:
            CachePersistenceError: If the file cannot be written.
        """
        self._ensure_loaded()
        with self._lock:
            payload = json.dumps(self._etags, indent=2, sort_keys=True)
            count = len(self._etags)
        try:
            atomic_write_text(self._path, payload)
        except OSError as e:
            self._log.warning("etag_cache_save_failed", error=str(e))
            raise CachePersistenceError(str(self._path), str(e)) from e
        self._log.debug("etag_cache_saved", entries=count)

    def close(self) -> None:
        """Flush the mapping to disk if it was ever loaded."""
        if self._loaded:
            self.save()

    def __len__(self) -> int:
        with self._lock:
            return len(self._etags)

    def __enter__(self) -> "ETagStore":
        self._ensure_loaded()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._etags = self._read_file()
            self._loaded = True

    def _read_file(self) -> dict[str, str]:
        """Parse the backing file, substituting an empty mapping on any problem."""
        if not self._path.exists():
            return {}

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (
            OSError,
            UnicodeDecodeError,
            json.JSONDecodeError,
            RecursionError,
        ) as e:
            self._log.warning("etag_cache_corrupt", error=str(e))
            return {}

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            self._log.warning("etag_cache_corrupt", error="expected a string map")
            return {}

        self._log.debug("etag_cache_loaded", entries=len(data))
        return data
