"""Remembered listing page bodies for not-modified responses."""

import hashlib
from pathlib import Path

import structlog

from ratcrate.io import atomic_write_text
from ratcrate.registry.errors import SnapshotPersistenceError


logger = structlog.get_logger()


class PageCache:
    """Stores the last body received for each listing page URL.

    When the server answers 304 for a page, the loader replays the body
    kept here. Files are keyed by a hash of the exact request URL.
    """

    def __init__(self, directory: Path, run_id: str | None = None) -> None:
        """Initialize the page cache.

        Args:
            directory: Directory holding one file per page URL.
            run_id: Optional run ID for logging context.
        """
        self._directory = directory
        self._log = logger.bind(component="page_cache", directory=str(directory))
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    def path_for(self, url: str) -> Path:
        """Get the file used for a page URL."""
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:24]
        return self._directory / f"{digest}.json"

    def get(self, url: str) -> bytes | None:
        """Get the remembered body for a page.

        Args:
            url: Exact page URL.

        Returns:
            Body bytes, or None if never stored or unreadable.
        """
        path = self.path_for(url)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            self._log.warning("page_cache_unreadable", url=url, error=str(e))
            return None

    def put(self, url: str, body: bytes) -> None:
        """Remember the body for a page.

        Args:
            url: Exact page URL.
            body: Response body (JSON text).

        Raises:
            SnapshotPersistenceError: If the file cannot be written.
        """
        path = self.path_for(url)
        try:
            atomic_write_text(path, body.decode("utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotPersistenceError(str(path), str(e)) from e
