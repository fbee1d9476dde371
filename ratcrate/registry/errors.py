"""Domain exceptions for the registry dataset loader.

Fetch failures keep their own hierarchy in ``ratcrate.fetch.errors``; this
module covers what goes wrong around them: malformed listings, unchanged
pages with nothing remembered, and snapshots that cannot be written.
"""


class RegistryError(Exception):
    """Base exception for all dataset loader errors."""


class RegistryResponseError(RegistryError):
    """Raised when a listing page cannot be parsed.

    The body arrived intact but is not valid JSON or does not match the
    expected ``{records, meta}`` shape.
    """

    def __init__(self, url: str, reason: str) -> None:
        """Initialize the error.

        Args:
            url: Listing page URL.
            reason: What was wrong with the body.
        """
        self.url = url
        self.reason = reason
        super().__init__(f"Malformed registry response from {url}: {reason}")


class PageContentMissingError(RegistryError):
    """Raised when a page is reported unchanged but no copy is remembered.

    The loader refetches such pages unconditionally once; this error means
    the server kept answering "not modified" even without a fingerprint.
    """

    def __init__(self, url: str) -> None:
        """Initialize the error.

        Args:
            url: Page URL with no remembered body.
        """
        self.url = url
        super().__init__(f"Page unchanged but no cached copy exists: {url}")


class SnapshotPersistenceError(RegistryError):
    """Raised when the dataset snapshot cannot be written.

    Warning-class: the freshly fetched snapshot is still usable in memory.
    """

    def __init__(self, path: str, reason: str) -> None:
        """Initialize the error.

        Args:
            path: Snapshot or page file that could not be written.
            reason: Underlying OS error message.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write {path}: {reason}")
