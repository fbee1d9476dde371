"""User-facing messages for fetch and cache failures.

Separates "temporary, retried and gave up" from "the server rejected the
request" from "local cache problem" so the presentation layer can tell
the user what to do next.
"""

from typing import Final

from ratcrate.fetch.errors import (
    CachePersistenceError,
    ClientRequestError,
    FetchCancelledError,
    FetchError,
    RateLimitedError,
    RetryExhaustedError,
)
from ratcrate.registry.errors import (
    PageContentMissingError,
    RegistryResponseError,
    SnapshotPersistenceError,
)


ERROR_HINTS: Final[dict[str, str]] = {
    "retry_exhausted": (
        "The registry is temporarily unavailable (retried and gave up). "
        "Try again in a few minutes."
    ),
    "rate_limited": (
        "The registry is rate limiting requests. Wait a minute before refreshing."
    ),
    "rejected": (
        "The registry rejected the request. Check the registry URL and query."
    ),
    "cancelled": "The refresh was cancelled. The previous cache was kept.",
    "malformed": (
        "The registry returned data in an unexpected format. The previous "
        "cache was kept."
    ),
    "cache_missing": (
        "The local page cache is stale or missing and the registry refused "
        "to resend it. Delete the cache directory and refresh."
    ),
    "cache_write": (
        "Could not write the local cache. Results are shown but will be "
        "refetched next time. Check disk space and permissions."
    ),
    "unknown": "The request failed.",
}


def get_error_hint(error: BaseException) -> str:
    """Get the remediation hint for an error.

    Args:
        error: Exception raised by the fetch or cache layer.

    Returns:
        A user-friendly hint string.
    """
    if isinstance(error, RetryExhaustedError):
        if isinstance(error.last_error, RateLimitedError):
            return ERROR_HINTS["rate_limited"]
        return ERROR_HINTS["retry_exhausted"]
    if isinstance(error, RateLimitedError):
        return ERROR_HINTS["rate_limited"]
    if isinstance(error, ClientRequestError):
        return ERROR_HINTS["rejected"]
    if isinstance(error, FetchCancelledError):
        return ERROR_HINTS["cancelled"]
    if isinstance(error, RegistryResponseError):
        return ERROR_HINTS["malformed"]
    if isinstance(error, PageContentMissingError):
        return ERROR_HINTS["cache_missing"]
    if isinstance(error, (CachePersistenceError, SnapshotPersistenceError)):
        return ERROR_HINTS["cache_write"]
    return ERROR_HINTS["unknown"]


def describe_error(error: BaseException) -> str:
    """Format an error with its hint for display.

    Args:
        error: Exception raised by the fetch or cache layer.

    Returns:
        Message of the form "<what happened>. <hint>".
    """
    if isinstance(error, FetchError):
        detail = error.message
        if error.status_code is not None and str(error.status_code) not in detail:
            detail = f"{detail} (HTTP {error.status_code})"
    else:
        detail = str(error)
    return f"{detail.rstrip('.')}. {get_error_hint(error)}"
