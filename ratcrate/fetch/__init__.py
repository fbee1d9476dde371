"""HTTP fetch layer with ETag caching and retries.

This module provides resilient HTTP fetch operations with:
- ETag conditional requests keyed by a persisted URL -> fingerprint map
- Configurable retry policy with exponential backoff and jitter
- Maximum response size enforcement
- Metrics collection for observability
"""

from ratcrate.fetch.client import HttpFetcher
from ratcrate.fetch.conditional import ConditionalFetcher, parse_retry_after
from ratcrate.fetch.config import FetchConfig
from ratcrate.fetch.constants import (
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    HTTP_STATUS_NOT_MODIFIED,
    MAX_RETRY_AFTER_SECONDS,
)
from ratcrate.fetch.errors import (
    CachePersistenceError,
    ClientRequestError,
    FetchCancelledError,
    FetchError,
    FetchErrorClass,
    RateLimitedError,
    ResponseSizeExceededError,
    RetryExhaustedError,
    TransientNetworkError,
    UnexpectedStatusError,
)
from ratcrate.fetch.etag_store import ETagStore
from ratcrate.fetch.metrics import FetchMetrics
from ratcrate.fetch.models import Changed, FetchOutcome, RetryPolicy, Unchanged
from ratcrate.fetch.retry import RetryExecutor


__all__ = [
    # Client
    "HttpFetcher",
    "ConditionalFetcher",
    "RetryExecutor",
    "parse_retry_after",
    # Cache
    "ETagStore",
    # Config
    "FetchConfig",
    # Models
    "Changed",
    "FetchOutcome",
    "RetryPolicy",
    "Unchanged",
    # Errors
    "CachePersistenceError",
    "ClientRequestError",
    "FetchCancelledError",
    "FetchError",
    "FetchErrorClass",
    "RateLimitedError",
    "ResponseSizeExceededError",
    "RetryExhaustedError",
    "TransientNetworkError",
    "UnexpectedStatusError",
    # Constants
    "DEFAULT_MAX_RESPONSE_SIZE_BYTES",
    "DEFAULT_TIMEOUT_SECONDS",
    "HTTP_STATUS_NOT_MODIFIED",
    "MAX_RETRY_AFTER_SECONDS",
    # Metrics
    "FetchMetrics",
]
