"""Error types for the HTTP fetch layer.

Fetch failures are raised as exceptions carrying a ``FetchErrorClass`` so
that the retry executor can decide between retrying and giving up without
inspecting messages.
"""

from enum import Enum


class FetchErrorClass(str, Enum):
    """Classification of fetch errors for metrics and retry decisions.

    - NETWORK_TIMEOUT: Request exceeded its deadline
    - CONNECTION_ERROR: Could not establish or keep a connection
    - HTTP_4XX: Client error, the request itself is wrong
    - HTTP_5XX: Server error
    - RATE_LIMITED: 429 Too Many Requests
    - UNEXPECTED_STATUS: Status outside 2xx/304/4xx/5xx
    - RESPONSE_SIZE_EXCEEDED: Response exceeded max size limit
    - RETRY_EXHAUSTED: All attempts failed with transient errors
    - CANCELLED: Aborted while waiting to retry
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    UNEXPECTED_STATUS = "UNEXPECTED_STATUS"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CANCELLED = "CANCELLED"


class FetchError(Exception):
    """Base exception for fetch failures.

    Provides structured error information for logging and retry decisions.
    """

    def __init__(
        self,
        error_class: FetchErrorClass,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize the fetch error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            url: URL that was being fetched.
            status_code: HTTP status code if a response was received.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.url = url
        self.status_code = status_code

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "url": self.url,
            "status_code": self.status_code,
        }


class TransientNetworkError(FetchError):
    """Timeout, connection failure or 5xx response."""


class ClientRequestError(FetchError):
    """The server rejected the request (4xx)."""

    def __init__(self, message: str, url: str | None, status_code: int) -> None:
        """Initialize the client error.

        Args:
            message: Human-readable error message.
            url: URL that was rejected.
            status_code: HTTP status code (4xx).
        """
        super().__init__(
            error_class=FetchErrorClass.HTTP_4XX,
            message=message,
            url=url,
            status_code=status_code,
        )


class RateLimitedError(ClientRequestError):
    """429 Too Many Requests, optionally with a Retry-After hint."""

    def __init__(
        self,
        message: str,
        url: str | None,
        retry_after: int | None = None,
    ) -> None:
        """Initialize the rate limit error.

        Args:
            message: Human-readable error message.
            url: URL that was rate limited.
            retry_after: Seconds the server asked us to wait.
        """
        super().__init__(message=message, url=url, status_code=429)
        self.error_class = FetchErrorClass.RATE_LIMITED
        self.retry_after = retry_after


class UnexpectedStatusError(FetchError):
    """Status code that is neither success, not-modified nor an error class."""

    def __init__(self, url: str | None, status_code: int) -> None:
        """Initialize the error.

        Args:
            url: URL that was fetched.
            status_code: The unexpected status code.
        """
        super().__init__(
            error_class=FetchErrorClass.UNEXPECTED_STATUS,
            message=f"Unexpected status ({status_code})",
            url=url,
            status_code=status_code,
        )


class ResponseSizeExceededError(FetchError):
    """Raised when response size exceeds the configured limit."""

    def __init__(self, message: str, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            url: URL whose response was too large.
        """
        super().__init__(
            error_class=FetchErrorClass.RESPONSE_SIZE_EXCEEDED,
            message=message,
            url=url,
        )


class RetryExhaustedError(FetchError):
    """All attempts failed with retryable errors."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        """Initialize the error.

        Args:
            attempts: Number of attempts made.
            last_error: The failure observed on the final attempt.
        """
        url = last_error.url if isinstance(last_error, FetchError) else None
        status_code = (
            last_error.status_code if isinstance(last_error, FetchError) else None
        )
        super().__init__(
            error_class=FetchErrorClass.RETRY_EXHAUSTED,
            message=f"Gave up after {attempts} attempts: {last_error}",
            url=url,
            status_code=status_code,
        )
        self.attempts = attempts
        self.last_error = last_error


class FetchCancelledError(FetchError):
    """Raised when a pending backoff wait is cancelled."""

    def __init__(self, message: str = "Fetch cancelled") -> None:
        """Initialize the cancellation error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(error_class=FetchErrorClass.CANCELLED, message=message)


class CachePersistenceError(Exception):
    """The ETag cache could not be written to disk.

    Warning-class: the fetch that produced the fingerprints already succeeded.
    """

    def __init__(self, path: str, reason: str) -> None:
        """Initialize the persistence error.

        Args:
            path: File that could not be written.
            reason: Underlying OS error message.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write ETag cache {path}: {reason}")
