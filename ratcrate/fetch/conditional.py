"""Single conditional HTTP GET with response classification."""

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from io import BytesIO

import httpx
import structlog

from ratcrate.fetch.config import FetchConfig
from ratcrate.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from ratcrate.fetch.errors import (
    ClientRequestError,
    FetchError,
    FetchErrorClass,
    RateLimitedError,
    ResponseSizeExceededError,
    TransientNetworkError,
    UnexpectedStatusError,
)
from ratcrate.fetch.metrics import FetchMetrics
from ratcrate.fetch.models import Changed, FetchOutcome, Unchanged


logger = structlog.get_logger()


class ConditionalFetcher:
    """Issues one HTTP GET, conditional on a known fingerprint.

    Classifies the response as ``Unchanged`` (304) or ``Changed`` (2xx) and
    raises a ``FetchError`` subclass for everything else. Never touches the
    ETag store; recording a new fingerprint is the caller's job.
    """

    def __init__(
        self,
        config: FetchConfig,
        transport: httpx.BaseTransport | None = None,
        run_id: str | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Fetch configuration.
            transport: Optional httpx transport (e.g. MockTransport in tests).
            run_id: Optional run ID for logging context.
        """
        self._config = config
        self._transport = transport
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    def fetch_conditional(
        self,
        url: str,
        known_etag: str | None = None,
    ) -> FetchOutcome:
        """Fetch a URL, asking the server to skip the body if unchanged.

        Args:
            url: The URL to fetch.
            known_etag: Fingerprint from the last successful fetch, if any.

        Returns:
            Unchanged or Changed outcome.

        Raises:
            FetchError: On transport failure or non-success status.
        """
        headers = self._config.build_headers()
        if known_etag:
            headers["If-None-Match"] = known_etag

        log = self._log.bind(url=url, conditional=known_etag is not None)

        try:
            with (
                httpx.Client(
                    timeout=self._config.timeout_seconds,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client,
                client.stream("GET", url, headers=headers) as response,
            ):
                if response.status_code == HTTP_STATUS_NOT_MODIFIED:
                    self._metrics.record_request(response.status_code, 0)
                    self._metrics.record_not_modified()
                    log.debug("fetch_not_modified")
                    return Unchanged(url=url)

                self._raise_for_status(url, response)

                body = self._read_body_with_limit(url, response)
                self._metrics.record_request(response.status_code, len(body))
                etag = response.headers.get("etag")
                log.debug(
                    "fetch_changed",
                    status_code=response.status_code,
                    bytes=len(body),
                    has_etag=etag is not None,
                )
                return Changed(
                    url=url,
                    body=body,
                    etag=etag,
                    status_code=response.status_code,
                )

        except httpx.TimeoutException as e:
            raise TransientNetworkError(
                error_class=FetchErrorClass.NETWORK_TIMEOUT,
                message=f"Request timed out: {e}",
                url=url,
            ) from e

        except httpx.TransportError as e:
            raise TransientNetworkError(
                error_class=FetchErrorClass.CONNECTION_ERROR,
                message=f"Connection failed: {e}",
                url=url,
            ) from e

    def _raise_for_status(self, url: str, response: httpx.Response) -> None:
        """Raise the matching FetchError for a non-2xx status.

        Args:
            url: Requested URL.
            response: HTTP response (body not yet read).
        """
        status_code = response.status_code
        if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
            return

        self._metrics.record_request(status_code, 0)
        error: FetchError

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            error = RateLimitedError(
                message="Rate limited (429 Too Many Requests)",
                url=url,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )
        elif HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
            error = ClientRequestError(
                message=f"Client error ({status_code})",
                url=url,
                status_code=status_code,
            )
        elif HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            error = TransientNetworkError(
                error_class=FetchErrorClass.HTTP_5XX,
                message=f"Server error ({status_code})",
                url=url,
                status_code=status_code,
            )
        else:
            error = UnexpectedStatusError(url=url, status_code=status_code)

        raise error

    def _read_body_with_limit(self, url: str, response: httpx.Response) -> bytes:
        """Read response body with size limit.

        Args:
            url: Requested URL.
            response: Streaming HTTP response.

        Returns:
            Response body bytes.

        Raises:
            ResponseSizeExceededError: If the body exceeds the limit.
        """
        max_size = self._config.max_response_size_bytes

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            msg = f"Response size {content_length} exceeds limit {max_size}"
            raise ResponseSizeExceededError(msg, url=url)

        buffer = BytesIO()
        total_read = 0
        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise ResponseSizeExceededError(msg, url=url)
            buffer.write(chunk)

        return buffer.getvalue()


def parse_retry_after(value: str | None) -> int | None:
    """Parse Retry-After header value.

    Args:
        value: Header value (seconds or HTTP date).

    Returns:
        Seconds to wait, or None if not parseable.
    """
    if not value:
        return None

    try:
        return max(0, int(value))
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta = dt - datetime.now(UTC)
    return max(0, int(delta.total_seconds()))
