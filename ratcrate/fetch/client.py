"""HTTP client with ETag caching and retries."""

import threading
import time

import httpx
import structlog

from ratcrate.fetch.conditional import ConditionalFetcher
from ratcrate.fetch.config import FetchConfig
from ratcrate.fetch.etag_store import ETagStore
from ratcrate.fetch.metrics import FetchMetrics
from ratcrate.fetch.models import Changed, FetchOutcome
from ratcrate.fetch.retry import RetryExecutor


logger = structlog.get_logger()


class HttpFetcher:
    """HTTP client with caching and retry support.

    Composes the ETag store, a conditional fetcher and a retry executor:
    - looks up the known fingerprint for the URL
    - runs the conditional GET under the retry policy
    - records the new fingerprint once a fresh body arrives
    """

    def __init__(
        self,
        config: FetchConfig,
        etag_store: ETagStore,
        transport: httpx.BaseTransport | None = None,
        executor: RetryExecutor | None = None,
        run_id: str | None = None,
    ) -> None:
        """Initialize the HTTP fetcher.

        Args:
            config: Fetch configuration.
            etag_store: Store of known fingerprints.
            transport: Optional httpx transport for the conditional fetcher.
            executor: Retry executor (built from config if omitted).
            run_id: Optional run ID for logging.
        """
        self._config = config
        self._etags = etag_store
        self._conditional = ConditionalFetcher(config, transport=transport, run_id=run_id)
        self._executor = executor or RetryExecutor(config.retry_policy, run_id=run_id)
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    @property
    def etag_store(self) -> ETagStore:
        """Get the ETag store."""
        return self._etags

    @property
    def cancel_event(self) -> threading.Event:
        """Get the event that aborts pending retries."""
        return self._executor.cancel_event

    def fetch(
        self,
        url: str,
        conditional: bool = True,
        record_etag: bool = True,
    ) -> FetchOutcome:
        """Fetch a URL with caching and retry support.

        Args:
            url: The URL to fetch.
            conditional: If False, ignore any known fingerprint.
            record_etag: If False, leave the store untouched so the caller
                can record the fingerprint once it has accepted the body.

        Returns:
            Unchanged or Changed outcome.

        Raises:
            FetchError: Fatal failure or retries exhausted.
        """
        start_time_ns = time.perf_counter_ns()
        known_etag = self._etags.get(url) if conditional else None

        outcome = self._executor.execute(
            lambda: self._conditional.fetch_conditional(url, known_etag),
            description=url,
        )

        if record_etag and isinstance(outcome, Changed) and outcome.etag:
            self._etags.set(url, outcome.etag)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_duration(duration_ms)

        self._log.info(
            "fetch_complete",
            url=url,
            status_code=outcome.status_code,
            changed=outcome.changed,
            bytes=outcome.body_size if isinstance(outcome, Changed) else 0,
            duration_ms=round(duration_ms, 2),
        )
        return outcome
