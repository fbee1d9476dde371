"""Bounded retry with exponential backoff and jitter."""

import random
import threading
from collections.abc import Callable
from typing import TypeVar

import structlog

from ratcrate.fetch.constants import MAX_RETRY_AFTER_SECONDS
from ratcrate.fetch.errors import (
    FetchCancelledError,
    FetchError,
    RateLimitedError,
    RetryExhaustedError,
)
from ratcrate.fetch.metrics import FetchMetrics
from ratcrate.fetch.models import RetryPolicy


logger = structlog.get_logger()

T = TypeVar("T")


class RetryExecutor:
    """Runs an attempt closure until it succeeds, fails fatally or runs out.

    The executor knows nothing about HTTP: the policy's classifier decides
    which exceptions are worth another attempt. Backoff waits go through a
    cancellation event so an interrupt never sits out a long sleep.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
        run_id: str | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            policy: Retry policy (attempts, backoff, classifier).
            cancel_event: Event that aborts pending waits when set.
            sleep: Replacement wait function taking seconds (tests).
            rng: Random source for jitter.
            run_id: Optional run ID for logging context.
        """
        self._policy = policy
        self._cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._rng = rng
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="retry")
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    @property
    def policy(self) -> RetryPolicy:
        """Get the retry policy."""
        return self._policy

    @property
    def cancel_event(self) -> threading.Event:
        """Get the cancellation event."""
        return self._cancel_event

    def cancel(self) -> None:
        """Abort pending and future backoff waits."""
        self._cancel_event.set()

    def execute(
        self,
        attempt_fn: Callable[[], T],
        description: str = "attempt",
    ) -> T:
        """Run ``attempt_fn`` with retries.

        Args:
            attempt_fn: Zero-argument callable performing one attempt.
            description: Label for log events (usually the URL).

        Returns:
            The first successful result.

        Raises:
            RetryExhaustedError: After max_attempts retryable failures.
            FetchCancelledError: If cancelled while waiting.
            Exception: Any fatal error from attempt_fn, unchanged.
        """
        policy = self._policy
        log = self._log.bind(target=description, max_attempts=policy.max_attempts)

        for attempt in range(1, policy.max_attempts + 1):
            if self._cancel_event.is_set():
                raise FetchCancelledError(f"Cancelled before attempt {attempt}")

            try:
                return attempt_fn()
            except Exception as e:
                if not policy.is_retryable(e):
                    log.debug("attempt_fatal", attempt=attempt, error=str(e))
                    if isinstance(e, FetchError):
                        self._metrics.record_failure(e.error_class)
                    raise

                if attempt >= policy.max_attempts:
                    log.warning("retry_exhausted", attempts=attempt, error=str(e))
                    if isinstance(e, FetchError):
                        self._metrics.record_failure(e.error_class)
                    raise RetryExhaustedError(attempts=attempt, last_error=e) from e

                delay_s = self.compute_wait_seconds(attempt, e)
                self._metrics.record_retry()
                log.info(
                    "retry_scheduled",
                    attempt=attempt,
                    delay_ms=round(delay_s * 1000, 1),
                    error=str(e),
                )
                self._wait(delay_s)

        # max_attempts >= 1 guarantees the loop returns or raises
        raise AssertionError("unreachable")

    def compute_wait_seconds(self, attempt: int, error: BaseException) -> float:
        """Compute the wait after a failed attempt.

        Args:
            attempt: Index of the attempt that failed (1-indexed).
            error: The retryable failure.

        Returns:
            Seconds to wait before the next attempt.
        """
        delay_ms = self._policy.get_delay_ms(attempt)
        wait_s = self._policy.apply_jitter(delay_ms, self._rng) / 1000.0

        if isinstance(error, RateLimitedError) and error.retry_after:
            wait_s = max(wait_s, float(min(error.retry_after, MAX_RETRY_AFTER_SECONDS)))

        return wait_s

    def _wait(self, seconds: float) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
            if self._cancel_event.is_set():
                raise FetchCancelledError("Cancelled during backoff")
            return

        if self._cancel_event.wait(seconds):
            raise FetchCancelledError("Cancelled during backoff")
