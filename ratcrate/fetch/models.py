"""Data models for the HTTP fetch layer."""

import random
from collections.abc import Callable
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ratcrate.fetch.constants import HTTP_STATUS_NOT_MODIFIED
from ratcrate.fetch.errors import FetchError, FetchErrorClass


DEFAULT_RETRYABLE_CLASSES = frozenset(
    {
        FetchErrorClass.NETWORK_TIMEOUT,
        FetchErrorClass.CONNECTION_ERROR,
        FetchErrorClass.HTTP_5XX,
        FetchErrorClass.RATE_LIMITED,
    }
)


class Unchanged(BaseModel):
    """The server confirmed the known fingerprint is still current."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["unchanged"] = "unchanged"
    url: Annotated[str, Field(min_length=1)]
    status_code: int = HTTP_STATUS_NOT_MODIFIED

    @property
    def changed(self) -> bool:
        """Whether a fresh body was received."""
        return False


class Changed(BaseModel):
    """The server sent a fresh body and optionally a new fingerprint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["changed"] = "changed"
    url: Annotated[str, Field(min_length=1)]
    body: bytes = Field(default=b"", description="Response body")
    etag: str | None = Field(default=None, description="ETag header, if any")
    status_code: int = Field(default=200, ge=200, le=299)

    @property
    def changed(self) -> bool:
        """Whether a fresh body was received."""
        return True

    @property
    def body_size(self) -> int:
        """Get the size of the response body in bytes."""
        return len(self.body)


FetchOutcome = Unchanged | Changed


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff with symmetric jitter:
    delay = min(max_delay_ms, base_delay_ms * multiplier ^ (attempt - 1))
    sleep = delay +/- delay * jitter_factor
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: Annotated[int, Field(ge=1, le=20)] = 4
    base_delay_ms: Annotated[float, Field(ge=0, le=60000)] = 1000
    max_delay_ms: Annotated[float, Field(ge=0, le=300000)] = 30000
    multiplier: Annotated[float, Field(ge=1.0, le=10.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    retryable_classes: frozenset[FetchErrorClass] = DEFAULT_RETRYABLE_CLASSES
    classifier: Callable[[BaseException], bool] | None = Field(
        default=None,
        exclude=True,
        description="Overrides the class-based retryable decision",
    )

    def is_retryable(self, error: BaseException) -> bool:
        """Decide whether a failed attempt is worth repeating.

        Args:
            error: The exception raised by the attempt.

        Returns:
            True if the attempt should be retried.
        """
        if self.classifier is not None:
            return self.classifier(error)
        if not isinstance(error, FetchError):
            return False
        return error.error_class in self.retryable_classes

    def get_delay_ms(self, attempt: int) -> float:
        """Calculate the pre-jitter delay after a failed attempt.

        Args:
            attempt: Index of the attempt that just failed (1-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)

    def apply_jitter(self, delay_ms: float, rng: random.Random | None = None) -> float:
        """Perturb a delay to avoid synchronized retry storms.

        Args:
            delay_ms: Pre-jitter delay in milliseconds.
            rng: Random source (module-level generator if omitted).

        Returns:
            Jittered delay in milliseconds, never negative.
        """
        uniform = rng.uniform if rng is not None else random.uniform
        jitter = delay_ms * self.jitter_factor * uniform(-1.0, 1.0)
        return max(0.0, delay_ms + jitter)
