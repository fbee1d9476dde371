"""Configuration models for the HTTP fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ratcrate.fetch.constants import (
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from ratcrate.fetch.models import RetryPolicy


class FetchConfig(BaseModel):
    """Configuration for the HTTP fetch layer.

    Central configuration for all HTTP fetch operations including
    timeouts, retry policy and request headers.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_TIMEOUT_SECONDS
    )
    max_response_size_bytes: Annotated[int, Field(ge=1024, le=100 * 1024 * 1024)] = (
        DEFAULT_MAX_RESPONSE_SIZE_BYTES
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    extra_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers added to every request"
    )

    @field_validator("extra_headers")
    @classmethod
    def validate_no_conditional_headers(cls, v: dict[str, str]) -> dict[str, str]:
        """Keep conditional headers under the fetcher's control."""
        reserved = {"if-none-match", "if-modified-since"}
        for key in v:
            if key.lower() in reserved:
                msg = f"Header '{key}' is managed by the ETag cache"
                raise ValueError(msg)
        return v

    def build_headers(self) -> dict[str, str]:
        """Build the base request headers.

        Returns:
            Headers sent with every request before conditional headers.
        """
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        headers.update(self.extra_headers)
        return headers
