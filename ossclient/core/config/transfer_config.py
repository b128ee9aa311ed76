"""Pydantic models for object transfer configuration."""

from pydantic import BaseModel, Field

from ossclient.core.const import (
    API_URL,
    DEFAULT_BATCH_CAP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_STREAM_READ_SIZE,
)


class RetryPolicy(BaseModel):
    """Bounded retry policy for recoverable transfer failures.

    Attributes:
        max_attempts: total attempts per part, including the first one.
        backoff_base_seconds: delay before the second attempt; doubles after
            every further attempt.
        backoff_max_seconds: upper bound for a single delay.
    """

    max_attempts: int = Field(default=5, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=30.0, ge=0)

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay to wait after the given zero-based failed attempt."""
        return min(self.backoff_base_seconds * 2**attempt, self.backoff_max_seconds)


class TransferConfig(BaseModel):
    """Configuration options for chunked transfers.

    Attributes:
        api_url: base URL of the object storage service.
        chunk_size: size in bytes of every uploaded part except the last.
        batch_cap: maximum number of signed URLs requested per batch.
        stream_read_size: block size used when streaming a download.
        request_timeout: timeout in seconds passed to every HTTP request.
        use_acceleration: ask the service for accelerated (CDN) download URLs.
        retry: retry policy applied when a signed URL batch expires.
    """

    api_url: str = API_URL
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    batch_cap: int = Field(default=DEFAULT_BATCH_CAP, ge=1)
    stream_read_size: int = Field(default=DEFAULT_STREAM_READ_SIZE, ge=1)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    use_acceleration: bool = True
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
