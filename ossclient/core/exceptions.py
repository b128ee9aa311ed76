"""Exception classes for the object storage client."""

from __future__ import annotations


class OssClientError(Exception):
    """Base error for the object storage client."""


class TransferError(OssClientError):
    """Raised when the service answers a transfer request with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ):
        """Initialize TransferError.

        Args:
            message: Human readable description of the failure.
            status_code: HTTP status code returned by the service, if any.
            detail: Error detail extracted from the response body, if any.
        """
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthorizationExpired(TransferError):
    """Raised when a signed URL or access token was rejected as expired."""


class InvalidRequest(TransferError):
    """Raised when part counts, part indices or payloads are malformed."""


class NotFound(TransferError):
    """Raised when the target bucket or object does not exist."""


class NotReady(TransferError):
    """Raised when an object cannot be downloaded in the requested way yet."""


class MalformedRangeHeader(OssClientError, ValueError):
    """Raised when a resumable status range header cannot be parsed."""


class InternalError(OssClientError):
    """Raised when an internal invariant of the transfer engine is violated."""


class AuthenticationError(OssClientError):
    """Raised when an access token cannot be obtained."""


class ConfigLoadError(OssClientError):
    """Raised when client configuration cannot be loaded or validated."""
