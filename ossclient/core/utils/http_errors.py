"""HTTP error helpers for mapping service responses to client errors."""

from __future__ import annotations

from typing import Any

import requests

from ossclient.core.exceptions import (
    AuthorizationExpired,
    InvalidRequest,
    NotFound,
    TransferError,
)

SUCCESS_STATUS_CODES = frozenset({200, 201, 202, 204, 206})


def extract_error_detail(response: requests.Response) -> str | None:
    """Extract error detail from an HTTP error response."""
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text

    if not isinstance(payload, dict):
        return str(payload)

    for key in ("reason", "developerMessage", "detail", "error"):
        if payload.get(key):
            return str(payload[key])
    return str(payload)


def raise_for_transfer_status(response: requests.Response, action: str) -> None:
    """Raise the matching client error for a non-success response.

    Args:
        response: Response returned by the service or a signed URL.
        action: Short description of the request, used in error messages.

    Raises:
        InvalidRequest: On HTTP 400.
        AuthorizationExpired: On HTTP 401 or 403.
        NotFound: On HTTP 404.
        TransferError: On any other non-success status.
    """
    status_code = response.status_code
    if status_code in SUCCESS_STATUS_CODES:
        return

    detail = extract_error_detail(response)
    message = f"{action} failed with HTTP {status_code}"
    if detail:
        message = f"{message}: {detail}"

    if status_code == 400:
        raise InvalidRequest(message, status_code=status_code, detail=detail)
    if status_code in (401, 403):
        raise AuthorizationExpired(message, status_code=status_code, detail=detail)
    if status_code == 404:
        raise NotFound(message, status_code=status_code, detail=detail)
    raise TransferError(message, status_code=status_code, detail=detail)
