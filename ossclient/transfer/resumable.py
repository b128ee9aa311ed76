"""Legacy resumable upload sessions.

Before signed part URLs, objects were uploaded through a resumable endpoint:
each request carries a ``Content-Range`` for its slice and a caller-chosen
``Session-Id``, and the status endpoint reports already stored slices in a
``Range`` response header of the form ``bytes=0-99,200-299``.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

import requests

from ossclient.core.auth import TokenProvider
from ossclient.core.config.transfer_config import TransferConfig
from ossclient.core.const import OSS_ROOT_PATH, READ_TOKEN_SCOPES, WRITE_TOKEN_SCOPES
from ossclient.core.exceptions import InvalidRequest, MalformedRangeHeader
from ossclient.core.utils.http_errors import raise_for_transfer_status
from ossclient.transfer.models import TransferTarget, UploadedRange

logger = logging.getLogger(__name__)

_RANGE_HEADER_PATTERN = re.compile(r"bytes=(\d+-\d+(?:,\d+-\d+)*)", re.ASCII)

DEFAULT_CONTENT_TYPE = "application/stream"


def parse_uploaded_ranges(range_header_value: str) -> list[UploadedRange]:
    """Parse a resumable status ``Range`` header into uploaded ranges.

    Args:
        range_header_value: Header value such as ``"bytes=0-99,200-299"``.

    Returns:
        The ranges in header order.

    Raises:
        MalformedRangeHeader: If the value does not match the
            ``bytes=a-b,c-d,...`` grammar, or ranges are reversed,
            overlapping or out of order.
    """
    match = _RANGE_HEADER_PATTERN.fullmatch(range_header_value or "")
    if match is None:
        raise MalformedRangeHeader(f"Unexpected range format: {range_header_value!r}")

    ranges: list[UploadedRange] = []
    for token in match.group(1).split(","):
        start_text, end_text = token.split("-")
        start, end = int(start_text), int(end_text)
        if end < start:
            raise MalformedRangeHeader(f"Range {token} ends before it starts")
        if ranges and start <= ranges[-1].end:
            raise MalformedRangeHeader(
                f"Range {token} overlaps or precedes {ranges[-1].start}-"
                f"{ranges[-1].end}"
            )
        ranges.append(UploadedRange(start=start, end=end))
    return ranges


def missing_ranges(
    uploaded: list[UploadedRange], total_bytes: int
) -> list[UploadedRange]:
    """Return the gaps of ``[0, total_bytes)`` not covered by ``uploaded``."""
    gaps: list[UploadedRange] = []
    cursor = 0
    for uploaded_range in uploaded:
        if uploaded_range.start > cursor:
            gaps.append(UploadedRange(start=cursor, end=uploaded_range.start - 1))
        cursor = max(cursor, uploaded_range.end + 1)
    if cursor < total_bytes:
        gaps.append(UploadedRange(start=cursor, end=total_bytes - 1))
    return gaps


class ResumableUploadSession:
    """Handles a legacy resumable upload session for one object.

    The session id is chosen by the caller, so an interrupted upload can be
    continued from another process by creating a new session object with the
    same id, asking for its ``status`` and uploading the missing ranges.
    """

    def __init__(
        self,
        auth: TokenProvider,
        target: TransferTarget,
        session_id: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        config: TransferConfig | None = None,
    ):
        """Initialize a resumable upload session.

        Args:
            auth: Provides authorization headers for service calls.
            target: Object being uploaded.
            session_id: Caller-chosen identifier of the session.
            content_type: MIME type of the object.
            config: Transfer configuration; defaults are used when omitted.
        """
        if not session_id:
            raise InvalidRequest("A resumable session id is required")
        self.target = target
        self.session_id = session_id
        self.content_type = content_type
        self._auth = auth
        self._config = config or TransferConfig()

    def _object_url(self, suffix: str) -> str:
        base = self._config.api_url.rstrip("/")
        bucket = quote(self.target.container_id, safe="")
        key = quote(self.target.object_key, safe="")
        return f"{base}/{OSS_ROOT_PATH}/buckets/{bucket}/objects/{key}/{suffix}"

    def upload_chunk(self, data: bytes, byte_offset: int, total_bytes: int) -> None:
        """Upload one slice of the object.

        Args:
            data: Slice content.
            byte_offset: Position of the slice in the object.
            total_bytes: Total size of the object.

        Raises:
            InvalidRequest: If the slice is empty or exceeds ``total_bytes``.
        """
        if not data:
            raise InvalidRequest("Cannot upload an empty slice")
        last_byte = byte_offset + len(data) - 1
        if byte_offset < 0 or last_byte >= total_bytes:
            raise InvalidRequest(
                f"Slice {byte_offset}-{last_byte} does not fit in {total_bytes} bytes"
            )

        headers = dict(self._auth.get_headers(WRITE_TOKEN_SCOPES))
        headers.update(
            {
                "Content-Type": self.content_type,
                "Content-Length": str(len(data)),
                "Content-Range": f"bytes {byte_offset}-{last_byte}/{total_bytes}",
                "Session-Id": self.session_id,
            }
        )
        logger.info(
            "PUT resumable chunk: target=%s session=%s range=%s",
            self.target,
            self.session_id,
            headers["Content-Range"],
        )
        response = requests.put(
            self._object_url("resumable"),
            headers=headers,
            data=data,
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Resumable chunk upload")

    def status(self) -> list[UploadedRange]:
        """Return the byte ranges the service already stored for this session.

        Raises:
            MalformedRangeHeader: If the service reports ranges in an
                unexpected format.
        """
        response = requests.get(
            self._object_url(f"status/{quote(self.session_id, safe='')}"),
            headers=self._auth.get_headers(READ_TOKEN_SCOPES),
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Resumable status query")
        ranges = parse_uploaded_ranges(response.headers.get("Range", ""))
        logger.debug(
            "Resumable status: target=%s session=%s ranges=%d",
            self.target,
            self.session_id,
            len(ranges),
        )
        return ranges

    def bytes_uploaded(self) -> int:
        return sum(uploaded_range.length for uploaded_range in self.status())

    def missing_ranges(self, total_bytes: int) -> list[UploadedRange]:
        return missing_ranges(self.status(), total_bytes)
