"""Pydantic models shared by the chunked transfer engines."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

ProgressCallback = Callable[[int, Optional[int]], None]

_RANGE_KEY_PATTERN = re.compile(r"(\d+)-(\d+)", re.ASCII)


def parse_range_key(range_spec: str) -> tuple[int, int]:
    """Split a ``"start-end"`` range key into inclusive byte offsets.

    Raises:
        ValueError: If the key is not two ASCII integers or ends before it
            starts.
    """
    match = _RANGE_KEY_PATTERN.fullmatch(range_spec)
    if match is None:
        raise ValueError(f"Malformed byte range {range_spec!r}")
    start, end = int(match.group(1)), int(match.group(2))
    if end < start:
        raise ValueError(f"Byte range {range_spec!r} ends before it starts")
    return start, end


class TransferTarget(BaseModel):
    """Bucket and object key a transfer reads from or writes to."""

    model_config = ConfigDict(frozen=True)

    container_id: str = Field(min_length=1)
    object_key: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"{self.container_id}/{self.object_key}"


class UploadBatch(BaseModel):
    """A window of single-use signed part URLs for one upload session."""

    model_config = ConfigDict(populate_by_name=True)

    urls: list[str]
    continuation_key: str = Field(alias="uploadKey")


class PartState(BaseModel):
    index: int = Field(ge=1)
    size_bytes: int = Field(ge=0)
    uploaded: bool = False


class UploadedRange(BaseModel):
    """Inclusive byte range already stored by a resumable session."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class ObjectDescriptor(BaseModel):
    """Description of a stored object as returned by the service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket_key: str = Field(alias="bucketKey")
    object_key: str = Field(alias="objectKey")
    object_id: str | None = Field(default=None, alias="objectId")
    sha1: str | None = None
    size: int | None = None
    location: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")


class _SingleUrlDownload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str
    size_bytes: int | None = Field(default=None, alias="size")
    checksum: str | None = Field(default=None, alias="sha1")


class CompleteDownload(_SingleUrlDownload):
    """Object fully processed; readable through a single signed URL."""

    status: Literal["complete"] = "complete"


class FallbackDownload(_SingleUrlDownload):
    """Object served through a single non-accelerated signed URL."""

    status: Literal["fallback"] = "fallback"


class ChunkedDownload(BaseModel):
    """Object split into byte ranges, each readable through its own URL.

    ``range_urls`` maps range strings such as ``"0-1048575"`` to signed URLs.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Literal["chunked"] = "chunked"
    range_urls: dict[str, str] = Field(alias="urls")
    size_bytes: int | None = Field(default=None, alias="size")
    checksum: str | None = Field(default=None, alias="sha1")

    @field_validator("range_urls")
    @classmethod
    def check_range_keys(cls, v: dict[str, str]) -> dict[str, str]:
        """Reject range keys that are not ``start-end`` byte offsets."""
        for range_spec in v:
            parse_range_key(range_spec)
        return v

    def url_for_offset(self, offset: int) -> tuple[str, int]:
        """Return the URL covering ``offset`` and the last byte of its range.

        Raises:
            KeyError: If no declared range covers the offset.
        """
        for range_spec, url in self.range_urls.items():
            start, end = parse_range_key(range_spec)
            if start <= offset <= end:
                return url, end
        raise KeyError(f"No signed URL covers byte offset {offset}")


DownloadDescriptor = Annotated[
    Union[CompleteDownload, FallbackDownload, ChunkedDownload],
    Field(discriminator="status"),
]

_descriptor_adapter: TypeAdapter[Any] = TypeAdapter(DownloadDescriptor)


def parse_download_descriptor(
    payload: dict[str, Any],
) -> CompleteDownload | FallbackDownload | ChunkedDownload:
    """Build the matching descriptor variant from a service JSON payload."""
    return _descriptor_adapter.validate_python(payload)


class TransferProgress(BaseModel):
    """Cumulative progress of one transfer, reported to an optional observer."""

    bytes_transferred: int = 0
    total_bytes: int | None = None

    def advance(self, num_bytes: int, callback: ProgressCallback | None) -> None:
        if num_bytes < 0:
            raise ValueError("Progress can only move forward")
        self.bytes_transferred += num_bytes
        if callback is not None:
            callback(self.bytes_transferred, self.total_bytes)


class UploadCheckpoint(BaseModel):
    """Serializable state of a multi-part upload session.

    Callers may persist a checkpoint (``model_dump_json``) after every part
    and hand it back to the upload engine to resume an interrupted upload in
    the same or another process.
    """

    target: TransferTarget
    part_size: int = Field(ge=1)
    total_bytes: int = Field(ge=1)
    continuation_key: str | None = None
    parts: list[PartState] = Field(default_factory=list)

    @classmethod
    def create(
        cls, target: TransferTarget, total_bytes: int, part_size: int
    ) -> "UploadCheckpoint":
        num_parts = math.ceil(total_bytes / part_size)
        parts = [
            PartState(
                index=i + 1,
                size_bytes=min(part_size, total_bytes - i * part_size),
            )
            for i in range(num_parts)
        ]
        return cls(
            target=target,
            part_size=part_size,
            total_bytes=total_bytes,
            parts=parts,
        )

    @property
    def bytes_uploaded(self) -> int:
        return sum(part.size_bytes for part in self.parts if part.uploaded)

    @property
    def is_complete(self) -> bool:
        return all(part.uploaded for part in self.parts)

    @property
    def next_part_index(self) -> int | None:
        """Index of the first part not yet uploaded, or None when complete."""
        for part in self.parts:
            if not part.uploaded:
                return part.index
        return None

    def pending_parts(self) -> list[PartState]:
        return [part for part in self.parts if not part.uploaded]

    def mark_uploaded(self, index: int) -> None:
        self.parts[index - 1].uploaded = True
