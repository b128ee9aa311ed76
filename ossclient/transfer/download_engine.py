"""Chunked object download through signed URLs.

Objects are read either through a single GET on a signed URL (buffered or
streamed) or as a lazy sequence of byte-range GETs. Range reads need the
total object size up front: it comes from the download descriptor or from
a HEAD probe, and the read is refused when neither provides it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator, Iterator
from contextlib import closing
from pathlib import Path

import requests

from ossclient.core.config.transfer_config import TransferConfig
from ossclient.core.exceptions import NotReady, TransferError
from ossclient.core.utils.http_errors import raise_for_transfer_status
from ossclient.transfer.models import (
    ChunkedDownload,
    CompleteDownload,
    FallbackDownload,
    ProgressCallback,
    TransferProgress,
    TransferTarget,
)
from ossclient.transfer.signed_urls import SignedUrlBroker

logger = logging.getLogger(__name__)

AnyDownload = CompleteDownload | FallbackDownload | ChunkedDownload


def get_content_size(response: requests.Response) -> int | None:
    """Return the Content-Length header as an int, or None if absent."""
    try:
        return int(response.headers["Content-Length"])
    except (KeyError, ValueError):
        return None


class ResponseStream:
    """Iterator over a streamed response body that owns the response.

    Closing the stream closes the underlying connection, also when no block
    has been read yet. Exhausting the stream closes it as well.
    """

    def __init__(
        self, response: requests.Response, blocks: Generator[bytes, None, None]
    ) -> None:
        self._response = response
        self._blocks = blocks

    def __iter__(self) -> ResponseStream:
        return self

    def __next__(self) -> bytes:
        return next(self._blocks)

    def __enter__(self) -> ResponseStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop reading and release the connection."""
        self._blocks.close()
        self._response.close()


class ChunkedDownloadEngine:
    """Read objects through signed download URLs."""

    def __init__(
        self,
        broker: SignedUrlBroker,
        config: TransferConfig | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            broker: Issues download descriptors.
            config: Transfer configuration; defaults are used when omitted.
        """
        self._broker = broker
        self._config = config or TransferConfig()

    def _descriptor(
        self, target: TransferTarget, use_acceleration: bool | None
    ) -> AnyDownload:
        if use_acceleration is None:
            use_acceleration = self._config.use_acceleration
        return self._broker.request_download_descriptor(target, use_acceleration)

    def _single_url(self, target: TransferTarget, descriptor: AnyDownload) -> str:
        if isinstance(descriptor, ChunkedDownload):
            raise NotReady(
                f"{target} is only available as byte ranges; "
                "use download_ranged instead"
            )
        return descriptor.url

    def download(
        self,
        target: TransferTarget,
        on_progress: ProgressCallback | None = None,
        use_acceleration: bool | None = None,
    ) -> bytes:
        """Download a whole object into memory with a single GET.

        Raises:
            NotReady: If the object is only available as byte ranges.
        """
        return b"".join(self.download_stream(target, on_progress, use_acceleration))

    def download_stream(
        self,
        target: TransferTarget,
        on_progress: ProgressCallback | None = None,
        use_acceleration: bool | None = None,
    ) -> ResponseStream:
        """Stream an object with a single GET.

        The descriptor is resolved and the request is issued before this
        method returns; the body is read lazily as the stream advances. A
        caller that stops early should close the stream, or use it as a
        context manager, to release the connection.

        Raises:
            NotReady: If the object is only available as byte ranges.
        """
        descriptor = self._descriptor(target, use_acceleration)
        url = self._single_url(target, descriptor)

        logger.debug("GET object: target=%s status=%s", target, descriptor.status)
        response = self._open(url)
        return ResponseStream(
            response, self._iter_response(target, response, on_progress)
        )

    def _open(self, url: str) -> requests.Response:
        response = requests.get(url, stream=True, timeout=self._config.request_timeout)
        try:
            raise_for_transfer_status(response, "Object download")
        except TransferError:
            response.close()
            raise
        return response

    def _iter_response(
        self,
        target: TransferTarget,
        response: requests.Response,
        on_progress: ProgressCallback | None,
    ) -> Generator[bytes, None, None]:
        progress = TransferProgress(total_bytes=get_content_size(response))
        with response:
            for block in response.iter_content(
                chunk_size=self._config.stream_read_size
            ):
                if not block:
                    continue
                progress.advance(len(block), on_progress)
                yield block
        logger.info(
            "Download complete: target=%s bytes=%d",
            target,
            progress.bytes_transferred,
        )

    def resolve_size(self, target: TransferTarget, descriptor: AnyDownload) -> int:
        """Return the authoritative size of the object behind ``descriptor``.

        Uses the size declared by the descriptor, otherwise probes the single
        download URL with HEAD.

        Raises:
            NotReady: If no size can be determined.
        """
        if descriptor.size_bytes is not None:
            return descriptor.size_bytes
        if isinstance(descriptor, ChunkedDownload):
            raise NotReady(f"Size of {target} is unknown; cannot read it by ranges")

        logger.debug("HEAD object: target=%s", target)
        response = requests.head(
            descriptor.url,
            allow_redirects=True,
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Object size probe")
        size = get_content_size(response)
        if size is None:
            raise NotReady(f"Size probe for {target} returned no Content-Length")
        return size

    def download_ranged(
        self,
        target: TransferTarget,
        max_chunk_bytes: int,
        on_progress: ProgressCallback | None = None,
        use_acceleration: bool | None = None,
    ) -> Iterator[bytes]:
        """Read an object as successive byte-range GETs.

        The descriptor and total size are resolved before this method
        returns. Each range is fetched only when the caller asks for the next
        chunk. Every call starts over from offset 0.

        Args:
            target: Object to read.
            max_chunk_bytes: Largest range requested at once.
            on_progress: Called with ``(bytes_transferred, total_bytes)``
                after every range.
            use_acceleration: Ask for CDN accelerated URLs.

        Raises:
            ValueError: If ``max_chunk_bytes`` is less than 1.
            NotReady: If the object size cannot be determined.
        """
        if max_chunk_bytes < 1:
            raise ValueError(
                f"max_chunk_bytes must be at least 1, got {max_chunk_bytes}"
            )
        descriptor = self._descriptor(target, use_acceleration)
        total_size = self.resolve_size(target, descriptor)
        return self._iter_ranges(
            target, descriptor, total_size, max_chunk_bytes, on_progress
        )

    def _iter_ranges(
        self,
        target: TransferTarget,
        descriptor: AnyDownload,
        total_size: int,
        max_chunk_bytes: int,
        on_progress: ProgressCallback | None,
    ) -> Generator[bytes, None, None]:
        progress = TransferProgress(total_bytes=total_size)
        streamed_bytes = 0
        while streamed_bytes < total_size:
            end = min(streamed_bytes + max_chunk_bytes, total_size) - 1
            if isinstance(descriptor, ChunkedDownload):
                try:
                    url, range_end = descriptor.url_for_offset(streamed_bytes)
                except KeyError as e:
                    raise TransferError(str(e)) from e
                end = min(end, range_end)
            else:
                url = descriptor.url

            body = self._get_range(url, streamed_bytes, end)
            if len(body) != end - streamed_bytes + 1:
                raise TransferError(
                    f"Range {streamed_bytes}-{end} of {target} returned "
                    f"{len(body)} bytes"
                )
            streamed_bytes += len(body)
            progress.advance(len(body), on_progress)
            yield body

        logger.info(
            "Ranged download complete: target=%s bytes=%d", target, streamed_bytes
        )

    def _get_range(self, url: str, start: int, end: int) -> bytes:
        logger.debug("GET range: bytes=%d-%d", start, end)
        response = requests.get(
            url,
            headers={"Range": f"bytes={start}-{end}"},
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, f"Range download bytes={start}-{end}")
        return response.content

    def download_to_file(
        self,
        target: TransferTarget,
        path: str | Path,
        on_progress: ProgressCallback | None = None,
        max_chunk_bytes: int | None = None,
        use_acceleration: bool | None = None,
    ) -> int:
        """Download an object into a local file.

        Objects served by byte ranges, or any object when ``max_chunk_bytes``
        is given, are read by ranges; others with a single streamed GET.
        Data is written to ``<path>.part`` and moved over ``path`` only once
        the whole object has been read, so a failed download leaves no
        truncated file behind.

        Returns:
            Number of bytes written.
        """
        path = Path(path)
        if max_chunk_bytes is not None and max_chunk_bytes < 1:
            raise ValueError(
                f"max_chunk_bytes must be at least 1, got {max_chunk_bytes}"
            )
        descriptor = self._descriptor(target, use_acceleration)
        if isinstance(descriptor, ChunkedDownload) or max_chunk_bytes is not None:
            total_size = self.resolve_size(target, descriptor)
            blocks = self._iter_ranges(
                target,
                descriptor,
                total_size,
                max_chunk_bytes or self._config.chunk_size,
                on_progress,
            )
        else:
            response = self._open(descriptor.url)
            blocks = ResponseStream(
                response, self._iter_response(target, response, on_progress)
            )

        partial_path = path.with_name(f"{path.name}.part")
        bytes_written = 0
        try:
            with closing(blocks), open(partial_path, "wb") as f:
                for block in blocks:
                    f.write(block)
                    bytes_written += len(block)
            os.replace(partial_path, path)
        finally:
            partial_path.unlink(missing_ok=True)
        return bytes_written
