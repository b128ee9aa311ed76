"""Chunked object upload through batches of signed part URLs.

Parts are uploaded one at a time, in order. Signed URLs are requested from
the broker in batches and consumed strictly in order; each URL is used for
exactly one PUT. When a PUT is rejected because the signed URL expired, the
whole remaining batch is discarded and a fresh batch is requested for the
same part, up to the configured retry limit.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Iterable

import requests

from ossclient.core.config.transfer_config import TransferConfig
from ossclient.core.exceptions import AuthorizationExpired, InvalidRequest
from ossclient.core.utils.http_errors import raise_for_transfer_status
from ossclient.transfer.models import (
    ObjectDescriptor,
    ProgressCallback,
    TransferProgress,
    TransferTarget,
    UploadCheckpoint,
)
from ossclient.transfer.signed_urls import SignedUrlBroker
from ossclient.transfer.stream_chunker import chunk

logger = logging.getLogger(__name__)

CheckpointCallback = Callable[[UploadCheckpoint], None]


class _PartUploadSession:
    """URL queue and continuation key of one in-flight upload."""

    def __init__(
        self,
        broker: SignedUrlBroker,
        target: TransferTarget,
        config: TransferConfig,
        sleep: Callable[[float], None],
        continuation_key: str | None = None,
    ) -> None:
        self._broker = broker
        self._target = target
        self._config = config
        self._sleep = sleep
        self.continuation_key = continuation_key
        self._urls: deque[str] = deque()
        # Part index the head of the URL queue was issued for
        self._queue_part_index = 0

    def _request_batch(self, part_index: int, remaining_parts: int | None) -> None:
        batch_cap = self._broker.batch_cap
        part_count = batch_cap if remaining_parts is None else min(
            remaining_parts, batch_cap
        )
        batch = self._broker.request_upload_batch(
            self._target,
            part_count=part_count,
            first_part_index=part_index,
            continuation_key=self.continuation_key,
        )
        self._urls = deque(batch.urls)
        self._queue_part_index = part_index
        self.continuation_key = batch.continuation_key

    def _put(self, url: str, payload: bytes) -> None:
        response = requests.put(
            url,
            data=payload,
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Part upload")

    def put_part(
        self,
        part_index: int,
        payload: bytes,
        remaining_parts: int | None,
    ) -> None:
        """Upload one part, renewing the URL batch when needed.

        Only an expired part URL is retried. A batch request rejected with
        401 or 403 means the bearer token itself was refused and propagates
        at once.

        Args:
            part_index: 1-based index of the part.
            payload: Part content.
            remaining_parts: Parts left including this one, or None when the
                total is unknown.

        Raises:
            AuthorizationExpired: If the broker refused the token, or every
                attempt allowed by the retry policy was rejected as expired.
        """
        if part_index != self._queue_part_index:
            self._urls.clear()

        retry = self._config.retry
        for attempt in range(retry.max_attempts):
            if not self._urls:
                self._request_batch(part_index, remaining_parts)
            url = self._urls.popleft()
            self._queue_part_index = part_index + 1
            logger.debug(
                "PUT part: target=%s index=%d bytes=%d attempt=%d",
                self._target,
                part_index,
                len(payload),
                attempt + 1,
            )
            try:
                self._put(url, payload)
                return
            except AuthorizationExpired:
                # One expired URL invalidates the whole outstanding batch
                self._urls.clear()
                if attempt == retry.max_attempts - 1:
                    logger.error(
                        "Part %d of %s still expired after %d attempts",
                        part_index,
                        self._target,
                        retry.max_attempts,
                    )
                    raise
                delay = retry.backoff_delay(attempt)
                logger.warning(
                    "Signed URL expired for part %d of %s (attempt %d/%d), "
                    "requesting a new batch in %.1fs",
                    part_index,
                    self._target,
                    attempt + 1,
                    retry.max_attempts,
                    delay,
                )
                self._sleep(delay)


class ChunkedUploadEngine:
    """Upload objects part by part through signed URLs."""

    def __init__(
        self,
        broker: SignedUrlBroker,
        config: TransferConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            broker: Issues signed part URLs and finalizes sessions.
            config: Transfer configuration; defaults are used when omitted.
            sleep: Used to wait between retries.
        """
        self._broker = broker
        self._config = config or TransferConfig()
        self._sleep = sleep

    @property
    def chunk_size(self) -> int:
        return self._config.chunk_size

    def upload(
        self,
        target: TransferTarget,
        data: bytes | bytearray | memoryview | Iterable[bytes],
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
        checkpoint: UploadCheckpoint | None = None,
        on_checkpoint: CheckpointCallback | None = None,
    ) -> ObjectDescriptor:
        """Upload a buffer or a stream of byte pieces and finalize the object.

        Args:
            target: Object to write.
            data: Whole content as a buffer, or an iterable of byte pieces of
                unknown total size.
            content_type: Optional MIME type stored with the object.
            on_progress: Called with ``(bytes_transferred, total_bytes)``
                after every part; ``total_bytes`` is None for streams.
            checkpoint: Resume a previously interrupted buffer upload.
            on_checkpoint: Called with the updated checkpoint after every
                part of a buffer upload.

        Returns:
            Description of the stored object.

        Raises:
            InvalidRequest: If the content is empty or the checkpoint does
                not match the upload.
        """
        if isinstance(data, (bytes, bytearray, memoryview)):
            if checkpoint is None:
                checkpoint = self.begin(target, len(data))
            elif checkpoint.target != target:
                raise InvalidRequest(
                    f"Checkpoint belongs to {checkpoint.target}, not {target}"
                )
            self.upload_parts(data, checkpoint, on_progress, on_checkpoint)
            return self.complete(checkpoint, content_type)

        if checkpoint is not None:
            raise InvalidRequest("Only buffer uploads can resume from a checkpoint")
        return self._upload_stream(target, data, content_type, on_progress)

    def begin(self, target: TransferTarget, total_bytes: int) -> UploadCheckpoint:
        """Plan the parts of a buffer upload without contacting the service.

        Raises:
            InvalidRequest: If ``total_bytes`` is not positive.
        """
        if total_bytes <= 0:
            raise InvalidRequest("Cannot upload an empty object")
        return UploadCheckpoint.create(target, total_bytes, self.chunk_size)

    def upload_parts(
        self,
        data: bytes | bytearray | memoryview,
        checkpoint: UploadCheckpoint,
        on_progress: ProgressCallback | None = None,
        on_checkpoint: CheckpointCallback | None = None,
    ) -> None:
        """Upload every part the checkpoint does not mark as uploaded.

        The checkpoint is updated in place after each successful part.
        """
        if len(data) != checkpoint.total_bytes:
            raise InvalidRequest(
                f"Checkpoint expects {checkpoint.total_bytes} bytes, "
                f"got {len(data)}"
            )
        if checkpoint.continuation_key is None and checkpoint.bytes_uploaded:
            raise InvalidRequest("Checkpoint has uploaded parts but no upload key")

        view = memoryview(data)
        pending = checkpoint.pending_parts()
        total_parts = len(checkpoint.parts)
        progress = TransferProgress(
            bytes_transferred=checkpoint.bytes_uploaded,
            total_bytes=checkpoint.total_bytes,
        )
        session = _PartUploadSession(
            self._broker,
            checkpoint.target,
            self._config,
            self._sleep,
            continuation_key=checkpoint.continuation_key,
        )

        logger.info(
            "Uploading %s: bytes=%d parts=%d pending=%d",
            checkpoint.target,
            checkpoint.total_bytes,
            total_parts,
            len(pending),
        )
        for part in pending:
            start = (part.index - 1) * checkpoint.part_size
            payload = bytes(view[start : start + part.size_bytes])
            session.put_part(
                part.index, payload, remaining_parts=total_parts - part.index + 1
            )
            checkpoint.continuation_key = session.continuation_key
            checkpoint.mark_uploaded(part.index)
            progress.advance(part.size_bytes, on_progress)
            if on_checkpoint is not None:
                on_checkpoint(checkpoint)

    def complete(
        self, checkpoint: UploadCheckpoint, content_type: str | None = None
    ) -> ObjectDescriptor:
        """Finalize a session whose parts are all uploaded."""
        if not checkpoint.is_complete or checkpoint.continuation_key is None:
            raise InvalidRequest(
                f"Upload of {checkpoint.target} has pending part "
                f"{checkpoint.next_part_index}"
            )
        result = self._broker.finalize_upload(
            checkpoint.target, checkpoint.continuation_key, content_type
        )
        logger.info(
            "Upload complete: target=%s bytes=%d",
            checkpoint.target,
            checkpoint.total_bytes,
        )
        return result

    def _upload_stream(
        self,
        target: TransferTarget,
        source: Iterable[bytes],
        content_type: str | None,
        on_progress: ProgressCallback | None,
    ) -> ObjectDescriptor:
        session = _PartUploadSession(self._broker, target, self._config, self._sleep)
        progress = TransferProgress()
        part_index = 0

        logger.info("Uploading stream to %s", target)
        for part_index, part in enumerate(chunk(source, self.chunk_size), start=1):
            session.put_part(part_index, part, remaining_parts=None)
            progress.advance(len(part), on_progress)

        if part_index == 0 or session.continuation_key is None:
            raise InvalidRequest("Cannot upload an empty stream")

        result = self._broker.finalize_upload(
            target, session.continuation_key, content_type
        )
        logger.info(
            "Upload complete: target=%s bytes=%d parts=%d",
            target,
            progress.bytes_transferred,
            part_index,
        )
        return result

