"""High level client bundling the chunked transfer engines."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from ossclient.core.auth import ClientCredentialsAuth, StaticTokenAuth, TokenProvider
from ossclient.core.config.config_manager import ConfigManager
from ossclient.core.config.transfer_config import TransferConfig
from ossclient.core.exceptions import AuthenticationError
from ossclient.transfer.download_engine import ChunkedDownloadEngine, ResponseStream
from ossclient.transfer.models import (
    ObjectDescriptor,
    ProgressCallback,
    TransferTarget,
    UploadCheckpoint,
)
from ossclient.transfer.resumable import DEFAULT_CONTENT_TYPE, ResumableUploadSession
from ossclient.transfer.signed_urls import SignedUrlBroker
from ossclient.transfer.upload_engine import CheckpointCallback, ChunkedUploadEngine

logger = logging.getLogger(__name__)


class ObjectStorageClient:
    """Upload and download objects in buckets of the object storage service.

    Example:
        client = ObjectStorageClient.from_env()
        with open("model.rvt", "rb") as f:
            client.upload_object("my-bucket", "model.rvt", f.read())
    """

    def __init__(
        self,
        auth: TokenProvider,
        config: TransferConfig | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            auth: Provides authorization headers for service calls.
            config: Transfer configuration; resolved from the config file and
                environment when omitted.
        """
        self.auth = auth
        self.config = config or ConfigManager().resolve_effective_config()
        self.broker = SignedUrlBroker(auth, self.config)
        self.uploader = ChunkedUploadEngine(self.broker, self.config)
        self.downloader = ChunkedDownloadEngine(self.broker, self.config)

    @classmethod
    def from_env(cls, config: TransferConfig | None = None) -> "ObjectStorageClient":
        """Create a client from ``OSS_ACCESS_TOKEN`` or client credentials.

        Raises:
            AuthenticationError: If no credentials are set.
        """
        config = config or ConfigManager().resolve_effective_config()
        access_token = os.getenv("OSS_ACCESS_TOKEN")
        if access_token:
            return cls(StaticTokenAuth(access_token), config)

        client_id = os.getenv("OSS_CLIENT_ID")
        client_secret = os.getenv("OSS_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise AuthenticationError(
                "Set OSS_ACCESS_TOKEN, or OSS_CLIENT_ID and OSS_CLIENT_SECRET"
            )
        return cls(
            ClientCredentialsAuth(
                client_id,
                client_secret,
                host=config.api_url,
                timeout=config.request_timeout,
            ),
            config,
        )

    def upload_object(
        self,
        bucket: str,
        object_key: str,
        data: bytes | Iterable[bytes],
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
        checkpoint: UploadCheckpoint | None = None,
        on_checkpoint: CheckpointCallback | None = None,
    ) -> ObjectDescriptor:
        """Upload a buffer or an iterable of byte pieces to an object."""
        return self.uploader.upload(
            TransferTarget(container_id=bucket, object_key=object_key),
            data,
            content_type=content_type,
            on_progress=on_progress,
            checkpoint=checkpoint,
            on_checkpoint=on_checkpoint,
        )

    def upload_file(
        self,
        bucket: str,
        object_key: str,
        path: str | Path,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ObjectDescriptor:
        """Stream a local file to an object without loading it into memory."""

        def read_blocks() -> Iterator[bytes]:
            with open(path, "rb") as f:
                yield from iter(lambda: f.read(self.config.stream_read_size), b"")

        return self.upload_object(
            bucket,
            object_key,
            read_blocks(),
            content_type=content_type,
            on_progress=on_progress,
        )

    def download_object(
        self,
        bucket: str,
        object_key: str,
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        return self.downloader.download(
            TransferTarget(container_id=bucket, object_key=object_key), on_progress
        )

    def download_object_stream(
        self,
        bucket: str,
        object_key: str,
        on_progress: ProgressCallback | None = None,
    ) -> ResponseStream:
        return self.downloader.download_stream(
            TransferTarget(container_id=bucket, object_key=object_key), on_progress
        )

    def download_object_ranged(
        self,
        bucket: str,
        object_key: str,
        max_chunk_bytes: int,
        on_progress: ProgressCallback | None = None,
    ) -> Iterator[bytes]:
        return self.downloader.download_ranged(
            TransferTarget(container_id=bucket, object_key=object_key),
            max_chunk_bytes,
            on_progress,
        )

    def download_file(
        self,
        bucket: str,
        object_key: str,
        path: str | Path,
        on_progress: ProgressCallback | None = None,
        max_chunk_bytes: int | None = None,
    ) -> int:
        return self.downloader.download_to_file(
            TransferTarget(container_id=bucket, object_key=object_key),
            path,
            on_progress=on_progress,
            max_chunk_bytes=max_chunk_bytes,
        )

    def resumable_session(
        self,
        bucket: str,
        object_key: str,
        session_id: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> ResumableUploadSession:
        """Open a legacy resumable upload session."""
        return ResumableUploadSession(
            self.auth,
            TransferTarget(container_id=bucket, object_key=object_key),
            session_id,
            content_type=content_type,
            config=self.config,
        )
