"""Signed URL broker for chunked object transfers.

The broker asks the object storage service for short-lived signed URLs:
batches of single-use part upload URLs that share one upload session, the
call that assembles the uploaded parts into the final object, and the
descriptor used to download an object.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ossclient.core.auth import TokenProvider
from ossclient.core.config.transfer_config import TransferConfig
from ossclient.core.const import (
    OSS_ROOT_PATH,
    READ_TOKEN_SCOPES,
    WRITE_TOKEN_SCOPES,
)
from ossclient.core.exceptions import InvalidRequest, TransferError
from ossclient.core.utils.http_errors import raise_for_transfer_status
from ossclient.transfer.models import (
    ChunkedDownload,
    CompleteDownload,
    FallbackDownload,
    ObjectDescriptor,
    TransferTarget,
    UploadBatch,
    parse_download_descriptor,
)

logger = logging.getLogger(__name__)


class SignedUrlBroker:
    """Issue signed upload/download URLs for objects in a bucket.

    The broker holds no per-transfer state and can be shared by any number
    of concurrent transfers.
    """

    def __init__(
        self,
        auth: TokenProvider,
        config: TransferConfig | None = None,
    ) -> None:
        """Initialize the broker.

        Args:
            auth: Provides authorization headers for service calls.
            config: Transfer configuration; defaults are used when omitted.
        """
        self._auth = auth
        self._config = config or TransferConfig()

    @property
    def batch_cap(self) -> int:
        return self._config.batch_cap

    def _object_url(self, target: TransferTarget, suffix: str) -> str:
        base = self._config.api_url.rstrip("/")
        bucket = quote(target.container_id, safe="")
        key = quote(target.object_key, safe="")
        return f"{base}/{OSS_ROOT_PATH}/buckets/{bucket}/objects/{key}/{suffix}"

    def request_upload_batch(
        self,
        target: TransferTarget,
        part_count: int,
        first_part_index: int,
        continuation_key: str | None = None,
    ) -> UploadBatch:
        """Request a batch of signed part upload URLs.

        Calling without ``continuation_key`` starts a new upload session.

        Args:
            target: Object being uploaded.
            part_count: Number of URLs to issue, between 1 and the batch cap.
            first_part_index: 1-based index of the first part in the batch.
            continuation_key: Upload key of the session to continue.

        Returns:
            The issued batch with the session's continuation key.

        Raises:
            InvalidRequest: If ``part_count`` or ``first_part_index`` are out
                of range, or the service rejects the request.
            AuthorizationExpired: If the service rejects the credentials.
            NotFound: If the bucket does not exist.
        """
        if not 1 <= part_count <= self.batch_cap:
            raise InvalidRequest(
                f"part_count must be between 1 and {self.batch_cap}, "
                f"got {part_count}"
            )
        if first_part_index < 1:
            raise InvalidRequest(
                f"first_part_index must be at least 1, got {first_part_index}"
            )

        params: dict[str, str | int] = {
            "parts": part_count,
            "firstPart": first_part_index,
        }
        if continuation_key:
            params["uploadKey"] = continuation_key

        logger.debug(
            "GET signeds3upload: target=%s parts=%d first_part=%d continuing=%s",
            target,
            part_count,
            first_part_index,
            continuation_key is not None,
        )
        response = requests.get(
            self._object_url(target, "signeds3upload"),
            params=params,
            headers=self._auth.get_headers(WRITE_TOKEN_SCOPES),
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Signed upload URL request")

        batch = UploadBatch.model_validate(response.json())
        if len(batch.urls) != part_count:
            raise TransferError(
                f"Service issued {len(batch.urls)} upload URLs, "
                f"expected {part_count}"
            )
        return batch

    def finalize_upload(
        self,
        target: TransferTarget,
        continuation_key: str,
        content_type: str | None = None,
    ) -> ObjectDescriptor:
        """Assemble all uploaded parts of a session into the final object.

        Args:
            target: Object being uploaded.
            continuation_key: Upload key of the session to complete.
            content_type: Optional MIME type stored with the object.

        Returns:
            Description of the stored object.
        """
        headers = dict(self._auth.get_headers(WRITE_TOKEN_SCOPES))
        if content_type:
            headers["x-ads-meta-Content-Type"] = content_type

        logger.info("POST signeds3upload (finalize): target=%s", target)
        response = requests.post(
            self._object_url(target, "signeds3upload"),
            json={"uploadKey": continuation_key},
            headers=headers,
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Upload finalization")
        return ObjectDescriptor.model_validate(response.json())

    def request_download_descriptor(
        self,
        target: TransferTarget,
        use_acceleration: bool = True,
    ) -> CompleteDownload | FallbackDownload | ChunkedDownload:
        """Request the signed download descriptor of an object.

        Args:
            target: Object to download.
            use_acceleration: Ask for CDN accelerated URLs.

        Returns:
            The descriptor variant matching the service's ``status`` field.
        """
        logger.debug(
            "GET signeds3download: target=%s use_cdn=%s", target, use_acceleration
        )
        response = requests.get(
            self._object_url(target, "signeds3download"),
            params={"useCdn": "true" if use_acceleration else "false"},
            headers=self._auth.get_headers(READ_TOKEN_SCOPES),
            timeout=self._config.request_timeout,
        )
        raise_for_transfer_status(response, "Signed download URL request")
        try:
            return parse_download_descriptor(response.json())
        except ValidationError as e:
            raise TransferError(
                f"Unexpected download descriptor for {target}: {e}"
            ) from e
