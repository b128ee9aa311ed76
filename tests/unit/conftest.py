import os
import pathlib
import re
import tempfile
from collections import defaultdict
from unittest.mock import patch
from urllib.parse import parse_qs, unquote, urlparse

import pytest
import requests_mock

from ossclient.core.auth import StaticTokenAuth
from ossclient.core.config import config_manager
from ossclient.core.config.transfer_config import RetryPolicy, TransferConfig
from ossclient.transfer.models import TransferTarget
from ossclient.transfer.signed_urls import SignedUrlBroker

TEST_API_URL = "https://oss.test"
SIGNED_HOST = "https://s3.test"
TEST_BUCKET = "test-bucket"
TEST_OBJECT_KEY = "model.rvt"

OBJECT_URL_PATTERN = re.compile(
    rf"^{re.escape(TEST_API_URL)}/oss/v2/buckets/[^/]+/objects/[^/]+/signeds3upload"
)
SIGNED_PART_PATTERN = re.compile(rf"^{re.escape(SIGNED_HOST)}/upload/")


def query_params(request) -> dict[str, str]:
    """Return the query string of a mocked request with lowercased keys."""
    query = parse_qs(urlparse(request.url).query)
    return {key.lower(): values[0] for key, values in query.items()}


class FakeObjectStorage:
    """In-memory stand-in for the signed URL endpoints of the service.

    Batches of single-use part URLs are issued per upload key, part PUTs are
    stored per session and a finalize call assembles the parts in index
    order. ``put_hook`` may return a status code to reject a part PUT.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, dict[int, bytes]] = {}
        self.batch_requests: list[dict] = []
        self.put_log: list[tuple[int, int]] = []
        self.used_urls: list[str] = []
        self.finalize_requests: list[dict] = []
        self.objects: dict[str, bytes] = {}
        self.put_hook = None
        self.put_attempts: dict[int, int] = defaultdict(int)
        self.mocker: requests_mock.Mocker | None = None
        self._issued = 0

    def register(self, mocker: requests_mock.Mocker) -> None:
        self.mocker = mocker
        mocker.get(OBJECT_URL_PATTERN, json=self._issue_batch)
        mocker.post(OBJECT_URL_PATTERN, json=self._finalize)
        mocker.put(SIGNED_PART_PATTERN, content=self._put_part)

    def _issue_batch(self, request, context):
        query = query_params(request)
        parts = int(query["parts"])
        first_part = int(query["firstpart"])
        upload_key = query.get("uploadkey")
        self.batch_requests.append(
            {"parts": parts, "first_part": first_part, "upload_key": upload_key}
        )

        if upload_key is None:
            upload_key = f"upload-key-{len(self.sessions) + 1}"
            self.sessions[upload_key] = {}
        elif upload_key not in self.sessions:
            context.status_code = 400
            return {"reason": "Unknown upload key"}

        urls = []
        for index in range(first_part, first_part + parts):
            self._issued += 1
            urls.append(f"{SIGNED_HOST}/upload/{upload_key}/{index}?sig={self._issued}")
        return {"urls": urls, "uploadKey": upload_key}

    def _put_part(self, request, context):
        _, _, upload_key, index_text = urlparse(request.url).path.split("/")
        index = int(index_text)
        self.put_attempts[index] += 1
        self.used_urls.append(request.url)

        if self.put_hook is not None:
            status_code = self.put_hook(index, self.put_attempts[index])
            if status_code is not None:
                context.status_code = status_code
                return b"Request has expired" if status_code == 403 else b"error"

        self.sessions[upload_key][index] = request.body
        self.put_log.append((index, len(request.body)))
        context.status_code = 200
        return b""

    def _finalize(self, request, context):
        upload_key = request.json()["uploadKey"]
        parts = self.sessions[upload_key]
        if sorted(parts) != list(range(1, len(parts) + 1)):
            context.status_code = 400
            return {"reason": "Parts are not contiguous"}

        path = urlparse(request.url).path.split("/")
        bucket, object_key = unquote(path[-4]), unquote(path[-2])
        data = b"".join(parts[index] for index in sorted(parts))
        self.objects[object_key] = data
        self.finalize_requests.append(
            {
                "upload_key": upload_key,
                "content_type": request.headers.get("x-ads-meta-Content-Type"),
            }
        )
        return {
            "bucketKey": bucket,
            "objectKey": object_key,
            "objectId": f"urn:oss:objects:{bucket}/{object_key}",
            "size": len(data),
            "location": f"{TEST_API_URL}/oss/v2/buckets/{bucket}/objects/{object_key}",
        }

    def part_sizes(self) -> list[int]:
        return [size for _, size in self.put_log]


@pytest.fixture
def temp_config_dir():
    """Fixture to create a temporary config directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = pathlib.Path(tmpdir)
        with patch.object(config_manager, "CONFIG_DIR", tmpdir):
            yield tmpdir


@pytest.fixture(autouse=True)
def clean_oss_env(monkeypatch):
    """Keep OSS_* variables of the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("OSS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def transfer_config():
    return TransferConfig(
        api_url=TEST_API_URL,
        chunk_size=4,
        batch_cap=25,
        stream_read_size=3,
        request_timeout=5,
        retry=RetryPolicy(
            max_attempts=3, backoff_base_seconds=0.5, backoff_max_seconds=2.0
        ),
    )


@pytest.fixture
def auth():
    return StaticTokenAuth("test-token")


@pytest.fixture
def broker(auth, transfer_config):
    return SignedUrlBroker(auth, transfer_config)


@pytest.fixture
def target():
    return TransferTarget(container_id=TEST_BUCKET, object_key=TEST_OBJECT_KEY)


@pytest.fixture
def fake_storage():
    """Fixture to serve the signed upload endpoints from memory."""
    storage = FakeObjectStorage()
    with requests_mock.Mocker() as m:
        storage.register(m)
        yield storage
