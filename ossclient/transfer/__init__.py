"""Chunked object transfer through signed URLs."""

from .download_engine import ChunkedDownloadEngine, ResponseStream
from .models import (
    ChunkedDownload,
    CompleteDownload,
    FallbackDownload,
    ObjectDescriptor,
    PartState,
    TransferProgress,
    TransferTarget,
    UploadBatch,
    UploadCheckpoint,
    UploadedRange,
)
from .resumable import ResumableUploadSession, parse_uploaded_ranges
from .signed_urls import SignedUrlBroker
from .stream_chunker import chunk
from .upload_engine import ChunkedUploadEngine

__all__ = [
    "ChunkedDownload",
    "ChunkedDownloadEngine",
    "ChunkedUploadEngine",
    "CompleteDownload",
    "FallbackDownload",
    "ObjectDescriptor",
    "PartState",
    "ResponseStream",
    "ResumableUploadSession",
    "SignedUrlBroker",
    "TransferProgress",
    "TransferTarget",
    "UploadBatch",
    "UploadCheckpoint",
    "UploadedRange",
    "chunk",
    "parse_uploaded_ranges",
]
