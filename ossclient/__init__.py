from .client import ObjectStorageClient
from .core.auth import ClientCredentialsAuth, StaticTokenAuth, TokenCache
from .core.config.transfer_config import RetryPolicy, TransferConfig
from .core.exceptions import (
    AuthorizationExpired,
    InvalidRequest,
    MalformedRangeHeader,
    NotFound,
    NotReady,
    OssClientError,
    TransferError,
)
from .transfer.models import TransferTarget, UploadCheckpoint

__version__ = "0.1.0"

__all__ = [
    "AuthorizationExpired",
    "ClientCredentialsAuth",
    "InvalidRequest",
    "MalformedRangeHeader",
    "NotFound",
    "NotReady",
    "ObjectStorageClient",
    "OssClientError",
    "RetryPolicy",
    "StaticTokenAuth",
    "TokenCache",
    "TransferConfig",
    "TransferError",
    "TransferTarget",
    "UploadCheckpoint",
]
