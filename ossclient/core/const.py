import os

API_URL = os.getenv("OSS_API_URL", "https://developer.api.autodesk.com")
OSS_ROOT_PATH = "oss/v2"
AUTH_ROOT_PATH = "authentication/v1"

BYTES_PER_KIB = 1024
BYTES_PER_MIB = 1024 * BYTES_PER_KIB

# Minimum part size accepted by the multipart protocol for all but the last part
DEFAULT_CHUNK_SIZE = 5 * BYTES_PER_MIB
# Largest number of signed URLs the service issues per batch request
DEFAULT_BATCH_CAP = 25
DEFAULT_STREAM_READ_SIZE = 64 * BYTES_PER_KIB
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60

READ_TOKEN_SCOPES = ("bucket:read", "data:read")
WRITE_TOKEN_SCOPES = ("bucket:create", "data:write")

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".ossclient")
CONFIG_FILE = "config.yaml"
