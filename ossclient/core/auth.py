"""Access token providers for the object storage service.

Tokens are requested per scope set and kept in an explicit ``TokenCache``
owned by the provider. The cache takes its clock and capacity as arguments
so expiry behaviour is deterministic under test.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

import requests

from ossclient.core.const import (
    API_URL,
    AUTH_ROOT_PATH,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from ossclient.core.exceptions import AuthenticationError
from ossclient.core.utils.http_errors import extract_error_detail

logger = logging.getLogger(__name__)

# Tokens are refreshed this many seconds before the service expires them
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class TokenProvider(Protocol):
    """Anything able to produce authorization headers for a scope set."""

    def get_headers(self, scopes: Iterable[str]) -> dict[str, str]:
        """Return HTTP headers authorizing a request with the given scopes."""
        ...


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float


class TokenCache:
    """Bounded cache of access tokens keyed by scope set."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        capacity: int = 16,
    ) -> None:
        """Initialize the cache.

        Args:
            clock: Returns the current time in seconds.
            capacity: Maximum number of scope sets kept; the least recently
                used entry is evicted first.
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._clock = clock
        self._capacity = capacity
        self._entries: OrderedDict[str, CachedToken] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(scopes: Iterable[str]) -> str:
        return " ".join(sorted(scopes))

    def get(self, key: str) -> str | None:
        """Return a still valid token for ``key`` or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.access_token

    def put(self, key: str, access_token: str, expires_in: float) -> None:
        """Store a token that expires ``expires_in`` seconds from now."""
        with self._lock:
            self._entries[key] = CachedToken(
                access_token=access_token,
                expires_at=self._clock() + expires_in,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StaticTokenAuth:
    """Use a pre-generated (two- or three-legged) access token."""

    def __init__(self, access_token: str) -> None:
        if not access_token:
            raise AuthenticationError("An access token is required")
        self._access_token = access_token

    def get_headers(self, scopes: Iterable[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}


class ClientCredentialsAuth:
    """Two-legged authentication with a client id and secret."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        host: str = API_URL,
        cache: TokenCache | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the provider.

        Args:
            client_id: Application client id.
            client_secret: Application client secret.
            host: Service host the authentication endpoint lives on.
            cache: Token cache to use; a private one is created by default.
            timeout: Timeout in seconds for token requests.
        """
        if not client_id or not client_secret:
            raise AuthenticationError("Both client_id and client_secret are required")
        self.client_id = client_id
        self._client_secret = client_secret
        self._host = host.rstrip("/")
        self._cache = cache or TokenCache()
        self._timeout = timeout

    @property
    def cache(self) -> TokenCache:
        return self._cache

    def authenticate(self, scopes: Iterable[str], force: bool = False) -> str:
        """Return an access token for ``scopes``, requesting one if needed.

        Args:
            scopes: OAuth scopes the token must carry.
            force: Skip the cache and always request a new token.

        Returns:
            The access token.

        Raises:
            AuthenticationError: If the service rejects the credentials.
        """
        scopes = list(scopes)
        key = TokenCache.key_for(scopes)
        if not force:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        logger.debug("Requesting access token for scopes=%s", key)
        response = requests.post(
            f"{self._host}/{AUTH_ROOT_PATH}/authenticate",
            data={
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
                "scope": " ".join(scopes),
            },
            timeout=self._timeout,
        )
        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed with HTTP {response.status_code}: "
                f"{extract_error_detail(response)}"
            )
        body = response.json()
        access_token = body["access_token"]
        expires_in = max(
            float(body.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_SECONDS, 0
        )
        self._cache.put(key, access_token, expires_in)
        return access_token

    def get_headers(self, scopes: Iterable[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.authenticate(scopes)}"}
