import pytest
import requests_mock

from ossclient.core.auth import (
    ClientCredentialsAuth,
    StaticTokenAuth,
    TokenCache,
)
from ossclient.core.exceptions import AuthenticationError

AUTH_URL = "https://oss.test/authentication/v1/authenticate"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials_auth(clock):
    return ClientCredentialsAuth(
        "client-id",
        "client-secret",
        host="https://oss.test",
        cache=TokenCache(clock=clock),
    )


def test_cache_returns_token_until_expiry(clock):
    cache = TokenCache(clock=clock)
    cache.put("data:read", "token-1", expires_in=10)

    clock.now += 9.9
    assert cache.get("data:read") == "token-1"

    clock.now += 0.1
    assert cache.get("data:read") is None
    assert len(cache) == 0


def test_cache_key_ignores_scope_order():
    assert TokenCache.key_for(["data:write", "bucket:create"]) == TokenCache.key_for(
        ["bucket:create", "data:write"]
    )


def test_cache_evicts_least_recently_used(clock):
    cache = TokenCache(clock=clock, capacity=2)
    cache.put("a", "token-a", 60)
    cache.put("b", "token-b", 60)
    cache.get("a")

    cache.put("c", "token-c", 60)

    assert len(cache) == 2
    assert cache.get("a") == "token-a"
    assert cache.get("b") is None
    assert cache.get("c") == "token-c"


def test_cache_invalidate(clock):
    cache = TokenCache(clock=clock)
    cache.put("a", "token-a", 60)
    cache.put("b", "token-b", 60)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == "token-b"

    cache.invalidate()
    assert len(cache) == 0


def test_cache_rejects_zero_capacity():
    with pytest.raises(ValueError):
        TokenCache(capacity=0)


def test_static_token_headers():
    auth = StaticTokenAuth("abc")

    assert auth.get_headers(["data:read"]) == {"Authorization": "Bearer abc"}


def test_static_token_requires_a_token():
    with pytest.raises(AuthenticationError):
        StaticTokenAuth("")


def test_client_credentials_request_token(credentials_auth):
    with requests_mock.Mocker() as m:
        m.post(AUTH_URL, json={"access_token": "token-1", "expires_in": 3599})

        headers = credentials_auth.get_headers(["data:read", "bucket:read"])

        body = m.last_request.text
        assert "grant_type=client_credentials" in body
        assert "client_id=client-id" in body
        assert "scope=data%3Aread+bucket%3Aread" in body

    assert headers == {"Authorization": "Bearer token-1"}


def test_client_credentials_reuses_cached_token(credentials_auth, clock):
    with requests_mock.Mocker() as m:
        m.post(AUTH_URL, json={"access_token": "token-1", "expires_in": 3599})

        credentials_auth.authenticate(["data:read"])
        clock.now += 3000
        credentials_auth.authenticate(["data:read"])

        assert m.call_count == 1


def test_client_credentials_refreshes_before_expiry(credentials_auth, clock):
    with requests_mock.Mocker() as m:
        m.post(
            AUTH_URL,
            [
                {"json": {"access_token": "token-1", "expires_in": 3599}},
                {"json": {"access_token": "token-2", "expires_in": 3599}},
            ],
        )

        assert credentials_auth.authenticate(["data:read"]) == "token-1"
        # Refreshed a minute ahead of the service expiry
        clock.now += 3599 - 60
        assert credentials_auth.authenticate(["data:read"]) == "token-2"


def test_client_credentials_caches_per_scope_set(credentials_auth):
    with requests_mock.Mocker() as m:
        m.post(AUTH_URL, json={"access_token": "token-1", "expires_in": 3599})

        credentials_auth.authenticate(["data:read"])
        credentials_auth.authenticate(["data:write"])

        assert m.call_count == 2
        assert len(credentials_auth.cache) == 2


def test_client_credentials_force_skips_cache(credentials_auth):
    with requests_mock.Mocker() as m:
        m.post(AUTH_URL, json={"access_token": "token-1", "expires_in": 3599})

        credentials_auth.authenticate(["data:read"])
        credentials_auth.authenticate(["data:read"], force=True)

        assert m.call_count == 2


def test_client_credentials_rejected(credentials_auth):
    with requests_mock.Mocker() as m:
        m.post(
            AUTH_URL,
            status_code=401,
            json={"developerMessage": "The client_id specified does not exist"},
        )

        with pytest.raises(AuthenticationError, match="does not exist"):
            credentials_auth.authenticate(["data:read"])

    assert len(credentials_auth.cache) == 0


def test_client_credentials_require_id_and_secret():
    with pytest.raises(AuthenticationError):
        ClientCredentialsAuth("", "secret")
