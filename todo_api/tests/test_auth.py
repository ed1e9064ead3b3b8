"""
Tests for bearer header parsing, the Authenticator and the auth middleware.
"""
import pytest
from fastapi.testclient import TestClient

from todo_api.auth import Authenticator, parse_bearer
from todo_api.errors import KeySetFetchError, MalformedAuthHeaderError, MissingAuthError, UnknownKeyError
from todo_api.jwks import CachingKeySetFetcher, KeySet, KeySetFetcher
from todo_api.main import create_app

AUDIENCE = "test-client"


class SequenceFetcher(KeySetFetcher):
    """Returns the given JWKS documents in order, one per fetch."""

    def __init__(self, *documents, caches=False):
        super().__init__("https://jwks.invalid")
        self.documents = list(documents)
        self.caches = caches
        self.refreshes = 0

    def fetch(self) -> KeySet:
        return KeySet.from_dict(self.documents.pop(0))

    def get_key_set(self, refresh: bool = False) -> KeySet:
        if refresh:
            self.refreshes += 1
        return self.fetch()


# --- header parsing ---


@pytest.mark.parametrize("value", [None, ""])
def test_missing_header(value):
    with pytest.raises(MissingAuthError) as exc:
        parse_bearer(value)
    assert str(exc.value) == "Missing Authorization header"


@pytest.mark.parametrize("value", ["Basic dXNlcjpwYXNz", "Bearer", "bearer abc", "Bearer a b", "Bearer  abc", "abc"])
def test_malformed_header(value):
    with pytest.raises(MalformedAuthHeaderError) as exc:
        parse_bearer(value)
    assert str(exc.value) == "Invalid Authorization header format"


def test_bearer_token_extracted():
    assert parse_bearer("Bearer abc.def.ghi") == "abc.def.ghi"


# --- Authenticator ---


def test_authenticate_returns_claims(make_token, jwks):
    auth = Authenticator(SequenceFetcher(jwks), audience=AUDIENCE)
    claims = auth.authenticate(f"Bearer {make_token(sub='bob')}")
    assert claims.subject == "bob"


def test_unknown_key_refetched_once_when_cached(make_token, jwks):
    """A key rotated in after the cache was filled is found on the forced refresh."""
    fetcher = SequenceFetcher({"keys": []}, jwks, caches=True)
    auth = Authenticator(fetcher, audience=AUDIENCE)
    assert auth.verify(make_token()).audience == AUDIENCE
    assert fetcher.refreshes == 1


def test_unknown_key_not_retried_without_cache(make_token, jwks):
    fetcher = SequenceFetcher({"keys": []}, jwks, caches=False)
    auth = Authenticator(fetcher, audience=AUDIENCE)
    with pytest.raises(UnknownKeyError):
        auth.verify(make_token())
    assert fetcher.refreshes == 0


def test_unknown_key_after_refresh_still_fails(make_token, other_rsa_key, jwks):
    fetcher = SequenceFetcher(jwks, jwks, caches=True)
    auth = Authenticator(fetcher, audience=AUDIENCE)
    with pytest.raises(UnknownKeyError):
        auth.verify(make_token(kid="unknown", key=other_rsa_key))
    assert fetcher.refreshes == 1


def test_unknown_kids_cannot_force_repeated_fetches(make_token, other_rsa_key, jwks):
    class CountingFetcher(CachingKeySetFetcher):
        def __init__(self):
            super().__init__("https://jwks.invalid", ttl=300, min_refresh_interval=30)
            self.calls = 0

        def fetch(self) -> KeySet:
            self.calls += 1
            return KeySet.from_dict(jwks)

    fetcher = CountingFetcher()
    auth = Authenticator(fetcher, audience=AUDIENCE)
    auth.verify(make_token())
    for i in range(5):
        with pytest.raises(UnknownKeyError):
            auth.verify(make_token(kid=f"junk-{i}", key=other_rsa_key))
    assert fetcher.calls == 1


# --- middleware (through the app) ---


def test_request_without_authorization_is_401(client):
    response = client.get("/", headers={"X-Tenant-ID": "t1"})
    assert response.status_code == 401
    assert "Missing Authorization header" in response.text
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_malformed_authorization_is_401(client):
    response = client.get("/", headers={"Authorization": "Token abc", "X-Tenant-ID": "t1"})
    assert response.status_code == 401
    assert "Invalid Authorization header format" in response.text


def test_token_for_other_audience_is_401(client, make_token, auth_headers):
    response = client.get("/", headers=auth_headers(token=make_token(aud="another-app")))
    assert response.status_code == 401
    assert response.text.startswith("Invalid token:")
    assert "invalid audience" in response.text


def test_garbage_token_is_401(client, auth_headers):
    response = client.get("/", headers=auth_headers(token="garbage"))
    assert response.status_code == 401
    assert "Invalid token" in response.text


def test_auth_runs_before_body_decoding(client):
    response = client.post("/", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 401


def test_auth_runs_before_method_dispatch(client):
    response = client.patch("/", json={})
    assert response.status_code == 401


def test_jwks_outage_is_401(settings, store, auth_headers):
    class DownFetcher(KeySetFetcher):
        def fetch(self):
            raise KeySetFetchError("failed to fetch JWKS: connection refused")

    client = TestClient(create_app(settings, store=store, fetcher=DownFetcher("https://jwks.invalid")))
    response = client.get("/", headers=auth_headers())
    assert response.status_code == 401
    assert "failed to fetch JWKS" in response.text


def test_keys_fetched_per_request_without_cache(client, fetcher, auth_headers):
    client.get("/", headers=auth_headers())
    client.get("/", headers=auth_headers())
    assert fetcher.calls == 2


def test_health_and_preflight_skip_auth(client):
    assert client.get("/health").status_code == 200
    assert client.options("/").status_code == 200
