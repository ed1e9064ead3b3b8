"""
Pytest configuration for todo_api. RSA keys are generated per session; JWKS fetches
are served from memory so no test touches the network or DynamoDB.
"""
import base64
import time

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient

from todo_api.config import Settings
from todo_api.jwks import KeySet, KeySetFetcher
from todo_api.main import create_app
from todo_api.store import InMemoryTodoStore

CLIENT_ID = "test-client"
KID = "test-key"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    return base64.urlsafe_b64encode(value.to_bytes(length, "big")).rstrip(b"=").decode("ascii")


def jwk_for(private_key, kid: str = KID) -> dict:
    pub = private_key.public_key().public_numbers()
    return {
        "kid": kid,
        "kty": "RSA",
        "alg": "RS256",
        "use": "sig",
        "n": _int_to_b64url(pub.n),
        "e": _int_to_b64url(pub.e),
    }


class StaticFetcher(KeySetFetcher):
    """Serves a fixed JWKS document; counts fetches."""

    def __init__(self, document: dict):
        super().__init__("https://jwks.invalid/.well-known/jwks.json")
        self.document = document
        self.calls = 0

    def fetch(self) -> KeySet:
        self.calls += 1
        return KeySet.from_dict(self.document)


@pytest.fixture(scope="session")
def rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture(scope="session")
def other_rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def jwks(rsa_key):
    return {"keys": [jwk_for(rsa_key)]}


@pytest.fixture
def make_token(rsa_key):
    """Factory: signed ID-token-like JWT. Pass aud=None to omit the claim."""

    def _make(*, aud=CLIENT_ID, sub="user-1", kid=KID, key=None, expires_in=3600, **extra):
        now = int(time.time())
        payload = {"sub": sub, "iat": now, "exp": now + expires_in, "token_use": "id", **extra}
        if aud is not None:
            payload["aud"] = aud
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, key or rsa_key, algorithm="RS256", headers=headers)

    return _make


@pytest.fixture
def settings():
    return Settings(
        table_name="todos",
        region="us-east-1",
        user_pool_id="us-east-1_TEST",
        client_id=CLIENT_ID,
        jwks_cache_ttl=0,
        store_backend="memory",
    )


@pytest.fixture
def store():
    return InMemoryTodoStore()


@pytest.fixture
def fetcher(jwks):
    return StaticFetcher(jwks)


@pytest.fixture
def client(settings, store, fetcher):
    return TestClient(create_app(settings, store=store, fetcher=fetcher))


@pytest.fixture
def auth_headers(make_token):
    def _headers(tenant: str | None = "t1", token: str | None = None) -> dict:
        headers = {"Authorization": f"Bearer {token or make_token()}"}
        if tenant is not None:
            headers["X-Tenant-ID"] = tenant
        return headers

    return _headers
