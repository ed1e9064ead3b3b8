"""
Todo API configuration. All values come from the environment.
Region, user pool id and client id are public identifiers, not secrets.
"""
import os
from dataclasses import dataclass

# DynamoDB table holding every tenant's todo items
TABLE_NAME = os.environ.get("TABLE_NAME", "todos")

# Cognito user pool — where we fetch JWKS
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
COGNITO_USER_POOL_ID = os.environ.get("COGNITO_USER_POOL_ID", "")

# Our app client id — tokens must carry this in aud
COGNITO_CLIENT_ID = os.environ.get("COGNITO_CLIENT_ID", "")

# Optional override of the JWKS location (e.g. a local mock identity provider)
JWKS_URL = os.environ.get("JWKS_URL", "").strip() or None
JWKS_TIMEOUT_SECONDS = float(os.environ.get("JWKS_TIMEOUT_SECONDS", "5"))
# 0 disables caching: keys are fetched on every request
JWKS_CACHE_TTL_SECONDS = int(os.environ.get("JWKS_CACHE_TTL_SECONDS", "300"))
# Forced refreshes after an unknown kid are limited to one per this many seconds
JWKS_MIN_REFRESH_SECONDS = float(os.environ.get("JWKS_MIN_REFRESH_SECONDS", "30"))

# Signature algorithms accepted from the token header. RSA only.
JWT_ALGORITHMS = tuple(
    a.strip() for a in os.environ.get("JWT_ALGORITHMS", "RS256,RS384,RS512").split(",") if a.strip()
)

# "dynamodb" (default) or "memory" for local development
TODO_STORE = os.environ.get("TODO_STORE", "dynamodb").strip().lower()
# Set for DynamoDB Local, e.g. http://127.0.0.1:8001
DYNAMODB_ENDPOINT_URL = os.environ.get("DYNAMODB_ENDPOINT_URL", "").strip() or None
DYNAMODB_TIMEOUT_SECONDS = float(os.environ.get("DYNAMODB_TIMEOUT_SECONDS", "5"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
PORT = int(os.environ.get("PORT", "8080"))


def cognito_jwks_url(region: str, user_pool_id: str) -> str:
    """Well-known JWKS document of a Cognito user pool."""
    return f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}/.well-known/jwks.json"


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, built once at startup and handed to create_app()."""

    table_name: str
    region: str
    user_pool_id: str
    client_id: str
    jwks_url_override: str | None = None
    jwks_timeout: float = 5.0
    jwks_cache_ttl: int = 300
    jwks_min_refresh_interval: float = 30.0
    algorithms: tuple[str, ...] = ("RS256", "RS384", "RS512")
    store_backend: str = "dynamodb"
    dynamodb_endpoint_url: str | None = None
    dynamodb_timeout: float = 5.0

    @property
    def jwks_url(self) -> str:
        if self.jwks_url_override:
            return self.jwks_url_override
        return cognito_jwks_url(self.region, self.user_pool_id)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            table_name=TABLE_NAME,
            region=AWS_REGION,
            user_pool_id=COGNITO_USER_POOL_ID,
            client_id=COGNITO_CLIENT_ID,
            jwks_url_override=JWKS_URL,
            jwks_timeout=JWKS_TIMEOUT_SECONDS,
            jwks_cache_ttl=JWKS_CACHE_TTL_SECONDS,
            jwks_min_refresh_interval=JWKS_MIN_REFRESH_SECONDS,
            algorithms=JWT_ALGORITHMS,
            store_backend=TODO_STORE,
            dynamodb_endpoint_url=DYNAMODB_ENDPOINT_URL,
            dynamodb_timeout=DYNAMODB_TIMEOUT_SECONDS,
        )
