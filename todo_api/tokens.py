"""
Bearer token (JWT) validation against a fetched KeySet.

Order matters: the signature is verified before any claim is inspected, and the
audience check runs on top of signature validation because the user pool also
issues tokens for other app clients.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import jwt

from todo_api.errors import (
    AudienceMismatchError,
    ClaimMissingError,
    MalformedTokenError,
    SignatureInvalidError,
    UnknownKeyError,
)
from todo_api.jwks import KeySet
from todo_api.keys import decode_rsa_public_key

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHMS = ("RS256", "RS384", "RS512")


@dataclass(frozen=True)
class Claims:
    audience: str
    subject: str | None = None
    issuer: str | None = None
    token_use: str | None = None
    expires_at: int | None = None
    issued_at: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Claims":
        aud = payload.get("aud")
        if not isinstance(aud, str):
            raise ClaimMissingError("aud claim missing")
        return cls(
            audience=aud,
            subject=_opt_str(payload.get("sub")),
            issuer=_opt_str(payload.get("iss")),
            token_use=_opt_str(payload.get("token_use")),
            expires_at=_opt_int(payload.get("exp")),
            issued_at=_opt_int(payload.get("iat")),
            raw=dict(payload),
        )


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _opt_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def read_header(token: str) -> tuple[str, str | None]:
    """Return (kid, alg) from the unverified token header."""
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as e:
        raise MalformedTokenError(f"malformed token: {e}") from e
    kid = header.get("kid")
    if not isinstance(kid, str):
        raise MalformedTokenError("invalid token header: missing kid")
    alg = header.get("alg")
    return kid, alg if isinstance(alg, str) else None


def validate(
    token: str,
    key_set: KeySet,
    expected_audience: str,
    algorithms: Iterable[str] = DEFAULT_ALGORITHMS,
) -> Claims:
    """
    Verify token against key_set and require aud == expected_audience.
    Returns typed Claims; raises a TokenError subclass on any failure.
    """
    kid, alg = read_header(token)

    jwk = key_set.find(kid)
    if jwk is None:
        raise UnknownKeyError("unable to find matching key")

    public_key = decode_rsa_public_key(jwk.n, jwk.e).public_key()

    allowed = list(algorithms)
    if alg not in allowed:
        raise SignatureInvalidError(f"failed to parse token: unexpected signing method: {alg}")
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=[alg],
            options={"verify_signature": True, "verify_exp": True, "verify_aud": False},
        )
    except jwt.PyJWTError as e:
        logger.debug("JWT verification failed for kid=%s: %s", kid, e)
        raise SignatureInvalidError(f"failed to parse token: {e}") from e

    claims = Claims.from_payload(payload)
    if claims.audience != expected_audience:
        raise AudienceMismatchError(
            f"invalid audience: expected {expected_audience}, got {claims.audience}"
        )
    return claims
