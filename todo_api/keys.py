"""
RSA public key decoding from JWK members (n, e).
JWKS publishers disagree on exponent width, so the exponent rule below is kept exact.
"""
import base64
import binascii
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey as _CryptoRSAPublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers

from todo_api.errors import KeyDecodeError

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")
_UINT64_MASK = (1 << 64) - 1


def b64url_decode(value: str, what: str = "value") -> bytes:
    """Decode unpadded base64url. Raises KeyDecodeError on anything else."""
    if not isinstance(value, str) or not _B64URL_RE.match(value):
        raise KeyDecodeError(f"failed to decode {what}: illegal base64url data")
    try:
        return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except (binascii.Error, ValueError) as e:
        raise KeyDecodeError(f"failed to decode {what}: {e}") from e


def decode_exponent(e_bytes: bytes) -> int:
    """
    Short exponents (< 4 bytes, e.g. AQAB = 65537) are accumulated byte by byte;
    4 bytes or more are read as a big-endian integer truncated to its low 64 bits.
    """
    if len(e_bytes) < 4:
        e = 0
        for b in e_bytes:
            e = (e << 8) + b
        return e
    return int.from_bytes(e_bytes, "big") & _UINT64_MASK


@dataclass(frozen=True)
class RSAPublicKey:
    modulus: int
    exponent: int

    def public_key(self) -> _CryptoRSAPublicKey:
        """Build a cryptography public key usable for signature verification."""
        # Not every cryptography release rejects these itself.
        if self.modulus <= 0 or self.modulus % 2 == 0:
            raise KeyDecodeError("invalid RSA public key: modulus must be a positive odd integer")
        if self.exponent < 3 or self.exponent % 2 == 0:
            raise KeyDecodeError("invalid RSA public key: exponent must be an odd integer >= 3")
        try:
            return RSAPublicNumbers(self.exponent, self.modulus).public_key()
        except ValueError as e:
            raise KeyDecodeError(f"invalid RSA public key: {e}") from e


def decode_rsa_public_key(n: str, e: str) -> RSAPublicKey:
    """Convert base64url modulus/exponent strings (JWK n, e) into an RSAPublicKey."""
    n_bytes = b64url_decode(n, "n")
    e_bytes = b64url_decode(e, "e")
    return RSAPublicKey(modulus=int.from_bytes(n_bytes, "big"), exponent=decode_exponent(e_bytes))
