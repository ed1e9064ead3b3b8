"""
JWKS retrieval from the identity provider (Cognito user pool).
Parses the well-known document into a KeySet indexed by kid.
"""
import logging
import threading
import time
from dataclasses import dataclass

import httpx

from todo_api.errors import KeySetFetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JWK:
    kid: str
    kty: str
    alg: str
    use: str
    n: str
    e: str


@dataclass(frozen=True)
class KeySet:
    keys: tuple[JWK, ...]

    def find(self, kid: str) -> JWK | None:
        """Exact-match lookup by key id; first match wins."""
        for key in self.keys:
            if key.kid == kid:
                return key
        return None

    def __len__(self) -> int:
        return len(self.keys)

    @classmethod
    def from_dict(cls, document: object) -> "KeySet":
        """Parse a JWKS document. Raises KeySetFetchError if it is not one."""
        if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
            raise KeySetFetchError("failed to decode JWKS: missing 'keys' array")
        keys = []
        for raw in document["keys"]:
            if not isinstance(raw, dict):
                raise KeySetFetchError("failed to decode JWKS: key entry is not an object")
            for member in ("kid", "n", "e"):
                if not isinstance(raw.get(member), str):
                    raise KeySetFetchError(f"failed to decode JWKS: key entry missing '{member}'")
            keys.append(
                JWK(
                    kid=raw["kid"],
                    kty=str(raw.get("kty", "")),
                    alg=str(raw.get("alg", "")),
                    use=str(raw.get("use", "")),
                    n=raw["n"],
                    e=raw["e"],
                )
            )
        return cls(keys=tuple(keys))


class KeySetFetcher:
    """Fetches the JWKS on every call. Subclasses may cache."""

    caches = False

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def fetch(self) -> KeySet:
        try:
            r = httpx.get(self.url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("JWKS fetch from %s failed: %s", self.url, e)
            raise KeySetFetchError(f"failed to fetch JWKS: {e}") from e
        if not r.is_success:
            logger.warning("JWKS fetch from %s returned HTTP %s", self.url, r.status_code)
            raise KeySetFetchError(f"failed to fetch JWKS: HTTP {r.status_code}")
        try:
            document = r.json()
        except ValueError as e:
            raise KeySetFetchError(f"failed to decode JWKS: {e}") from e
        key_set = KeySet.from_dict(document)
        logger.debug("Fetched JWKS with %d key(s) from %s", len(key_set), self.url)
        return key_set

    def get_key_set(self, refresh: bool = False) -> KeySet:
        return self.fetch()


class CachingKeySetFetcher(KeySetFetcher):
    """
    Keeps the last fetched KeySet for ttl seconds. Callers pass refresh=True after a
    kid miss so rotated keys are picked up without waiting for expiry; forced refreshes
    are throttled to one per min_refresh_interval so unknown kids cannot drive fetches.

    Only one thread fetches at a time. While it does, other callers get the cached
    set (even if stale) instead of waiting; they block only when nothing is cached yet.
    """

    caches = True

    def __init__(self, url: str, timeout: float = 5.0, ttl: int = 300, min_refresh_interval: float = 30.0):
        super().__init__(url, timeout)
        self.ttl = ttl
        self.min_refresh_interval = min_refresh_interval
        # (key_set, fetched_at), replaced as a whole
        self._entry: tuple[KeySet, float] | None = None
        self._lock = threading.Lock()

    def get_key_set(self, refresh: bool = False) -> KeySet:
        entry = self._entry
        if entry is not None:
            key_set, fetched_at = entry
            age = time.monotonic() - fetched_at
            if not refresh and age < self.ttl:
                return key_set
            if refresh and age < self.min_refresh_interval:
                logger.debug("JWKS refresh skipped; last fetch %.1fs ago", age)
                return key_set
            if not self._lock.acquire(blocking=False):
                return key_set
        else:
            self._lock.acquire()
        try:
            current = self._entry
            if current is not None and current is not entry:
                # Another caller fetched while we waited for the lock.
                return current[0]
            key_set = self.fetch()
            self._entry = (key_set, time.monotonic())
            return key_set
        finally:
            self._lock.release()


def build_fetcher(url: str, timeout: float, ttl: int, min_refresh_interval: float = 30.0) -> KeySetFetcher:
    """Plain fetcher when ttl <= 0, caching fetcher otherwise."""
    if ttl <= 0:
        return KeySetFetcher(url, timeout)
    return CachingKeySetFetcher(url, timeout, ttl, min_refresh_interval)
