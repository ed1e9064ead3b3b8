"""
Bearer authentication for the Todo API.
Every request except OPTIONS and /health must carry a Cognito token issued for our app client.
"""
import logging

from fastapi import Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from todo_api.errors import AuthError, MalformedAuthHeaderError, MissingAuthError, UnknownKeyError
from todo_api.jwks import KeySetFetcher
from todo_api.tokens import DEFAULT_ALGORITHMS, Claims, validate

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"/health"})


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from 'Bearer <token>'. Exactly one space, case-sensitive scheme."""
    if not authorization:
        raise MissingAuthError()
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise MalformedAuthHeaderError()
    return parts[1]


class Authenticator:
    def __init__(
        self,
        fetcher: KeySetFetcher,
        audience: str,
        algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS,
    ):
        self.fetcher = fetcher
        self.audience = audience
        self.algorithms = algorithms

    def verify(self, token: str) -> Claims:
        key_set = self.fetcher.get_key_set()
        try:
            return validate(token, key_set, self.audience, self.algorithms)
        except UnknownKeyError:
            if not self.fetcher.caches:
                raise
            # Cached set may predate a key rotation; refetch once.
            logger.info("kid not in cached JWKS; refreshing")
            return validate(token, self.fetcher.get_key_set(refresh=True), self.audience, self.algorithms)

    def authenticate(self, authorization: str | None) -> Claims:
        """Authorization header value -> verified Claims. Raises AuthError."""
        return self.verify(parse_bearer(authorization))


async def auth_middleware(request: Request, call_next):
    """Reject unauthenticated requests before they reach routing or handlers."""
    if request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
        return await call_next(request)
    authenticator: Authenticator = request.app.state.authenticator
    try:
        # JWKS fetch is blocking I/O
        claims = await run_in_threadpool(authenticator.authenticate, request.headers.get("Authorization"))
    except AuthError as e:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, e.message)
        return PlainTextResponse(e.message, status_code=e.status_code, headers={"WWW-Authenticate": "Bearer"})
    request.state.claims = claims
    return await call_next(request)
