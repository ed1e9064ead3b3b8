"""
Error taxonomy for the Todo API. Each error carries the HTTP status it maps to;
the message is sent verbatim as a text/plain response body.
"""


class TodoApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# --- 401 ---


class AuthError(TodoApiError):
    status_code = 401
    default_message = "Unauthorized"


class MissingAuthError(AuthError):
    default_message = "Missing Authorization header"


class MalformedAuthHeaderError(AuthError):
    default_message = "Invalid Authorization header format"


class TokenError(AuthError):
    """Token could not be accepted. Rendered as 'Invalid token: <detail>'."""

    default_message = "invalid token"

    @property
    def message(self) -> str:
        return f"Invalid token: {self}"


class MalformedTokenError(TokenError):
    default_message = "invalid token header: missing kid"


class UnknownKeyError(TokenError):
    default_message = "unable to find matching key"


class KeyDecodeError(TokenError):
    default_message = "failed to decode RSA public key"


class KeySetFetchError(TokenError):
    default_message = "failed to fetch JWKS"


class SignatureInvalidError(TokenError):
    default_message = "failed to parse token"


class ClaimMissingError(TokenError):
    default_message = "aud claim missing"


class AudienceMismatchError(TokenError):
    default_message = "invalid audience"


# --- 400 ---


class RequestDecodeError(TodoApiError):
    status_code = 400
    default_message = "Invalid request body"


class InvalidTenantError(RequestDecodeError):
    default_message = "Missing X-Tenant-ID header"


# --- 405 / 500 ---


class MethodNotSupportedError(TodoApiError):
    status_code = 405
    default_message = "Method not allowed"


class StoreError(TodoApiError):
    status_code = 500
    default_message = "Store operation failed"
