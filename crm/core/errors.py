"""
Service-layer error taxonomy.

Authentication failures (401) and authorisation failures (403) are
caller-recoverable: the API layer turns them into a "re-authenticate" or
"not allowed" response. Anything that is not a ``ServiceError`` is
unexpected and surfaces as a 500.
"""
from typing import Optional


class ServiceError(Exception):
    """Base class for errors mapped to HTTP responses by the API layer."""

    status_code: int = 400
    error_code: str = "BAD_REQUEST"
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(ServiceError):
    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Could not validate credentials"


class MissingTokenError(AuthenticationError):
    error_code = "MISSING_TOKEN"
    default_message = "No token provided, authorization denied"


class InvalidTokenError(AuthenticationError):
    """Token is unusable: bad signature, unknown, consumed or revoked."""

    error_code = "INVALID_TOKEN"
    default_message = "Invalid token"


class MalformedTokenError(InvalidTokenError):
    """Signature check failed or the token could not be parsed."""

    default_message = "Malformed token"


class ExpiredTokenError(AuthenticationError):
    error_code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class WrongTokenPurposeError(AuthenticationError):
    error_code = "WRONG_TOKEN_PURPOSE"
    default_message = "Token cannot be used for this purpose"


class TokenFamilyMismatchError(AuthenticationError):
    error_code = "TOKEN_FAMILY_MISMATCH"
    default_message = "Refresh token does not belong to its session"


class EncodingError(AuthenticationError):
    error_code = "TOKEN_ENCODING_FAILED"
    default_message = "Could not issue token"


class InvalidCredentialsError(AuthenticationError):
    error_code = "INVALID_CREDENTIALS"
    default_message = "Incorrect email or password"


class ForbiddenError(ServiceError):
    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class ConflictError(ServiceError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource already exists"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"
