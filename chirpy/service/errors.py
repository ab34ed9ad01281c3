from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code:
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - validation_error (400)
    - server_error (500)

    Storage conflicts surface as ``ConstraintViolation`` and map to 409.
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class CredentialError(AuthenticationError):
    """Unknown email or wrong password. Both read the same to the client."""
    error_code = "invalid_credentials"


class TokenMalformedError(AuthenticationError):
    """Bad signature, bad structure or missing claims."""
    error_code = "token_malformed"


class TokenExpiredError(AuthenticationError):
    error_code = "token_expired"


class TokenKindMismatchError(AuthenticationError):
    """Token carries the wrong issuer label for the flow presenting it."""
    error_code = "token_kind_mismatch"


class RefreshTokenNotFoundError(AuthenticationError):
    """Refresh token is validly signed but has no persisted record."""
    error_code = "refresh_token_not_found"


class ForbiddenError(ServiceError):
    """Access denied - insufficient permissions (403)."""
    status_code = 403
    error_code = "forbidden"


class SubjectFormatError(ForbiddenError):
    """Token subject is not a decimal user id."""
    error_code = "subject_format"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


class SigningError(ServerError):
    """Token could not be signed or verified because of the key."""
    error_code = "signing_error"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "CredentialError",
    "TokenMalformedError",
    "TokenExpiredError",
    "TokenKindMismatchError",
    "RefreshTokenNotFoundError",
    "ForbiddenError",
    "SubjectFormatError",
    "NotFoundError",
    "ServerError",
    "SigningError",
]
