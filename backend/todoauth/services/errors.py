"""Domain errors for authentication and token lifecycle.

Every error carries an explicit ``kind`` from :class:`ErrorKind` and the
HTTP status it maps to, so the API layer renders all of them through one
handler. Infrastructure faults are a separate kind (``unavailable``) and
are never folded into credential or token errors.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_DISABLED = "account_disabled"
    DUPLICATE_IDENTITY = "duplicate_identity"
    TOKEN_EXPIRED = "token_expired"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"


class AuthError(Exception):
    """Base authentication error."""

    kind: ErrorKind = ErrorKind.UNAUTHORIZED
    status_code: int = 401

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCredentialsError(AuthError):
    """Unknown identifier or wrong password (deliberately indistinguishable)."""

    kind = ErrorKind.INVALID_CREDENTIALS
    status_code = 401


class AccountLockedError(AuthError):
    """Account locked after too many failed login attempts."""

    kind = ErrorKind.ACCOUNT_LOCKED
    status_code = 423


class AccountDisabledError(AuthError):
    """Account has been disabled."""

    kind = ErrorKind.ACCOUNT_DISABLED
    status_code = 403


class DuplicateIdentityError(AuthError):
    """Username or email already registered."""

    kind = ErrorKind.DUPLICATE_IDENTITY
    status_code = 409


class TokenError(AuthError):
    """JWT token cannot be used (expired, malformed, bad signature, wrong type, revoked)."""

    kind = ErrorKind.TOKEN_EXPIRED
    status_code = 401


class TokenExpiredError(TokenError):
    """Token lifetime has elapsed or the token was revoked."""


class InvalidSignatureError(TokenError):
    """Token signature does not verify against the signing key."""


class MalformedTokenError(TokenError):
    """Token is structurally invalid or carries unexpected claims."""


class NotFoundError(AuthError):
    """User or session not found."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404


class UnauthorizedError(AuthError):
    """Missing or malformed credentials on a protected request."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class ServiceUnavailableError(AuthError):
    """A backing store (database, Redis) could not be reached."""

    kind = ErrorKind.UNAVAILABLE
    status_code = 503
