"""Token codec: issues and parses signed JWT access and refresh tokens.

Tokens are HS256-signed with the base64-decoded ``JWT_SECRET``. Access and
refresh tokens are told apart by the ``type`` claim. Parsing checks
signature, structure, issuer and expiry, but never the revocation store;
callers combine the two (see ``RevocationStore.validate_access``).

Expiry is evaluated against the codec's clock with no leeway: a token whose
``exp`` equals the current second is already expired.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import jwt
from jwt.exceptions import PyJWTError

from todoauth.services.errors import InvalidSignatureError, MalformedTokenError, TokenExpiredError

if TYPE_CHECKING:
    from todoauth.core.config import Settings
    from todoauth.models.user import User

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

REQUIRED_CLAIMS = ["sub", "userId", "type", "iat", "exp"]

# Access tokens closer than this to expiry should be refreshed by clients
REFRESH_THRESHOLD = timedelta(minutes=5)


class TokenType(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


_WRONG_TYPE_MESSAGES = {
    TokenType.ACCESS: "Not an access token",
    TokenType.REFRESH: "Not a refresh token",
}


def utc_now() -> datetime:
    return datetime.now(UTC)


class TokenCodec:
    """Create and parse signed, expiring, claim-bearing tokens."""

    algorithm = "HS256"

    def __init__(
        self,
        signing_key: bytes,
        issuer: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Clock | None = None,
    ):
        self._signing_key = signing_key
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock or utc_now

    @classmethod
    def from_settings(cls, settings: "Settings", clock: Clock | None = None) -> "TokenCodec":
        return cls(
            signing_key=settings.jwt_signing_key,
            issuer=settings.jwt_issuer,
            access_ttl=timedelta(seconds=settings.jwt_access_token_expiration),
            refresh_ttl=timedelta(seconds=settings.jwt_refresh_token_expiration),
            clock=clock,
        )

    def now(self) -> datetime:
        return self._clock()

    def ttl_for(self, kind: TokenType) -> timedelta:
        return self.access_ttl if kind == TokenType.ACCESS else self.refresh_ttl

    # --- Issuance ---

    def issue(self, user: "User", kind: TokenType, ttl: timedelta | None = None) -> str:
        """Sign a new token of ``kind`` for ``user``."""
        now = self.now()
        if ttl is None:
            ttl = self.ttl_for(kind)
        payload: dict[str, Any] = {
            "sub": user.username,
            "userId": str(user.id),
            "type": kind.value,
            "iss": self.issuer,
            "iat": now,
            "exp": now + ttl,
            # Two tokens minted in the same second must still differ
            "jti": secrets.token_hex(16),
        }
        if kind == TokenType.ACCESS:
            payload["email"] = user.email
            payload["enabled"] = bool(user.enabled)
        token = jwt.encode(payload, self._signing_key, algorithm=self.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token)

    def issue_access_token(self, user: "User") -> str:
        return self.issue(user, TokenType.ACCESS)

    def issue_refresh_token(self, user: "User") -> str:
        return self.issue(user, TokenType.REFRESH)

    # --- Parsing ---

    def parse(self, token: str) -> dict[str, Any]:
        """Verify a token and return its claims.

        Raises:
            InvalidSignatureError: signature does not match the signing key
            MalformedTokenError: not a JWT, wrong issuer or missing claims
            TokenExpiredError: ``now >= exp``
        """
        try:
            claims = jwt.decode(
                token,
                self._signing_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={
                    # Expiry is checked below against the codec clock
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError("Invalid token signature") from e
        except PyJWTError as e:
            raise MalformedTokenError(f"Invalid token: {e}") from e

        try:
            exp = float(claims["exp"])
        except (TypeError, ValueError) as e:
            raise MalformedTokenError("Invalid token: exp is not a timestamp") from e

        if self.now().timestamp() >= exp:
            raise TokenExpiredError("Token has expired")
        return claims

    def extract(self, token: str, field: str) -> Any:
        """Return a single claim (None if absent). Fails like ``parse``."""
        return self.parse(token).get(field)

    def extract_username(self, token: str) -> str:
        return self.extract(token, "sub")

    def extract_user_id(self, token: str) -> str:
        return self.extract(token, "userId")

    def extract_token_type(self, token: str) -> str:
        return self.extract(token, "type")

    def extract_expiration(self, token: str) -> datetime:
        return datetime.fromtimestamp(self.extract(token, "exp"), tz=UTC)

    def remaining_lifetime(self, token: str) -> timedelta:
        """Time left until the token expires."""
        return self.extract_expiration(token) - self.now()

    def should_refresh(self, token: str, threshold: timedelta = REFRESH_THRESHOLD) -> bool:
        return self.remaining_lifetime(token) < threshold

    def _validate_type(self, token: str, kind: TokenType) -> dict[str, Any]:
        claims = self.parse(token)
        if claims.get("type") != kind.value:
            raise MalformedTokenError(_WRONG_TYPE_MESSAGES[kind])
        return claims

    def validate_access(self, token: str) -> dict[str, Any]:
        """Parse a token and require ``type == "access"``."""
        return self._validate_type(token, TokenType.ACCESS)

    def validate_refresh(self, token: str) -> dict[str, Any]:
        """Parse a token and require ``type == "refresh"``."""
        return self._validate_type(token, TokenType.REFRESH)
