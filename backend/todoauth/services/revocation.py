"""Redis-backed access token blacklist.

A blacklisted token is stored under ``blacklisted_token:<token>`` with a
TTL equal to the token's remaining lifetime, so the entry disappears exactly
when the token would have expired anyway.

Redis failures are surfaced as ``ServiceUnavailableError``; a lookup that
cannot reach Redis never reports "not blacklisted".
"""

import logging
import math
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from todoauth.services.errors import ServiceUnavailableError, TokenError, TokenExpiredError
from todoauth.services.tokens import TokenCodec

logger = logging.getLogger(__name__)

KEY_PREFIX = "blacklisted_token:"
BLACKLIST_MARKER = "blacklisted"


def blacklist_key(token: str) -> str:
    return f"{KEY_PREFIX}{token}"


class RevocationStore:
    """Blacklist of revoked, not-yet-expired access tokens."""

    def __init__(self, client: aioredis.Redis, codec: TokenCodec):
        self.client = client
        self.codec = codec

    async def is_blacklisted(self, token: str) -> bool:
        """Check whether ``token`` has been blacklisted."""
        try:
            return bool(await self.client.exists(blacklist_key(token)))
        except RedisError as e:
            logger.error(f"Revocation store lookup failed: {e}")
            raise ServiceUnavailableError("Token revocation store is unavailable") from e

    async def blacklist(self, token: str) -> bool:
        """Blacklist ``token`` for the rest of its lifetime.

        Returns True if a new entry was written. Tokens that are already
        expired or unparsable are ignored, as are tokens already blacklisted.
        """
        try:
            remaining = self.codec.remaining_lifetime(token)
        except TokenError:
            logger.debug("Skipping blacklist of unusable token")
            return False

        ttl_ms = math.floor(remaining.total_seconds() * 1000)
        if ttl_ms <= 0:
            return False

        try:
            written = await self.client.set(
                blacklist_key(token), BLACKLIST_MARKER, px=ttl_ms, nx=True
            )
        except RedisError as e:
            logger.error(f"Revocation store write failed: {e}")
            raise ServiceUnavailableError("Token revocation store is unavailable") from e
        return bool(written)

    async def validate_access(self, token: str) -> dict[str, Any]:
        """Validate an access token: codec checks plus blacklist lookup.

        Raises:
            TokenError: token is invalid, expired, not an access token, or revoked
            ServiceUnavailableError: Redis is unreachable
        """
        claims = self.codec.validate_access(token)
        if await self.is_blacklisted(token):
            raise TokenExpiredError("Token has been revoked")
        return claims

    async def is_valid_token(self, token: str) -> bool:
        """True if the token parses, is unexpired and is not blacklisted (any type)."""
        try:
            self.codec.parse(token)
        except TokenError:
            return False
        return not await self.is_blacklisted(token)
