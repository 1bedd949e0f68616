"""Redis connection for the token revocation store."""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from todoauth.core.config import settings
from todoauth.core.logging import get_logger

logger = get_logger("redis")

_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Get the shared async Redis client.

    The client connects lazily on first command, so creating it never blocks
    or fails at startup.
    """
    global _client
    if _client is None:
        _client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
    return _client


async def check_redis_connection(client: aioredis.Redis | None = None) -> bool:
    """Check if Redis is reachable."""
    client = client or get_redis()
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as e:
        logger.warning(f"Redis connection check failed: {e}")
        return False


async def close_redis() -> None:
    """Close the shared client on shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
