"""Shared lifespan logic for the auth service and the gateway.

Both backend/todoauth/main.py and backend/todoauth/gateway.py configure
logging the same way and cancel their background tasks the same way on
shutdown. The refresh token cleanup loop only runs in the auth service.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from todoauth.core.config import settings
from todoauth.core.logging import get_logger, setup_logging
from todoauth.core.redis import close_redis, get_redis
from todoauth.services.auth import AuthService
from todoauth.services.lockout import LockoutPolicy
from todoauth.services.revocation import RevocationStore
from todoauth.services.tokens import TokenCodec

_logger = get_logger("lifespan")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def cleanup_refresh_tokens(
    session_factory: async_sessionmaker[AsyncSession],
    codec: TokenCodec,
    retention_days: int,
) -> tuple[int, int]:
    """Purge expired refresh tokens and old revoked ones.

    Returns (expired removed, revoked removed).
    """
    async with session_factory() as db:
        auth_service = AuthService(
            db,
            codec,
            RevocationStore(get_redis(), codec),
            LockoutPolicy.from_settings(settings),
        )
        expired = await auth_service.cleanup_expired_tokens()
        revoked = await auth_service.cleanup_old_revoked_tokens(retention_days)
    return expired, revoked


async def refresh_token_cleanup_loop(
    session_factory: async_sessionmaker[AsyncSession],
    codec: TokenCodec,
    interval_seconds: int,
    retention_days: int,
) -> None:
    """Periodically remove expired and long-revoked refresh tokens."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            expired, revoked = await cleanup_refresh_tokens(session_factory, codec, retention_days)
            if expired or revoked:
                _logger.info(
                    f"Cleaned up {expired} expired and {revoked} revoked refresh tokens"
                )
        except Exception:
            _logger.exception("Error cleaning up refresh tokens")


def common_startup(logger: logging.Logger) -> None:
    """Shared startup sequence for both entry points."""
    setup_logging(
        level=settings.log_level,
        format_type="dev" if settings.debug else settings.log_format,
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")


async def common_shutdown(
    logger: logging.Logger,
    tasks: list[asyncio.Task],
) -> None:
    """Cancel managed background tasks and close the shared Redis client."""
    logger.info("Shutting down...")
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await close_redis()
