"""Shared FastAPI dependencies for the auth service."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import redis.asyncio as aioredis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from todoauth.core import get_db, get_redis, get_settings
from todoauth.core.request_utils import get_bearer_token
from todoauth.services.auth import AuthService
from todoauth.services.errors import UnauthorizedError
from todoauth.services.lockout import LockoutPolicy
from todoauth.services.revocation import RevocationStore
from todoauth.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


@lru_cache
def get_token_codec() -> TokenCodec:
    """Dependency to get the process-wide token codec."""
    return TokenCodec.from_settings(get_settings())


@lru_cache
def get_lockout_policy() -> LockoutPolicy:
    return LockoutPolicy.from_settings(get_settings())


def get_revocation_store(
    redis: aioredis.Redis = Depends(get_redis),
    codec: TokenCodec = Depends(get_token_codec),
) -> RevocationStore:
    return RevocationStore(redis, codec)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    revocation: RevocationStore = Depends(get_revocation_store),
    lockout: LockoutPolicy = Depends(get_lockout_policy),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, codec, revocation, lockout)


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the caller, taken from a validated access token."""

    username: str
    user_id: str
    token: str
    claims: dict[str, Any]


async def get_current_user(
    request: Request,
    revocation: RevocationStore = Depends(get_revocation_store),
) -> CurrentUser:
    """Dependency to get the caller from the ``Authorization: Bearer`` header.

    Gateway identity headers are not trusted here; the token itself is
    validated against the codec and the revocation store.
    """
    token = get_bearer_token(request)
    if token is None:
        raise UnauthorizedError("Missing or invalid authorization header")

    claims = await revocation.validate_access(token)
    return CurrentUser(
        username=claims["sub"],
        user_id=claims["userId"],
        token=token,
        claims=claims,
    )
