"""Tests for the Redis-backed revocation store."""

import asyncio
import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from todoauth.services.errors import ServiceUnavailableError, TokenExpiredError
from todoauth.services.revocation import BLACKLIST_MARKER, RevocationStore, blacklist_key
from todoauth.services.tokens import TokenType


@pytest.fixture
def user():
    return SimpleNamespace(
        id=uuid.uuid4(), username="alice", email="alice@example.com", enabled=True
    )


@pytest.mark.asyncio
async def test_fresh_token_is_not_blacklisted(revocation, codec, user):
    token = codec.issue_access_token(user)

    assert await revocation.is_blacklisted(token) is False
    assert await revocation.is_valid_token(token) is True


@pytest.mark.asyncio
async def test_blacklist_invalidates_immediately(revocation, codec, user):
    token = codec.issue_access_token(user)

    assert await revocation.blacklist(token) is True
    assert await revocation.is_blacklisted(token) is True
    assert await revocation.is_valid_token(token) is False


@pytest.mark.asyncio
async def test_blacklist_entry_ttl_matches_remaining_lifetime(
    revocation, fake_redis, codec, clock, user
):
    token = codec.issue_access_token(user)
    clock.advance(300)

    await revocation.blacklist(token)

    assert await fake_redis.get(blacklist_key(token)) == BLACKLIST_MARKER
    ttl_ms = await fake_redis.pttl(blacklist_key(token))
    expected_ms = (codec.access_ttl.total_seconds() - 300) * 1000
    assert 0 < ttl_ms <= expected_ms


@pytest.mark.asyncio
async def test_blacklist_is_idempotent(revocation, fake_redis, codec, user):
    token = codec.issue_access_token(user)

    assert await revocation.blacklist(token) is True
    first_ttl = await fake_redis.pttl(blacklist_key(token))
    assert await revocation.blacklist(token) is False
    # NX: the second call does not reset the expiry
    assert await fake_redis.pttl(blacklist_key(token)) <= first_ttl
    assert await revocation.is_blacklisted(token) is True


@pytest.mark.asyncio
async def test_blacklisting_expired_token_is_noop(revocation, fake_redis, codec, clock, user):
    token = codec.issue_access_token(user)
    clock.advance(codec.access_ttl.total_seconds())

    assert await revocation.blacklist(token) is False
    assert await fake_redis.exists(blacklist_key(token)) == 0


@pytest.mark.asyncio
async def test_blacklisting_garbage_is_noop(revocation, fake_redis):
    assert await revocation.blacklist("not-a-token") is False
    assert await fake_redis.dbsize() == 0


@pytest.mark.asyncio
async def test_blacklist_does_not_affect_new_token_for_same_user(revocation, codec, user):
    old = codec.issue_access_token(user)
    await revocation.blacklist(old)

    new = codec.issue_access_token(user)
    assert await revocation.is_valid_token(new) is True


@pytest.mark.asyncio
async def test_validate_access_rejects_blacklisted(revocation, codec, user):
    token = codec.issue_access_token(user)
    assert (await revocation.validate_access(token))["sub"] == "alice"

    await revocation.blacklist(token)
    with pytest.raises(TokenExpiredError, match="revoked"):
        await revocation.validate_access(token)


@pytest.mark.asyncio
async def test_is_valid_token_false_for_expired(revocation, codec, clock, user):
    token = codec.issue_refresh_token(user)
    clock.advance(codec.refresh_ttl.total_seconds() + 1)
    assert await revocation.is_valid_token(token) is False


class TestRedisOutage:
    """An unreachable Redis is surfaced, never read as 'not blacklisted'."""

    @pytest.fixture
    def broken_store(self, codec):
        client = AsyncMock()
        client.exists.side_effect = RedisConnectionError("connection refused")
        client.set.side_effect = RedisConnectionError("connection refused")
        return RevocationStore(client, codec)

    @pytest.mark.asyncio
    async def test_lookup_raises_unavailable(self, broken_store, codec, user):
        with pytest.raises(ServiceUnavailableError):
            await broken_store.is_blacklisted(codec.issue_access_token(user))

    @pytest.mark.asyncio
    async def test_validate_access_raises_unavailable(self, broken_store, codec, user):
        with pytest.raises(ServiceUnavailableError):
            await broken_store.validate_access(codec.issue_access_token(user))

    @pytest.mark.asyncio
    async def test_write_raises_unavailable(self, broken_store, codec, user):
        with pytest.raises(ServiceUnavailableError):
            await broken_store.blacklist(codec.issue_access_token(user))


@pytest.mark.asyncio
async def test_blacklist_entry_expires_with_token(revocation, codec, user):
    token = codec.issue(user, TokenType.ACCESS, ttl=timedelta(seconds=1))
    await revocation.blacklist(token)
    assert await revocation.is_blacklisted(token) is True

    # Redis evicts on its own clock
    await asyncio.sleep(1.2)
    assert await revocation.is_blacklisted(token) is False
