"""Tests for the refresh token ledger."""

from datetime import timedelta

import pytest

from todoauth.services.lockout import as_utc
from todoauth.services.refresh_tokens import RefreshTokenLedger


@pytest.fixture
def ledger(db_session):
    return RefreshTokenLedger(db_session)


async def record_for(ledger, codec, user, **kwargs):
    token = codec.issue_refresh_token(user)
    return await ledger.record(
        user_id=user.id,
        token=token,
        expires_at=codec.now() + codec.refresh_ttl,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_record_and_find(ledger, codec, test_user):
    entry = await record_for(ledger, codec, test_user, ip_address="10.0.0.1", device_info="curl/8")

    found = await ledger.find_by_token(entry.token)
    assert found is not None
    assert found.id == entry.id
    assert found.user_id == test_user.id
    assert found.revoked is False
    assert found.ip_address == "10.0.0.1"
    assert found.device_info == "curl/8"
    assert found.created_at is not None
    assert await ledger.find_by_id(entry.id) is found


@pytest.mark.asyncio
async def test_device_info_is_truncated(ledger, codec, test_user):
    entry = await record_for(ledger, codec, test_user, device_info="x" * 400)
    assert len(entry.device_info) == 255


@pytest.mark.asyncio
async def test_unknown_token_not_found(ledger):
    assert await ledger.find_by_token("nope") is None


@pytest.mark.asyncio
async def test_is_valid(ledger, codec, clock, test_user):
    entry = await record_for(ledger, codec, test_user)

    assert ledger.is_valid(entry, clock()) is True
    assert ledger.is_valid(entry, clock() + codec.refresh_ttl) is False
    assert ledger.is_valid(entry, clock() + codec.refresh_ttl - timedelta(seconds=1)) is True

    await ledger.revoke(entry.token)
    assert ledger.is_valid(entry, clock()) is False


@pytest.mark.asyncio
async def test_touch_last_used_keeps_validity(
    ledger, db_session, session_factory, codec, clock, test_user
):
    entry = await record_for(ledger, codec, test_user)
    created_at = entry.created_at

    clock.advance(60)
    await ledger.touch_last_used(entry.token, clock())
    await db_session.commit()

    assert as_utc(entry.last_used) == clock()
    async with session_factory() as session:
        stored = await RefreshTokenLedger(session).find_by_id(entry.id)
        assert as_utc(stored.last_used) == clock()
    assert entry.created_at == created_at
    assert ledger.is_valid(entry, clock()) is True


@pytest.mark.asyncio
async def test_touch_entry_stamps_loaded_row(ledger, codec, clock, test_user):
    entry = await record_for(ledger, codec, test_user)

    clock.advance(30)
    await ledger.touch_entry(entry, clock())

    found = await ledger.find_by_token(entry.token)
    assert found is entry
    assert as_utc(found.last_used) == clock()


@pytest.mark.asyncio
async def test_touch_unknown_token_is_noop(ledger, clock):
    await ledger.touch_last_used("missing", clock())


@pytest.mark.asyncio
async def test_revoke_returns_rowcount(ledger, codec, test_user):
    entry = await record_for(ledger, codec, test_user)

    assert await ledger.revoke(entry.token) == 1
    assert await ledger.revoke("unknown") == 0


@pytest.mark.asyncio
async def test_revoke_all_only_touches_one_user(ledger, codec, clock, user_factory):
    alice = await user_factory("alice")
    bob = await user_factory("bob")
    alice_entries = [await record_for(ledger, codec, alice) for _ in range(3)]
    bob_entry = await record_for(ledger, codec, bob)

    assert await ledger.revoke_all(alice.id) == 3

    assert all(not ledger.is_valid(e, clock()) for e in alice_entries)
    assert ledger.is_valid(bob_entry, clock()) is True
    assert await ledger.count_valid(alice.id, clock()) == 0
    assert await ledger.count_valid(bob.id, clock()) == 1


@pytest.mark.asyncio
async def test_list_valid_most_recent_first(ledger, db_session, codec, clock, test_user):
    older = await record_for(ledger, codec, test_user)
    newer = await record_for(ledger, codec, test_user)
    revoked = await record_for(ledger, codec, test_user)
    older.created_at = clock() - timedelta(hours=2)
    newer.created_at = clock() - timedelta(hours=1)
    await db_session.flush()
    await ledger.revoke(revoked.token)

    sessions = await ledger.list_valid(test_user.id, clock())

    assert [s.id for s in sessions] == [newer.id, older.id]
    assert len(await ledger.list_for_user(test_user.id)) == 3


@pytest.mark.asyncio
async def test_list_valid_skips_expired(ledger, codec, clock, test_user):
    await ledger.record(
        user_id=test_user.id,
        token=codec.issue_refresh_token(test_user),
        expires_at=clock() - timedelta(seconds=1),
    )
    assert await ledger.list_valid(test_user.id, clock()) == []


@pytest.mark.asyncio
async def test_purge_expired(ledger, codec, clock, test_user):
    live = await record_for(ledger, codec, test_user)
    expired = await ledger.record(
        user_id=test_user.id,
        token=codec.issue_refresh_token(test_user),
        expires_at=clock() - timedelta(days=1),
    )

    assert await ledger.purge_expired(clock()) == 1
    assert await ledger.find_by_token(expired.token) is None
    assert await ledger.find_by_token(live.token) is not None
    # Idempotent
    assert await ledger.purge_expired(clock()) == 0


@pytest.mark.asyncio
async def test_purge_revoked_older_than(ledger, db_session, codec, clock, test_user):
    old_revoked = await record_for(ledger, codec, test_user)
    recent_revoked = await record_for(ledger, codec, test_user)
    old_live = await record_for(ledger, codec, test_user)
    for entry in (old_revoked, old_live):
        entry.created_at = clock() - timedelta(days=40)
    await db_session.flush()
    await ledger.revoke(old_revoked.token)
    await ledger.revoke(recent_revoked.token)

    removed = await ledger.purge_revoked_older_than(clock() - timedelta(days=30))

    assert removed == 1
    assert await ledger.find_by_token(old_revoked.token) is None
    assert await ledger.find_by_token(recent_revoked.token) is not None
    assert await ledger.find_by_token(old_live.token) is not None
