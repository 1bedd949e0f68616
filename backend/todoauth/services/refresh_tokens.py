"""Refresh token ledger.

Every issued refresh token gets a row. The row, not the JWT, decides
whether a refresh token is still usable: revocation marks the row and the
signature alone can no longer bring it back.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from todoauth.core.request_utils import MAX_DEVICE_INFO_LENGTH
from todoauth.models.refresh_token import RefreshToken
from todoauth.services.lockout import as_utc

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class RefreshTokenLedger:
    """Durable record of issued refresh tokens."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        user_id: UUID,
        token: str,
        expires_at: datetime,
        ip_address: str | None = None,
        device_info: str | None = None,
    ) -> RefreshToken:
        """Insert a new ledger row for an issued refresh token."""
        entry = RefreshToken(
            user_id=user_id,
            token=token,
            expires_at=expires_at,
            revoked=False,
            ip_address=ip_address,
            device_info=device_info[:MAX_DEVICE_INFO_LENGTH] if device_info else device_info,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def find_by_token(self, token: str) -> RefreshToken | None:
        result = await self.session.execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def find_by_id(self, token_id: UUID) -> RefreshToken | None:
        result = await self.session.execute(select(RefreshToken).where(RefreshToken.id == token_id))
        return result.scalar_one_or_none()

    @staticmethod
    def is_valid(entry: RefreshToken, now: datetime | None = None) -> bool:
        """A ledger entry is usable iff not revoked and not yet expired."""
        now = now or _now()
        return not entry.revoked and as_utc(now) < as_utc(entry.expires_at)

    async def touch_last_used(self, token: str, now: datetime | None = None) -> None:
        entry = await self.find_by_token(token)
        if entry is not None:
            await self.touch_entry(entry, now)

    async def touch_entry(self, entry: RefreshToken, now: datetime | None = None) -> None:
        entry.last_used = now or _now()
        await self.session.flush()

    async def revoke(self, token: str) -> int:
        """Mark a single token revoked. Returns rows affected."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            update(RefreshToken)
            .where(RefreshToken.token == token)
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def revoke_entry(self, entry: RefreshToken) -> None:
        entry.revoked = True
        await self.session.flush()

    async def revoke_all(self, user_id: UUID) -> int:
        """Mark every token owned by ``user_id`` revoked. Returns rows affected."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .values(revoked=True)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"Revoked {result.rowcount} refresh tokens for user {user_id}")
        return result.rowcount

    async def list_valid(self, user_id: UUID, now: datetime | None = None) -> list[RefreshToken]:
        """Usable tokens for a user, most recent first."""
        result = await self.session.execute(
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > (now or _now()),
            )
            .order_by(RefreshToken.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: UUID) -> list[RefreshToken]:
        """All tokens for a user (including revoked/expired), most recent first."""
        result = await self.session.execute(
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_valid(self, user_id: UUID, now: datetime | None = None) -> int:
        result = await self.session.execute(
            select(func.count(RefreshToken.id)).where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > (now or _now()),
            )
        )
        return result.scalar() or 0

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete rows past their expiry. Returns count removed."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken)
            .where(RefreshToken.expires_at < (now or _now()))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def purge_revoked_older_than(self, cutoff: datetime) -> int:
        """Delete revoked rows created before ``cutoff``. Returns count removed."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken)
            .where(RefreshToken.revoked.is_(True), RefreshToken.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
