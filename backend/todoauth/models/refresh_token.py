"""RefreshToken model - durable ledger of issued refresh tokens."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from todoauth.models.base import BaseModel

if TYPE_CHECKING:
    from todoauth.models.user import User


class RefreshToken(BaseModel):
    """An issued refresh token and the device it was issued to.

    The row references its owner by ``user_id`` only; the user record is
    owned by the credential store. ``created_at`` is never modified after
    insertion.
    """

    __tablename__ = "refresh_tokens"

    # Signed JWT text
    token: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True, index=True)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    device_info: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship(back_populates="refresh_tokens", lazy="raise")

    # "Valid tokens for user" is the hot query
    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked_expires", "user_id", "revoked", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken id={self.id} user_id={self.user_id} "
            f"expires_at={self.expires_at} revoked={self.revoked}>"
        )
