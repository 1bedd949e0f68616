"""Credential store: user lookup and persistence."""

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from todoauth.models.user import User
from todoauth.services.errors import DuplicateIdentityError, NotFoundError
from todoauth.services.passwords import hash_password

logger = logging.getLogger(__name__)


class UserService:
    """Service for user records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> User | None:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_identifier(self, identifier: str) -> User | None:
        """Look a user up by username or email."""
        result = await self.session.execute(
            select(User).where(or_(User.username == identifier, User.email == identifier))
        )
        return result.scalars().first()

    async def require_by_username(self, username: str) -> User:
        user = await self.get_by_username(username)
        if user is None:
            raise NotFoundError(f"User not found: {username}")
        return user

    async def exists_by_username(self, username: str) -> bool:
        result = await self.session.execute(
            select(func.count(User.id)).where(User.username == username)
        )
        return (result.scalar() or 0) > 0

    async def exists_by_email(self, email: str) -> bool:
        result = await self.session.execute(select(func.count(User.id)).where(User.email == email))
        return (result.scalar() or 0) > 0

    async def exists_by_username_or_email(self, username: str, email: str) -> bool:
        result = await self.session.execute(
            select(func.count(User.id)).where(or_(User.username == username, User.email == email))
        )
        return (result.scalar() or 0) > 0

    async def create(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create an enabled, unlocked user with zero login attempts."""
        if await self.exists_by_username_or_email(username, email):
            raise DuplicateIdentityError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            enabled=True,
            account_locked=False,
            login_attempts=0,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            await self.session.rollback()
            raise DuplicateIdentityError("Username or email already exists") from e
        await self.session.refresh(user)

        logger.info(f"Created user: {username}")
        return user

    async def update_profile(
        self, user: User, first_name: str | None, last_name: str | None
    ) -> User:
        user.first_name = first_name
        user.last_name = last_name
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def set_password(self, user: User, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        await self.session.flush()
