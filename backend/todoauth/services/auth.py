"""Authentication service: register, login, refresh, logout and account flows.

Composes the credential store, lockout policy, token codec, revocation
store and refresh token ledger. Each flow commits its own writes; failure
paths that must persist state (failed-login counters, revoke-all on a
disabled account) commit before raising.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from todoauth.core.logging import security_context
from todoauth.models.refresh_token import RefreshToken
from todoauth.models.user import User
from todoauth.services.errors import (
    AccountDisabledError,
    AccountLockedError,
    InvalidCredentialsError,
    ServiceUnavailableError,
    TokenError,
    TokenExpiredError,
)
from todoauth.services.lockout import LockoutPolicy
from todoauth.services.passwords import burn_verification, verify_password
from todoauth.services.refresh_tokens import RefreshTokenLedger
from todoauth.services.revocation import RevocationStore
from todoauth.services.tokens import TokenCodec
from todoauth.services.users import UserService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid username/email or password"


@dataclass(frozen=True)
class ClientInfo:
    """Where a login or registration came from."""

    ip_address: str | None = None
    device_info: str | None = None


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        session: AsyncSession,
        codec: TokenCodec,
        revocation: RevocationStore,
        lockout: LockoutPolicy,
    ):
        self.session = session
        self.codec = codec
        self.revocation = revocation
        self.lockout = lockout
        self.users = UserService(session)
        self.ledger = RefreshTokenLedger(session)

    @property
    def access_token_expires_in(self) -> int:
        return int(self.codec.access_ttl.total_seconds())

    async def _start_session(self, user: User, client: ClientInfo | None) -> AuthResult:
        """Issue an access/refresh pair and record the refresh token."""
        client = client or ClientInfo()
        access_token = self.codec.issue_access_token(user)
        refresh_token = self.codec.issue_refresh_token(user)
        await self.ledger.record(
            user_id=user.id,
            token=refresh_token,
            expires_at=self.codec.now() + self.codec.refresh_ttl,
            ip_address=client.ip_address,
            device_info=client.device_info,
        )
        return AuthResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_token_expires_in,
            user=user,
        )

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        client: ClientInfo | None = None,
    ) -> AuthResult:
        """Create an account and start a session for it.

        Raises DuplicateIdentityError if the username or email is taken.
        """
        client = client or ClientInfo()
        user = await self.users.create(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
        )
        result = await self._start_session(user, client)
        await self.session.commit()
        logger.info(
            f"User registered: {user.username}",
            extra=security_context(
                event="register", user=user.username, client_ip=client.ip_address
            ),
        )
        return result

    async def login(
        self, identifier: str, password: str, client: ClientInfo | None = None
    ) -> AuthResult:
        """Authenticate by username or email and start a session.

        Unknown identifiers and wrong passwords raise the same
        InvalidCredentialsError so callers cannot enumerate accounts.
        """
        client = client or ClientInfo()
        user = await self.users.get_by_identifier(identifier)
        if user is None:
            burn_verification(password)
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if self.lockout.apply_lazy_unlock(user):
            await self.session.commit()

        if not self.lockout.can_login(user):
            if user.account_locked:
                raise AccountLockedError("Account is locked due to too many failed login attempts")
            raise AccountDisabledError("Account is disabled")

        if not verify_password(password, user.password_hash):
            self.lockout.register_failure(user)
            await self.session.commit()
            logger.info(
                f"Failed login for user: {user.username} (attempts={user.login_attempts})",
                extra=security_context(
                    event="login_failed", user=user.username, client_ip=client.ip_address
                ),
            )
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        self.lockout.register_success(user)
        result = await self._start_session(user, client)
        await self.session.commit()
        logger.info(
            f"User logged in: {user.username}",
            extra=security_context(
                event="login", user=user.username, client_ip=client.ip_address
            ),
        )
        return result

    async def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new access token.

        The refresh token itself is returned unchanged (no rotation).
        """
        try:
            self.codec.validate_refresh(refresh_token)
        except TokenError as e:
            raise TokenExpiredError("Invalid or expired refresh token") from e
        if await self.revocation.is_blacklisted(refresh_token):
            raise TokenExpiredError("Invalid or expired refresh token")

        entry = await self.ledger.find_by_token(refresh_token)
        if entry is None or not self.ledger.is_valid(entry, self.codec.now()):
            raise TokenExpiredError("Refresh token not found or revoked")

        user = await self.users.get_by_id(entry.user_id)
        if user is None or not self.lockout.can_login(user):
            await self.ledger.revoke_all(entry.user_id)
            await self.session.commit()
            logger.warning(
                f"Refresh refused for disabled account {entry.user_id}; sessions revoked",
                extra=security_context(event="refresh_refused", user_id=str(entry.user_id)),
            )
            raise AccountDisabledError("User account is disabled")

        await self.ledger.touch_entry(entry, self.codec.now())
        access_token = self.codec.issue_access_token(user)
        await self.session.commit()
        return AuthResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_token_expires_in,
            user=user,
        )

    async def logout(self, access_token: str | None, refresh_token: str | None) -> None:
        """Blacklist the access token and revoke the refresh token.

        The two parts are independent: either may be absent, and a
        revocation store outage does not stop the refresh token from being
        revoked (the outage is still raised afterwards).
        """
        blacklist_error: ServiceUnavailableError | None = None
        if access_token:
            try:
                await self.revocation.blacklist(access_token)
            except ServiceUnavailableError as e:
                blacklist_error = e
        if refresh_token:
            await self.ledger.revoke(refresh_token)
        await self.session.commit()
        if blacklist_error is not None:
            raise blacklist_error

    async def logout_all(self, username: str) -> int:
        """Revoke every refresh token of ``username``. Unknown users are a no-op."""
        user = await self.users.get_by_username(username)
        if user is None:
            return 0
        revoked = await self.ledger.revoke_all(user.id)
        await self.session.commit()
        logger.info(
            f"User logged out from all devices: {username}",
            extra=security_context(event="logout_all", user=username),
        )
        return revoked

    async def get_profile(self, username: str) -> User:
        return await self.users.require_by_username(username)

    async def update_profile(
        self, username: str, first_name: str | None, last_name: str | None
    ) -> User:
        user = await self.users.require_by_username(username)
        user = await self.users.update_profile(user, first_name, last_name)
        await self.session.commit()
        return user

    async def change_password(
        self, username: str, current_password: str, new_password: str
    ) -> None:
        """Change a password and revoke every refresh token of the user."""
        user = await self.users.require_by_username(username)
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        await self.users.set_password(user, new_password)
        await self.ledger.revoke_all(user.id)
        await self.session.commit()
        logger.info(
            f"Password changed for user: {username}",
            extra=security_context(event="password_changed", user=username),
        )

    async def validate_token(self, token: str) -> bool:
        """True if the token is well-formed, unexpired and not blacklisted."""
        return await self.revocation.is_valid_token(token)

    async def list_sessions(self, username: str) -> list[RefreshToken]:
        """Usable refresh tokens of ``username``, most recent first."""
        user = await self.users.require_by_username(username)
        return await self.ledger.list_valid(user.id, self.codec.now())

    async def revoke_session(self, username: str, session_id: UUID) -> bool:
        """Revoke one of the caller's own sessions.

        Sessions that do not exist or belong to someone else are left alone
        and reported as not revoked.
        """
        user = await self.users.require_by_username(username)
        entry = await self.ledger.find_by_id(session_id)
        if entry is None:
            return False
        if entry.user_id != user.id:
            logger.warning(
                f"User {username} tried to revoke session {session_id} of another user",
                extra=security_context(event="session_revoke_denied", user=username),
            )
            return False
        await self.ledger.revoke_entry(entry)
        await self.session.commit()
        return True

    async def cleanup_expired_tokens(self) -> int:
        removed = await self.ledger.purge_expired(self.codec.now())
        await self.session.commit()
        return removed

    async def cleanup_old_revoked_tokens(self, days_old: int) -> int:
        cutoff = self.codec.now() - timedelta(days=days_old)
        removed = await self.ledger.purge_revoked_older_than(cutoff)
        await self.session.commit()
        return removed

    async def username_available(self, username: str) -> bool:
        return not await self.users.exists_by_username(username)

    async def email_available(self, email: str) -> bool:
        return not await self.users.exists_by_email(email)
