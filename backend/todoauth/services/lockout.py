"""Account lockout policy.

State lives on the user row: ``login_attempts``, ``account_locked`` and
``updated_at``. Locking happens when the failure count reaches
``max_attempts``. Unlocking is lazy: it is only evaluated when the locked
user next tries to log in, once ``lockout_duration`` has passed since the
row was last updated.

The policy mutates the user object in memory; persisting it is the
caller's job.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from todoauth.core.logging import security_context

if TYPE_CHECKING:
    from todoauth.core.config import Settings
    from todoauth.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOGIN_ATTEMPTS = 5
DEFAULT_LOCKOUT_DURATION = timedelta(hours=1)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class LockoutPolicy:
    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS,
        lockout_duration: timedelta = DEFAULT_LOCKOUT_DURATION,
        clock: Callable[[], datetime] | None = None,
    ):
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_settings(cls, settings: "Settings") -> "LockoutPolicy":
        return cls(
            max_attempts=settings.max_login_attempts,
            lockout_duration=timedelta(seconds=settings.account_lockout_duration),
        )

    def now(self) -> datetime:
        return self._clock()

    def should_unlock(self, user: "User", now: datetime | None = None) -> bool:
        """True if the user is locked and the lockout window has elapsed."""
        if not user.account_locked:
            return False
        if user.updated_at is None:
            return False
        now = now or self.now()
        return as_utc(now) > as_utc(user.updated_at) + self.lockout_duration

    def can_login(self, user: "User") -> bool:
        """Whether the user may attempt to authenticate right now."""
        if not user.enabled:
            return False
        if user.account_locked:
            return self.should_unlock(user)
        return True

    def apply_lazy_unlock(self, user: "User") -> bool:
        """Unlock the user if the lockout window has elapsed. Returns True if unlocked."""
        if not self.should_unlock(user):
            return False
        self.unlock(user)
        logger.info(f"Account lockout expired for user: {user.username}")
        return True

    def unlock(self, user: "User") -> None:
        user.account_locked = False
        user.login_attempts = 0

    def lock(self, user: "User") -> None:
        user.account_locked = True
        # The lockout window starts now
        user.updated_at = self.now()

    def register_failure(self, user: "User") -> bool:
        """Record a failed credential check. Returns True if this failure locked the account."""
        user.login_attempts = (user.login_attempts or 0) + 1
        if user.login_attempts >= self.max_attempts and not user.account_locked:
            self.lock(user)
            logger.warning(
                f"Account locked after {user.login_attempts} failed login attempts: "
                f"{user.username}",
                extra=security_context(event="account_locked", user=user.username),
            )
            return True
        return False

    def register_success(self, user: "User") -> None:
        """Record a successful credential check."""
        user.login_attempts = 0
        user.last_login = self.now()
