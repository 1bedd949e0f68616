"""Password hashing with Argon2id."""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

# Verified against when the identifier is unknown, so lookups of missing
# users cost the same as lookups of real ones.
_DUMMY_HASH = ph.hash("dummy-password-for-timing")


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        # Corrupt or foreign digest in the store
        return False


def burn_verification(password: str) -> None:
    """Spend one verification on a throwaway hash."""
    verify_password(password, _DUMMY_HASH)
