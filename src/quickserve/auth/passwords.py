"""Password hashing for staff accounts (argon2id)."""

from __future__ import annotations

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher(type=Type.ID)


def hash_password(password: str) -> str:
    """Hash a password for storage; parameters and salt travel with the hash."""
    return _hasher.hash(password)


def verify_password(password: str, stored: str) -> bool:
    """Check *password* against a ``hash_password`` result.

    A mismatch and a stored value that is not an argon2 hash both return False.
    """
    try:
        return _hasher.verify(stored, password)
    except (VerificationError, InvalidHashError):
        return False
