"""
Password hashing utilities using bcrypt.
"""

from functools import cached_property
from typing import Optional

import bcrypt

from userportal.config import get_settings

# bcrypt only reads the first 72 bytes; longer passwords are refused, never
# truncated, so two passwords sharing a 72-byte prefix cannot collide.
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """
    Password hashing service.

    Digests are bcrypt modular-crypt strings (``$2b$<cost>$<salt><hash>``), so
    each one carries its own salt and cost and stays verifiable after the
    configured cost changes.
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds or get_settings().bcrypt_rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password exceeds {BCRYPT_MAX_BYTES} bytes")
        return encoded

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt with a fresh random salt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string

        Raises:
            ValueError: password longer than 72 bytes once UTF-8 encoded
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(password), salt).decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        bcrypt recomputes with the embedded salt/cost and compares in
        constant time. A malformed digest or an over-long password verifies
        as False.
        """
        try:
            return bcrypt.checkpw(
                self._encode(plain_password),
                hashed_password.encode("utf-8"),
            )
        except (ValueError, TypeError, AttributeError):
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash was made with a different cost than configured.

        Format: $2b$XX$... where XX is the rounds
        """
        parts = hashed_password.split("$")
        if len(parts) < 4:
            return True
        try:
            return int(parts[2]) != self.rounds
        except ValueError:
            return True

    @cached_property
    def _dummy_hash(self) -> str:
        return self.hash("dummy-password-for-timing")

    def dummy_verify(self, plain_password: str) -> None:
        """Spend one verification so unknown accounts cost as much as wrong passwords."""
        self.verify(plain_password, self._dummy_hash)


# Default hasher instance
_hasher: Optional[PasswordHasher] = None


def get_password_hasher() -> PasswordHasher:
    """Get or create the default password hasher."""
    global _hasher
    if _hasher is None:
        _hasher = PasswordHasher()
    return _hasher
