"""Password hashing and verification for password-gated downloads.

bcrypt is deliberately slow, so the async wrappers run it in a worker
thread instead of on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import secrets

import bcrypt

from ephemera.config import settings

logger = logging.getLogger(__name__)

# bcrypt only considers the first 72 bytes; newer releases reject longer input
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Hash and verify download passwords with bcrypt."""

    MIN_ROUNDS = 4
    MAX_ROUNDS = 31

    def __init__(self, rounds: int | None = None) -> None:
        """Initialize the hasher.

        Args:
            rounds: bcrypt cost factor (4-31). Defaults to ``settings.bcrypt_rounds``.

        Raises:
            ValueError: If rounds is outside the valid range.
        """
        rounds = settings.bcrypt_rounds if rounds is None else rounds
        if not (self.MIN_ROUNDS <= rounds <= self.MAX_ROUNDS):
            raise ValueError(
                f"Rounds must be between {self.MIN_ROUNDS} and {self.MAX_ROUNDS}, got {rounds}"
            )
        self.rounds = rounds

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password cannot be empty")
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        """Check a password against a stored hash.

        A malformed stored hash verifies as False rather than raising, so a
        corrupt record denies access instead of failing the request.
        """
        if not password:
            return False
        try:
            return bcrypt.checkpw(_encode(password), hashed_password.encode("utf-8"))
        except ValueError as exc:
            logger.warning("Could not verify password against stored hash: %s", exc)
            return False

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.verify, password, hashed_password)


def constant_time_equals(supplied: str, expected: str) -> bool:
    """Compare shared secrets without leaking their common prefix length."""
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))
