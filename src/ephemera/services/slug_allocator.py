"""Slug allocation for public links.

Slugs are the only identifier a link holder sees, so random slugs come
from a CSPRNG. Allocation only checks liveness; the caller's conditional
create is what actually claims the slug, and a conflict there must be
handled as if the check had failed.
"""

from __future__ import annotations

import re
import secrets
import string
from collections.abc import Callable

from ephemera.config import settings
from ephemera.errors import AllocationExhaustedError, InvalidSlugFormatError, SlugTakenError
from ephemera.store.base import MetadataStore

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{6,30}$")
SLUG_MIN_LENGTH = 6
SLUG_MAX_LENGTH = 30

# Random slugs avoid '-' so they never look like a truncated custom slug
SLUG_ALPHABET = string.ascii_lowercase + string.digits


def normalize_slug(raw: str) -> str:
    """Trim and lowercase a user-supplied slug."""
    return raw.strip().lower()


def is_valid_slug(slug: str) -> bool:
    return SLUG_PATTERN.fullmatch(slug) is not None


def random_slug(length: int) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


class SlugAllocator:
    """Mint or validate public slugs against the metadata store.

    Usage:
        allocator = SlugAllocator(store)
        slug = await allocator.allocate()            # random
        slug = await allocator.allocate("my-file")   # custom
    """

    def __init__(
        self,
        store: MetadataStore,
        *,
        length: int | None = None,
        max_attempts: int | None = None,
        generate: Callable[[int], str] = random_slug,
    ) -> None:
        self._store = store
        self._length = settings.slug_length if length is None else length
        self._max_attempts = settings.slug_max_attempts if max_attempts is None else max_attempts
        self._generate = generate

        if not (SLUG_MIN_LENGTH <= self._length <= SLUG_MAX_LENGTH):
            raise ValueError(
                f"Slug length must be between {SLUG_MIN_LENGTH} and {SLUG_MAX_LENGTH}, "
                f"got {self._length}"
            )
        if self._max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {self._max_attempts}")

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def allocate(self, requested: str | None = None) -> str:
        """Return a slug that no live record holds.

        Args:
            requested: A custom slug. Must already be normalized.

        Raises:
            InvalidSlugFormatError: ``requested`` does not match the slug format.
            SlugTakenError: A live record holds ``requested``.
            AllocationExhaustedError: No free random slug within the attempt budget.
        """
        if requested is not None:
            if not is_valid_slug(requested):
                raise InvalidSlugFormatError(requested)
            if await self._store.exists(requested):
                raise SlugTakenError(requested)
            return requested

        for _ in range(self._max_attempts):
            candidate = self._generate(self._length)
            if not is_valid_slug(candidate):
                continue
            if not await self._store.exists(candidate):
                return candidate

        raise AllocationExhaustedError(self._max_attempts)
