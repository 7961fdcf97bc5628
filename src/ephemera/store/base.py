"""Metadata store contract.

The engine only needs atomic operations on a single record keyed by slug:
a conditional create, a read, a conditional download-count increment, and
a delete. Anything that can provide those (a relational table, a key-value
store with compare-and-swap) can back the engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

from ephemera.models.enums import ConsumeOutcome
from ephemera.records import ObjectRecord


@dataclass(frozen=True)
class ConsumeResult:
    """Result of a conditional download-count increment."""

    outcome: ConsumeOutcome
    record: ObjectRecord | None = None
    """After CONSUMED: the record with the new count. Otherwise the record as
    found (None when MISSING)."""

    @property
    def consumed(self) -> bool:
        return self.outcome is ConsumeOutcome.CONSUMED


class MetadataStore(ABC):
    """Authoritative record of every live ephemeral object."""

    @abstractmethod
    async def create(self, record: ObjectRecord) -> None:
        """Insert a record only if no record holds its slug.

        Raises:
            RecordExistsError: The slug is held by a live record.
        """

    @abstractmethod
    async def get(self, slug: str) -> ObjectRecord | None:
        """Return a snapshot of the record, or None if absent."""

    async def exists(self, slug: str) -> bool:
        return await self.get(slug) is not None

    @abstractmethod
    async def consume(
        self,
        slug: str,
        *,
        now: datetime,
        purge_grace: timedelta,
    ) -> ConsumeResult:
        """Atomically increment ``download_count`` if the record may still be served.

        The increment happens only when the record exists, ``now`` is not
        past ``expires_at`` and the count is below the consumption limit,
        all evaluated against the same committed value. If the increment
        reaches the limit, ``purge_after`` is stamped to ``now + purge_grace``
        in the same step so the purge intent survives a restart.
        """

    @abstractmethod
    async def delete(self, slug: str) -> bool:
        """Remove the record. Returns False if it was already gone."""

    @abstractmethod
    async def list_purge_due(self, now: datetime) -> list[ObjectRecord]:
        """Records that are expired or whose post-consumption grace has elapsed."""

    @abstractmethod
    async def list_all(self) -> list[ObjectRecord]:
        """Every live record, oldest first."""

    async def close(self) -> None:
        """Release any resources held by the store."""
