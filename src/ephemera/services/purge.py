"""Purging ended records: backing bytes first, then metadata.

Deleting bytes before the record means a crash between the two steps
leaves an orphaned record, which the next sweep finds and retries. The
reverse order would leave unreferenced bytes nothing can ever find.
"""

from __future__ import annotations

import asyncio
import logging

from ephemera.clients.storage import StorageDelegate
from ephemera.config import settings
from ephemera.records import ObjectRecord
from ephemera.store.base import MetadataStore
from ephemera.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)


class Purger:
    """Delete a record's bytes and metadata."""

    def __init__(self, store: MetadataStore, storage: StorageDelegate) -> None:
        self._store = store
        self._storage = storage

    async def purge(self, record: ObjectRecord) -> bool:
        """Purge one record.

        Idempotent: an already-absent object or record is not an error.

        Returns:
            True if this call removed the record, False if another path
            (sweep, deferred purge) got there first.

        Raises:
            BackendError: The storage delegate or metadata store failed. The
                record is left in place for a later retry.
        """
        await self._storage.delete_object(record.storage_key)
        removed = await self._store.delete(record.slug)
        if removed:
            logger.info("Purged %s (key=%s)", record.slug, record.storage_key)
        return removed

    async def purge_quietly(self, record: ObjectRecord) -> bool:
        """Best-effort purge: failures are logged, never raised."""
        try:
            return await self.purge(record)
        except Exception:
            logger.exception("Purge of %s failed; leaving it for the sweeper", record.slug)
            return False


class PurgeScheduler:
    """Deferred purges for records that just reached their download limit.

    The grant returns first; the purge runs ``grace_seconds`` later so the
    client has time to start its transfer. Each pending purge is a
    cancellable asyncio task. The record's ``purge_after`` stamp is the
    durable copy of the same intent, so a purge dropped by a restart is
    picked up by the next sweep.
    """

    def __init__(
        self,
        purger: Purger,
        store: MetadataStore,
        *,
        grace_seconds: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._purger = purger
        self._store = store
        self._grace_seconds = settings.purge_grace_seconds if grace_seconds is None else grace_seconds
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[bool]] = {}

    @property
    def grace_seconds(self) -> float:
        return self._grace_seconds

    @property
    def pending(self) -> set[str]:
        return set(self._tasks)

    def schedule(self, slug: str, delay: float | None = None) -> asyncio.Task[bool]:
        """Schedule a purge of ``slug``. Re-scheduling a pending slug is a no-op."""
        existing = self._tasks.get(slug)
        if existing is not None and not existing.done():
            return existing

        delay = self._grace_seconds if delay is None else delay
        task = asyncio.create_task(self._purge_later(slug, delay), name=f"purge:{slug}")
        self._tasks[slug] = task
        task.add_done_callback(lambda t, slug=slug: self._forget(slug, t))
        logger.debug("Scheduled purge of %s in %.0fs", slug, delay)
        return task

    def cancel(self, slug: str) -> bool:
        task = self._tasks.pop(slug, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def drain(self) -> None:
        """Wait for every pending purge to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending purges. Their records remain due for the sweeper."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _purge_later(self, slug: str, delay: float) -> bool:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            record = await self._store.get(slug)
        except Exception:
            logger.exception("Deferred purge of %s could not read the record", slug)
            return False
        if record is None:
            return False
        if not (record.is_exhausted or record.is_expired(self._clock())):
            logger.warning("Deferred purge of %s skipped: lifecycle has not ended", slug)
            return False
        return await self._purger.purge_quietly(record)

    def _forget(self, slug: str, task: asyncio.Task[bool]) -> None:
        if self._tasks.get(slug) is task:
            del self._tasks[slug]
