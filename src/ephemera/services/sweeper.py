"""Lifecycle sweeper: reconcile metadata with backing storage.

Finds every record whose lifecycle has ended (expired, or exhausted with
its post-download grace elapsed) and purges it. A failure on one record is
logged and counted, never raised, and the record stays in the store so
the next sweep retries it. Re-running a sweep is always safe.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ephemera.services.purge import Purger
from ephemera.store.base import MetadataStore
from ephemera.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Counts from one sweep."""

    scanned: int = 0
    purged: int = 0
    failed: int = 0
    failed_slugs: list[str] = field(default_factory=list)


class LifecycleSweeper:
    """Purge records whose lifecycle has ended.

    Usage:
        sweeper = LifecycleSweeper(store, purger)
        report = await sweeper.sweep()
    """

    def __init__(
        self,
        store: MetadataStore,
        purger: Purger,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._purger = purger
        self._clock = clock

    async def sweep(self) -> SweepReport:
        """Scan once and purge everything due.

        Raises:
            MetadataStoreError: The scan itself could not be performed.
        """
        records = await self._store.list_purge_due(self._clock())
        report = SweepReport(scanned=len(records))
        logger.info("[SWEEP] Found %d records due for purge", len(records))

        for record in records:
            try:
                removed = await self._purger.purge(record)
            except Exception:
                logger.exception("[SWEEP] Error purging %s", record.slug)
                report.failed += 1
                report.failed_slugs.append(record.slug)
                continue
            if removed:
                report.purged += 1

        logger.info(
            "[SWEEP] scanned=%d purged=%d failed=%d",
            report.scanned, report.purged, report.failed,
        )
        if report.failed_slugs:
            logger.warning("[SWEEP] Will retry next sweep: %s", ", ".join(report.failed_slugs))
        return report

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[SWEEP] Sweep failed; retrying in %.0fs", interval_seconds)
