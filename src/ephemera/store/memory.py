"""In-memory metadata store for tests and single-process development."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta

from ephemera.errors import RecordExistsError
from ephemera.models.enums import ConsumeOutcome
from ephemera.records import ObjectRecord
from ephemera.store.base import ConsumeResult, MetadataStore


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed store. Every mutation runs under one lock.

    Records are frozen dataclasses, so readers always get a consistent
    snapshot and the lock only has to cover the read-check-write step.
    """

    def __init__(self) -> None:
        self._records: dict[str, ObjectRecord] = {}
        self._lock = threading.Lock()

    async def create(self, record: ObjectRecord) -> None:
        with self._lock:
            if record.slug in self._records:
                raise RecordExistsError(record.slug)
            self._records[record.slug] = record

    async def get(self, slug: str) -> ObjectRecord | None:
        return self._records.get(slug)

    async def consume(
        self,
        slug: str,
        *,
        now: datetime,
        purge_grace: timedelta,
    ) -> ConsumeResult:
        with self._lock:
            record = self._records.get(slug)
            if record is None:
                return ConsumeResult(ConsumeOutcome.MISSING)
            if record.is_expired(now):
                return ConsumeResult(ConsumeOutcome.EXPIRED, record)
            if record.is_exhausted:
                return ConsumeResult(ConsumeOutcome.EXHAUSTED, record)

            updated = record.consumed(now, purge_grace)
            self._records[slug] = updated
            return ConsumeResult(ConsumeOutcome.CONSUMED, updated)

    async def delete(self, slug: str) -> bool:
        with self._lock:
            return self._records.pop(slug, None) is not None

    async def list_purge_due(self, now: datetime) -> list[ObjectRecord]:
        with self._lock:
            records = list(self._records.values())
        return [r for r in records if r.is_purge_due(now)]

    async def list_all(self) -> list[ObjectRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda r: r.created_at)

    def __len__(self) -> int:
        return len(self._records)
