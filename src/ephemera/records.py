"""The engine's view of an ephemeral object's metadata record."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from ephemera.models.enums import RecordState
from ephemera.models.object_record import ObjectRecordRow


@dataclass(frozen=True)
class ObjectRecord:
    """Immutable snapshot of one record.

    Stores hand out snapshots, never live references, so a caller can hold a
    record across awaits without seeing concurrent increments mid-decision.
    """

    slug: str
    storage_key: str
    original_name: str
    size: int
    mime_type: str | None
    expires_at: datetime
    created_at: datetime
    password_hash: str | None = None
    one_time_download: bool = False
    max_downloads: int | None = None
    download_count: int = 0
    purge_after: datetime | None = None

    @property
    def requires_password(self) -> bool:
        return self.password_hash is not None

    @property
    def consumption_limit(self) -> int | None:
        """Effective download ceiling.

        One-time download and ``max_downloads=1`` are the same state; when
        both are set the tighter ceiling wins.
        """
        limits = []
        if self.one_time_download:
            limits.append(1)
        if self.max_downloads is not None:
            limits.append(self.max_downloads)
        return min(limits) if limits else None

    @property
    def is_exhausted(self) -> bool:
        limit = self.consumption_limit
        return limit is not None and self.download_count >= limit

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_purge_due(self, now: datetime) -> bool:
        """True once the record's lifecycle has ended and its grace (if any) elapsed."""
        if now >= self.expires_at:
            return True
        return self.purge_after is not None and now >= self.purge_after

    def state(self, now: datetime) -> RecordState:
        if self.is_expired(now):
            return RecordState.EXPIRED
        if self.is_exhausted:
            return RecordState.EXHAUSTED
        if self.download_count == 0:
            return RecordState.PENDING
        return RecordState.LIVE

    def consumed(self, now: datetime, purge_grace: timedelta) -> ObjectRecord:
        """Return the record after one more successful gate pass."""
        count = self.download_count + 1
        record = replace(self, download_count=count)
        if record.is_exhausted and self.purge_after is None:
            record = replace(record, purge_after=now + purge_grace)
        return record

    @classmethod
    def from_row(cls, row: ObjectRecordRow) -> ObjectRecord:
        return cls(
            slug=row.slug,
            storage_key=row.storage_key,
            original_name=row.original_name,
            size=row.size,
            mime_type=row.mime_type,
            expires_at=row.expires_at,
            created_at=row.created_at,
            password_hash=row.password_hash,
            one_time_download=row.one_time_download,
            max_downloads=row.max_downloads,
            download_count=row.download_count,
            purge_after=row.purge_after,
        )

    def to_row(self) -> ObjectRecordRow:
        return ObjectRecordRow(
            slug=self.slug,
            storage_key=self.storage_key,
            original_name=self.original_name,
            size=self.size,
            mime_type=self.mime_type,
            expires_at=self.expires_at,
            created_at=self.created_at,
            password_hash=self.password_hash,
            one_time_download=self.one_time_download,
            max_downloads=self.max_downloads,
            download_count=self.download_count,
            purge_after=self.purge_after,
        )
