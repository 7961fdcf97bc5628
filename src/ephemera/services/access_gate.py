"""Access gate: decides whether a retrieval may be served.

Evaluation order (first matching outcome wins):
1. No record → NotFound
2. Past expiry → opportunistic purge, Denied(EXPIRED)
3. One-time download already used → Denied(ALREADY_CONSUMED)
4. Download ceiling reached → Denied(LIMIT_REACHED)
5. Password set, none supplied → Denied(PASSWORD_REQUIRED)
6. Password set, wrong password → Denied(INVALID_PASSWORD)
7. Conditional increment → Granted(url), deferred purge if now exhausted

Steps 2-4 run twice: once against a snapshot so denials are cheap and a
wrong password never touches the counter, and again inside the store's
atomic increment, which is the check that actually guards the limit.
A concurrent request that loses the race is denied by the second check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ephemera.clients.storage import StorageDelegate
from ephemera.config import settings
from ephemera.models.enums import ConsumeOutcome, DenialReason, RecordState
from ephemera.records import ObjectRecord
from ephemera.security import PasswordHasher
from ephemera.services.purge import Purger, PurgeScheduler
from ephemera.store.base import MetadataStore
from ephemera.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Granted:
    """The caller may download the object via ``download_url``."""

    download_url: str
    filename: str
    size: int
    download_count: int
    exhausted: bool
    """True if this grant consumed the last allowed download."""


@dataclass(frozen=True)
class Denied:
    """The record exists but may not be served."""

    reason: DenialReason


@dataclass(frozen=True)
class NotFound:
    """No live record holds the slug."""


GateResult = Granted | Denied | NotFound


@dataclass(frozen=True)
class PublicStatus:
    """What anyone holding the link may learn without consuming it."""

    slug: str
    filename: str
    size: int
    mime_type: str | None
    expires_at: datetime
    requires_password: bool
    download_count: int
    one_time_download: bool
    max_downloads: int | None
    state: RecordState


StatusResult = PublicStatus | Denied | NotFound


def limit_denial(record: ObjectRecord) -> Denied | None:
    """Denial for a record whose consumption limit is reached, else None."""
    if record.one_time_download and record.download_count >= 1:
        return Denied(DenialReason.ALREADY_CONSUMED)
    if record.max_downloads is not None and record.download_count >= record.max_downloads:
        return Denied(DenialReason.LIMIT_REACHED)
    return None


class AccessGate:
    """Evaluate retrieval requests against records.

    Usage:
        gate = AccessGate(store, storage, purger, scheduler)
        result = await gate.evaluate("my-file", password="hunter2")
        if isinstance(result, Granted):
            ...
    """

    def __init__(
        self,
        store: MetadataStore,
        storage: StorageDelegate,
        purger: Purger,
        scheduler: PurgeScheduler,
        *,
        hasher: PasswordHasher | None = None,
        download_url_ttl: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._storage = storage
        self._purger = purger
        self._scheduler = scheduler
        self._hasher = hasher or PasswordHasher()
        self._download_url_ttl = (
            settings.download_url_ttl_seconds if download_url_ttl is None else download_url_ttl
        )
        self._clock = clock

    async def evaluate(self, slug: str, password: str | None = None) -> GateResult:
        """Decide a retrieval and, on success, consume one download.

        Raises:
            BackendError: The store or storage delegate failed before any
                state was committed. Safe to retry.
        """
        record = await self._store.get(slug)
        if record is None:
            return NotFound()

        if record.is_expired(self._clock()):
            await self._purger.purge_quietly(record)
            return Denied(DenialReason.EXPIRED)

        denial = limit_denial(record)
        if denial is not None:
            return denial

        if record.password_hash is not None:
            if not password:
                return Denied(DenialReason.PASSWORD_REQUIRED)
            if not await self._hasher.verify_async(password, record.password_hash):
                logger.info("Invalid password for %s", slug)
                return Denied(DenialReason.INVALID_PASSWORD)

        # Signed before the increment so a signing failure consumes nothing
        download_url = await self._storage.issue_download_url(
            record.storage_key, record.original_name, self._download_url_ttl
        )

        result = await self._store.consume(
            slug,
            now=self._clock(),
            purge_grace=timedelta(seconds=self._scheduler.grace_seconds),
        )

        if result.outcome is ConsumeOutcome.MISSING:
            logger.info("Record %s vanished before grant; failing closed", slug)
            return NotFound()
        if result.outcome is ConsumeOutcome.EXPIRED:
            assert result.record is not None
            await self._purger.purge_quietly(result.record)
            return Denied(DenialReason.EXPIRED)
        if result.outcome is ConsumeOutcome.EXHAUSTED:
            assert result.record is not None
            logger.info("Lost the race for %s: limit reached concurrently", slug)
            return limit_denial(result.record) or Denied(DenialReason.LIMIT_REACHED)

        consumed = result.record
        assert consumed is not None
        logger.info(
            "Granted %s (download %d/%s)",
            slug, consumed.download_count, consumed.consumption_limit or "∞",
        )
        if consumed.is_exhausted:
            self._scheduler.schedule(slug)

        return Granted(
            download_url=download_url,
            filename=consumed.original_name,
            size=consumed.size,
            download_count=consumed.download_count,
            exhausted=consumed.is_exhausted,
        )

    async def status(self, slug: str) -> StatusResult:
        """Public metadata for a slug. Never consumes a download or purges."""
        record = await self._store.get(slug)
        if record is None:
            return NotFound()

        now = self._clock()
        if record.is_expired(now):
            return Denied(DenialReason.EXPIRED)
        denial = limit_denial(record)
        if denial is not None:
            return denial

        return PublicStatus(
            slug=record.slug,
            filename=record.original_name,
            size=record.size,
            mime_type=record.mime_type,
            expires_at=record.expires_at,
            requires_password=record.requires_password,
            download_count=record.download_count,
            one_time_download=record.one_time_download,
            max_downloads=record.max_downloads,
            state=record.state(now),
        )
