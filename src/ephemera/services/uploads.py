"""Upload negotiation: validate the request, claim a slug, hand back a signed URL.

The engine is not on the byte path. It persists a record for the slug and
returns a short-lived URL the client uploads to directly; the record is
retrievable as soon as it exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import PurePath

from ephemera.clients.storage import StorageDelegate
from ephemera.config import settings
from ephemera.errors import (
    AllocationExhaustedError,
    RecordExistsError,
    SlugTakenError,
    UploadRejectedError,
)
from ephemera.models.enums import UploadRejection
from ephemera.records import ObjectRecord
from ephemera.schemas import UploadRequest
from ephemera.security import PasswordHasher
from ephemera.services.slug_allocator import SlugAllocator, normalize_slug
from ephemera.store.base import MetadataStore
from ephemera.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadTicket:
    """Everything the client needs to upload and share."""

    upload_url: str
    slug: str
    expires_at: datetime
    storage_key: str


def make_storage_key(slug: str, filename: str, now: datetime) -> str:
    """Object key for a new upload: ``uploads/<slug>-<epoch ms><ext>``."""
    suffix = PurePath(filename).suffix
    return f"uploads/{slug}-{int(now.timestamp() * 1000)}{suffix}"


class UploadService:
    """Negotiate uploads.

    Usage:
        service = UploadService(store, storage, allocator)
        ticket = await service.negotiate(UploadRequest(filename="a.txt", ...))
    """

    def __init__(
        self,
        store: MetadataStore,
        storage: StorageDelegate,
        allocator: SlugAllocator,
        *,
        hasher: PasswordHasher | None = None,
        max_file_size: int | None = None,
        allowed_expiry_minutes: list[int] | None = None,
        upload_url_ttl: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._storage = storage
        self._allocator = allocator
        self._hasher = hasher or PasswordHasher()
        self._max_file_size = settings.max_file_size_bytes if max_file_size is None else max_file_size
        self._allowed_expiry = list(
            settings.allowed_expiry_minutes if allowed_expiry_minutes is None else allowed_expiry_minutes
        )
        self._upload_url_ttl = settings.upload_url_ttl_seconds if upload_url_ttl is None else upload_url_ttl
        self._clock = clock

    async def negotiate(self, request: UploadRequest) -> UploadTicket:
        """Create a record and return a signed upload URL.

        Raises:
            UploadRejectedError: Validation or conflict failure; ``reason``
                says which.
            BackendError: The store or storage delegate failed; nothing
                was persisted.
        """
        if not request.filename or not request.size or not request.content_type:
            raise UploadRejectedError(UploadRejection.MISSING_FIELDS)
        if request.size > self._max_file_size:
            raise UploadRejectedError(
                UploadRejection.FILE_TOO_LARGE,
                f"File is {request.size} bytes; the limit is {self._max_file_size}",
            )
        if request.expiry_minutes not in self._allowed_expiry:
            raise UploadRejectedError(
                UploadRejection.INVALID_EXPIRY,
                f"Expiry must be one of {self._allowed_expiry} minutes",
            )

        # Blank custom slug means "generate one"
        requested = normalize_slug(request.slug or "") or None
        password_hash = (
            await self._hasher.hash_async(request.password) if request.password else None
        )

        # Allocation only checks liveness; the conditional create is what
        # claims the slug. A random slug lost to a concurrent create is
        # retried within the allocator's attempt budget.
        for _ in range(self._allocator.max_attempts):
            slug = await self._allocator.allocate(requested)
            now = self._clock()
            record = ObjectRecord(
                slug=slug,
                storage_key=make_storage_key(slug, request.filename, now),
                original_name=request.filename,
                size=request.size,
                mime_type=request.content_type,
                expires_at=now + timedelta(minutes=request.expiry_minutes),
                created_at=now,
                password_hash=password_hash,
                one_time_download=request.one_time_download,
                max_downloads=request.max_downloads or None,
            )
            upload_url = await self._storage.issue_upload_url(
                record.storage_key, request.content_type, self._upload_url_ttl
            )
            try:
                await self._store.create(record)
            except RecordExistsError:
                if requested is not None:
                    raise SlugTakenError(requested) from None
                logger.debug("Random slug %s claimed concurrently; retrying", slug)
                continue

            logger.info(
                "Created %s (%s, %d bytes, expires %s)",
                slug, record.original_name, record.size, record.expires_at.isoformat(),
            )
            return UploadTicket(
                upload_url=upload_url,
                slug=slug,
                expires_at=record.expires_at,
                storage_key=record.storage_key,
            )

        raise AllocationExhaustedError(self._allocator.max_attempts)
