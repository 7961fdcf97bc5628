"""ORM row backing an ephemeral object's metadata record."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.models.base import Base, UTCDateTime


class ObjectRecordRow(Base):
    """Durable metadata for one ephemeral file.

    Only ``download_count`` and ``purge_after`` change after creation, and
    only through the store's conditional increment. Purging deletes the row
    outright; there is no tombstone.
    """

    __tablename__ = "object_records"

    slug: Mapped[str] = mapped_column(String(30), primary_key=True)
    storage_key: Mapped[str] = mapped_column(String(1024))
    original_name: Mapped[str] = mapped_column(String(1024))
    size: Mapped[int] = mapped_column(BigInteger)
    mime_type: Mapped[str | None] = mapped_column(String(255))
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255))
    one_time_download: Mapped[bool] = mapped_column(Boolean, default=False)
    max_downloads: Mapped[int | None] = mapped_column(Integer)
    download_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime())

    purge_after: Mapped[datetime | None] = mapped_column(UTCDateTime(), index=True)
    """Set when the record reaches its consumption limit; the sweep purges it after this."""
