"""Pydantic schemas for the HTTP surface.

Field names are snake_case in Python and camelCase on the wire, matching
what browser clients send.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadRequest(_Wire):
    """Upload negotiation input.

    Required fields are optional here so a missing one is reported as
    ``missing_fields`` by the upload service instead of a schema error.
    """

    filename: str | None = None
    size: int | None = Field(default=None, ge=0)
    content_type: str | None = None
    expiry_minutes: int | None = None
    slug: str | None = None
    password: str | None = None
    one_time_download: bool = False
    max_downloads: int | None = Field(default=None, ge=0)
    """0 means no ceiling."""


class UploadResponse(_Wire):
    upload_url: str
    slug: str
    expires_at: datetime


class DownloadRequest(_Wire):
    slug: str | None = None
    password: str | None = None


class DownloadResponse(_Wire):
    download_url: str
    filename: str
    size: int


class StatusResponse(_Wire):
    filename: str
    size: int
    expires_at: datetime
    requires_password: bool
    download_count: int
    one_time_download: bool
    max_downloads: int | None


class SweepResponse(_Wire):
    status: str = "ok"
    timestamp: datetime
    scanned: int
    purged: int
    failed: int


class ErrorResponse(_Wire):
    error: str
    message: str
    requires_password: bool = False
