"""Database models for Ephemera."""

from ephemera.models.base import Base, UTCDateTime
from ephemera.models.enums import (
    ConsumeOutcome,
    DenialReason,
    RateLimitAction,
    RecordState,
    UploadRejection,
)
from ephemera.models.object_record import ObjectRecordRow

__all__ = [
    "Base",
    "ConsumeOutcome",
    "DenialReason",
    "ObjectRecordRow",
    "RateLimitAction",
    "RecordState",
    "UploadRejection",
    "UTCDateTime",
]
