"""Enumerations for the Ephemera data model."""

from enum import Enum


class RecordState(str, Enum):
    """Lifecycle state of an ObjectRecord.

    PENDING and LIVE are treated alike by the engine: byte-upload
    confirmation is delegated to the storage backend, so a freshly created
    record is retrievable immediately. PURGED is never observed on a record;
    a purged record ceases to exist.
    """

    PENDING = "pending"
    LIVE = "live"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    PURGED = "purged"


class DenialReason(str, Enum):
    """Why the access gate refused a retrieval."""

    EXPIRED = "expired"
    ALREADY_CONSUMED = "already_consumed"
    LIMIT_REACHED = "limit_reached"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"


class UploadRejection(str, Enum):
    """Why upload negotiation refused a request."""

    MISSING_FIELDS = "missing_fields"
    FILE_TOO_LARGE = "file_too_large"
    INVALID_EXPIRY = "invalid_expiry"
    INVALID_SLUG_FORMAT = "invalid_slug_format"
    SLUG_TAKEN = "slug_taken"
    ALLOCATION_EXHAUSTED = "allocation_exhausted"


class RateLimitAction(str, Enum):
    """Actions with independent rate-limit budgets."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class ConsumeOutcome(str, Enum):
    """Result of the store's conditional download-count increment."""

    CONSUMED = "consumed"  # Incremented; the caller may serve the URL
    MISSING = "missing"  # Record vanished (purged concurrently)
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"  # Consumption limit already reached
