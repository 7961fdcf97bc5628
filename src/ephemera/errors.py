"""Typed errors for Ephemera.

Gate denials are not errors: the access gate returns them as results so
callers can distinguish "prompt for a password" from "this link is gone".
The exceptions here cover malformed input, conflicts, and backend failures.
"""

from ephemera.models.enums import UploadRejection


class EphemeraError(Exception):
    """Base exception for all Ephemera errors."""


class UploadRejectedError(EphemeraError):
    """Raised when upload negotiation refuses a request."""

    def __init__(self, reason: UploadRejection, message: str | None = None) -> None:
        """Initialize with the rejection reason."""
        self.reason = reason
        super().__init__(message or reason.value.replace("_", " "))


class InvalidSlugFormatError(UploadRejectedError):
    """Raised when a requested slug does not match the slug format."""

    def __init__(self, slug: str) -> None:
        """Initialize with the offending slug."""
        self.slug = slug
        super().__init__(
            UploadRejection.INVALID_SLUG_FORMAT,
            f"Invalid slug {slug!r}: expected 6-30 characters of a-z, 0-9 and '-'",
        )


class SlugTakenError(UploadRejectedError):
    """Raised when a requested slug is held by a live record."""

    def __init__(self, slug: str) -> None:
        """Initialize with the contested slug."""
        self.slug = slug
        super().__init__(UploadRejection.SLUG_TAKEN, f"Slug already taken: {slug}")


class AllocationExhaustedError(UploadRejectedError):
    """Raised when no free random slug was found within the attempt budget."""

    def __init__(self, attempts: int) -> None:
        """Initialize with the number of attempts made."""
        self.attempts = attempts
        super().__init__(
            UploadRejection.ALLOCATION_EXHAUSTED,
            f"Could not allocate a unique slug after {attempts} attempts",
        )


class RecordExistsError(EphemeraError):
    """Raised by a metadata store when a conditional create finds the slug in use."""

    def __init__(self, slug: str) -> None:
        """Initialize with the conflicting slug."""
        self.slug = slug
        super().__init__(f"Record already exists: {slug}")


class BackendError(EphemeraError):
    """Base for failures of an external collaborator. Safe to retry."""


class StorageError(BackendError):
    """Raised when the storage delegate cannot complete an operation."""


class MetadataStoreError(BackendError):
    """Raised when the metadata store cannot complete an operation."""


class RateLimitedError(EphemeraError):
    """Raised when a client exceeds its request budget for an action."""

    def __init__(self, action: str, retry_after_seconds: int) -> None:
        """Initialize with the throttled action and the wait before retrying."""
        self.action = action
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limit exceeded for {action}; retry in {retry_after_seconds}s")
