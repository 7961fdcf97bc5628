"""Lifecycle engine services for Ephemera."""

from ephemera.services.access_gate import (
    AccessGate,
    Denied,
    GateResult,
    Granted,
    NotFound,
    PublicStatus,
    StatusResult,
)
from ephemera.services.purge import Purger, PurgeScheduler
from ephemera.services.rate_limiter import (
    FixedWindowRateLimiter,
    RateLimitDecision,
    RateLimitRule,
)
from ephemera.services.slug_allocator import SlugAllocator, is_valid_slug, normalize_slug
from ephemera.services.sweeper import LifecycleSweeper, SweepReport
from ephemera.services.uploads import UploadService, UploadTicket

__all__ = [
    "AccessGate",
    "Denied",
    "FixedWindowRateLimiter",
    "GateResult",
    "Granted",
    "is_valid_slug",
    "LifecycleSweeper",
    "normalize_slug",
    "NotFound",
    "PublicStatus",
    "Purger",
    "PurgeScheduler",
    "RateLimitDecision",
    "RateLimitRule",
    "SlugAllocator",
    "StatusResult",
    "SweepReport",
    "UploadService",
    "UploadTicket",
]
