"""Fixed-window rate limiter keyed by (action, client address).

Single-node and in-memory: counters live in this process only. That makes
it an approximate limiter when several workers serve traffic, which is
acceptable for bounding abuse of upload/download negotiation.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from ephemera.config import settings
from ephemera.models.enums import RateLimitAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Ceiling of ``limit`` requests per ``window_seconds``."""

    limit: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int
    reset_in_ms: int

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the window resets, rounded up."""
        return max(1, -(-self.reset_in_ms // 1000))


@dataclass
class _Window:
    started_at: float
    count: int


def default_rules() -> dict[RateLimitAction, RateLimitRule]:
    return {
        RateLimitAction.UPLOAD: RateLimitRule(
            settings.upload_rate_limit, settings.upload_rate_window_seconds
        ),
        RateLimitAction.DOWNLOAD: RateLimitRule(
            settings.download_rate_limit, settings.download_rate_window_seconds
        ),
    }


class FixedWindowRateLimiter:
    """Fixed-window counters with lazy garbage collection.

    Each (action, client) pair owns a window. Within an active window every
    request increments the count and is denied once the count exceeds the
    action's ceiling; the first request after the window elapses starts a
    new window with count 1. Expired windows are dropped at most once per
    ``prune_interval`` seconds, during a regular check.
    """

    def __init__(
        self,
        rules: Mapping[RateLimitAction, RateLimitRule] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        prune_interval: float | None = None,
    ) -> None:
        self._rules = dict(rules) if rules is not None else default_rules()
        self._clock = clock
        self._prune_interval = (
            settings.rate_limit_prune_interval_seconds if prune_interval is None else prune_interval
        )
        self._windows: dict[tuple[RateLimitAction, str], _Window] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def check(self, client_key: str, action: RateLimitAction) -> RateLimitDecision:
        """Count one request and decide whether it may proceed."""
        rule = self._rules.get(action)
        if rule is None:
            raise ValueError(f"No rate limit configured for action {action!r}")

        window_ms = int(rule.window_seconds * 1000)
        with self._lock:
            now = self._clock()
            if now - self._last_prune >= self._prune_interval:
                self._prune_locked(now)

            key = (action, client_key)
            window = self._windows.get(key)
            if window is None or now - window.started_at >= rule.window_seconds:
                self._windows[key] = _Window(started_at=now, count=1)
                return RateLimitDecision(
                    allowed=True, remaining=rule.limit - 1, reset_in_ms=window_ms
                )

            window.count += 1
            reset_in_ms = max(0, int((window.started_at + rule.window_seconds - now) * 1000))
            if window.count > rule.limit:
                logger.debug(
                    "Rate limit hit: %s by %s (%d/%d)",
                    action.value, client_key, window.count, rule.limit,
                )
                return RateLimitDecision(allowed=False, remaining=0, reset_in_ms=reset_in_ms)

            return RateLimitDecision(
                allowed=True, remaining=rule.limit - window.count, reset_in_ms=reset_in_ms
            )

    def prune(self) -> int:
        """Forget every window that has elapsed. Returns how many were dropped."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self._rules[key[0]].window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_prune = now
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
