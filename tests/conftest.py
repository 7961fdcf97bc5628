"""Shared pytest fixtures for Ephemera tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from ephemera.clients.storage import InMemoryStorageDelegate
from ephemera.db import init_db, make_engine, make_session_factory
from ephemera.dependencies import Services, build_services
from ephemera.models.enums import RateLimitAction
from ephemera.records import ObjectRecord
from ephemera.security import PasswordHasher
from ephemera.services.rate_limiter import FixedWindowRateLimiter, RateLimitRule
from ephemera.store.base import MetadataStore
from ephemera.store.memory import InMemoryMetadataStore
from ephemera.store.sql import SqlMetadataStore

# Fixed start time so expiry arithmetic in tests is exact
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for time-travel tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> PasswordHasher:
    """Cheapest bcrypt cost so password tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def storage() -> InMemoryStorageDelegate:
    return InMemoryStorageDelegate()


@pytest.fixture
def memory_store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlMetadataStore, None]:
    """SQL store on a throwaway SQLite file.

    A file rather than ``:memory:`` so every pooled connection sees the
    same database.
    """
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'ephemera.db'}", echo=False)
    await init_db(engine)
    store = SqlMetadataStore(make_session_factory(engine), engine=engine)
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sql"])
async def any_store(
    request: pytest.FixtureRequest, tmp_path: Path
) -> AsyncGenerator[MetadataStore, None]:
    """Each store implementation, for contract tests."""
    if request.param == "memory":
        yield InMemoryMetadataStore()
        return
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'contract.db'}", echo=False)
    await init_db(engine)
    store = SqlMetadataStore(make_session_factory(engine), engine=engine)
    yield store
    await store.close()


@pytest.fixture
def limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        {
            RateLimitAction.UPLOAD: RateLimitRule(limit=100, window_seconds=60),
            RateLimitAction.DOWNLOAD: RateLimitRule(limit=100, window_seconds=60),
        }
    )


@pytest.fixture
async def services(
    memory_store: InMemoryMetadataStore,
    storage: InMemoryStorageDelegate,
    hasher: PasswordHasher,
    limiter: FixedWindowRateLimiter,
    clock: FakeClock,
) -> AsyncGenerator[Services, None]:
    services = build_services(
        memory_store,
        storage,
        limiter=limiter,
        hasher=hasher,
        purge_grace_seconds=60,
        clock=clock,
    )
    yield services
    await services.scheduler.shutdown()


# Type alias for factory fixture
MakeRecord = Callable[..., ObjectRecord]


@pytest.fixture
def make_record(clock: FakeClock, hasher: PasswordHasher) -> MakeRecord:
    """Factory fixture for creating ObjectRecord instances."""
    counter = 0

    def _make(
        *,
        slug: str | None = None,
        expires_in: timedelta = timedelta(minutes=10),
        password: str | None = None,
        one_time_download: bool = False,
        max_downloads: int | None = None,
        download_count: int = 0,
        **overrides: Any,
    ) -> ObjectRecord:
        nonlocal counter
        counter += 1
        slug = slug or f"record-{counter:04d}"
        fields: dict[str, Any] = {
            "slug": slug,
            "storage_key": f"uploads/{slug}-1700000000000.bin",
            "original_name": f"{slug}.bin",
            "size": 1024,
            "mime_type": "application/octet-stream",
            "expires_at": clock.now + expires_in,
            "created_at": clock.now,
            "password_hash": hasher.hash(password) if password else None,
            "one_time_download": one_time_download,
            "max_downloads": max_downloads,
            "download_count": download_count,
        }
        fields.update(overrides)
        return ObjectRecord(**fields)

    return _make
