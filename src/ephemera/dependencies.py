"""Service wiring and FastAPI dependencies."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request

from ephemera.clients.storage import InMemoryStorageDelegate, S3StorageDelegate, StorageDelegate
from ephemera.config import settings
from ephemera.db import init_db, make_engine, make_session_factory
from ephemera.errors import RateLimitedError
from ephemera.models.enums import RateLimitAction
from ephemera.security import PasswordHasher
from ephemera.services.access_gate import AccessGate
from ephemera.services.purge import Purger, PurgeScheduler
from ephemera.services.rate_limiter import FixedWindowRateLimiter
from ephemera.services.slug_allocator import SlugAllocator
from ephemera.services.sweeper import LifecycleSweeper
from ephemera.services.uploads import UploadService
from ephemera.store.base import MetadataStore
from ephemera.store.sql import SqlMetadataStore
from ephemera.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every engine component, wired to one store and one storage delegate."""

    store: MetadataStore
    storage: StorageDelegate
    limiter: FixedWindowRateLimiter
    allocator: SlugAllocator
    purger: Purger
    scheduler: PurgeScheduler
    gate: AccessGate
    sweeper: LifecycleSweeper
    uploads: UploadService

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.store.close()


def build_services(
    store: MetadataStore,
    storage: StorageDelegate,
    *,
    limiter: FixedWindowRateLimiter | None = None,
    hasher: PasswordHasher | None = None,
    purge_grace_seconds: float | None = None,
    clock: Clock = utcnow,
) -> Services:
    hasher = hasher or PasswordHasher()
    allocator = SlugAllocator(store)
    purger = Purger(store, storage)
    scheduler = PurgeScheduler(purger, store, grace_seconds=purge_grace_seconds, clock=clock)
    return Services(
        store=store,
        storage=storage,
        limiter=limiter or FixedWindowRateLimiter(),
        allocator=allocator,
        purger=purger,
        scheduler=scheduler,
        gate=AccessGate(store, storage, purger, scheduler, hasher=hasher, clock=clock),
        sweeper=LifecycleSweeper(store, purger, clock=clock),
        uploads=UploadService(store, storage, allocator, hasher=hasher, clock=clock),
    )


def build_storage_from_settings() -> StorageDelegate:
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage delegate; uploaded bytes are not persisted")
        return InMemoryStorageDelegate()
    if settings.storage_backend == "s3":
        return S3StorageDelegate()
    raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")


async def build_default_services() -> Services:
    """Services on the configured database and byte store. Creates tables."""
    engine = make_engine()
    await init_db(engine)
    store = SqlMetadataStore(make_session_factory(engine), engine=engine)
    return build_services(store, build_storage_from_settings())


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_address(request: Request) -> str:
    """Best-effort client address: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(action: RateLimitAction) -> Callable[[Request], None]:
    """Dependency that counts the request against ``action``'s budget."""

    def _check(request: Request) -> None:
        services = get_services(request)
        decision = services.limiter.check(client_address(request), action)
        if not decision.allowed:
            raise RateLimitedError(action.value, decision.retry_after_seconds)

    return _check
