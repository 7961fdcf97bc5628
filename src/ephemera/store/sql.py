"""SQLAlchemy-backed metadata store.

Every mutation is a single statement so the database provides the
atomicity: the primary key makes create a conditional put, and the
download-count increment is an ``UPDATE ... WHERE`` that re-checks expiry
and the consumption limit against the committed row.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, case, delete, literal, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ephemera.errors import MetadataStoreError, RecordExistsError
from ephemera.models.base import UTCDateTime
from ephemera.models.enums import ConsumeOutcome
from ephemera.models.object_record import ObjectRecordRow
from ephemera.records import ObjectRecord
from ephemera.store.base import ConsumeResult, MetadataStore

_Row = ObjectRecordRow

# Row may be served again: below both the one-time and max-downloads ceilings
_BELOW_LIMIT = and_(
    or_(_Row.one_time_download.is_(False), _Row.download_count < 1),
    or_(_Row.max_downloads.is_(None), _Row.download_count < _Row.max_downloads),
)

# The pending increment is the one that reaches the ceiling
_INCREMENT_EXHAUSTS = or_(
    _Row.one_time_download.is_(True),
    and_(_Row.max_downloads.is_not(None), _Row.download_count + 1 >= _Row.max_downloads),
)


class SqlMetadataStore(MetadataStore):
    """Metadata store on any SQLAlchemy async engine (PostgreSQL, SQLite)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    async def create(self, record: ObjectRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(record.to_row())
                await session.commit()
        except IntegrityError as exc:
            raise RecordExistsError(record.slug) from exc
        except SQLAlchemyError as exc:
            raise MetadataStoreError(f"create {record.slug} failed: {exc}") from exc

    async def get(self, slug: str) -> ObjectRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ObjectRecordRow, slug)
                return ObjectRecord.from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise MetadataStoreError(f"get {slug} failed: {exc}") from exc

    async def consume(
        self,
        slug: str,
        *,
        now: datetime,
        purge_grace: timedelta,
    ) -> ConsumeResult:
        purge_at = literal(now + purge_grace, type_=UTCDateTime())
        stmt = (
            update(ObjectRecordRow)
            .where(
                _Row.slug == slug,
                _Row.expires_at >= now,
                _BELOW_LIMIT,
            )
            .values(
                download_count=_Row.download_count + 1,
                purge_after=case(
                    (and_(_INCREMENT_EXHAUSTS, _Row.purge_after.is_(None)), purge_at),
                    else_=_Row.purge_after,
                ),
            )
            .returning(ObjectRecordRow)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is not None:
                    record = ObjectRecord.from_row(row)
                    await session.commit()
                    return ConsumeResult(ConsumeOutcome.CONSUMED, record)

                await session.rollback()
                current = await session.get(ObjectRecordRow, slug)
                if current is None:
                    return ConsumeResult(ConsumeOutcome.MISSING)
                snapshot = ObjectRecord.from_row(current)
                if snapshot.is_expired(now):
                    return ConsumeResult(ConsumeOutcome.EXPIRED, snapshot)
                return ConsumeResult(ConsumeOutcome.EXHAUSTED, snapshot)
        except SQLAlchemyError as exc:
            raise MetadataStoreError(f"consume {slug} failed: {exc}") from exc

    async def delete(self, slug: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(ObjectRecordRow)
                    .where(_Row.slug == slug)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise MetadataStoreError(f"delete {slug} failed: {exc}") from exc

    async def list_purge_due(self, now: datetime) -> list[ObjectRecord]:
        stmt = (
            select(ObjectRecordRow)
            .where(or_(_Row.expires_at <= now, _Row.purge_after <= now))
            .order_by(_Row.expires_at)
        )
        return await self._fetch(stmt)

    async def list_all(self) -> list[ObjectRecord]:
        return await self._fetch(select(ObjectRecordRow).order_by(_Row.created_at))

    async def _fetch(self, stmt) -> list[ObjectRecord]:
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [ObjectRecord.from_row(row) for row in rows]
        except SQLAlchemyError as exc:
            raise MetadataStoreError(f"query failed: {exc}") from exc

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
