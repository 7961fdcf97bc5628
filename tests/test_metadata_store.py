"""Contract tests run against every MetadataStore implementation."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from ephemera.errors import RecordExistsError
from ephemera.models.enums import ConsumeOutcome
from ephemera.store.base import MetadataStore
from ephemera.store.memory import InMemoryMetadataStore

if TYPE_CHECKING:
    from conftest import FakeClock, MakeRecord

GRACE = timedelta(seconds=60)


class TestCreateGetDelete:
    async def test_round_trip(self, any_store: MetadataStore, make_record: MakeRecord) -> None:
        record = make_record(slug="round-trip", password="pw", max_downloads=3)
        await any_store.create(record)
        assert await any_store.get("round-trip") == record
        assert await any_store.exists("round-trip")

    async def test_get_missing(self, any_store: MetadataStore) -> None:
        assert await any_store.get("no-such-slug") is None
        assert not await any_store.exists("no-such-slug")

    async def test_create_is_conditional(
        self, any_store: MetadataStore, make_record: MakeRecord
    ) -> None:
        first = make_record(slug="contested")
        await any_store.create(first)
        with pytest.raises(RecordExistsError):
            await any_store.create(make_record(slug="contested", size=1))
        assert await any_store.get("contested") == first

    async def test_delete(self, any_store: MetadataStore, make_record: MakeRecord) -> None:
        await any_store.create(make_record(slug="to-delete"))
        assert await any_store.delete("to-delete") is True
        assert await any_store.get("to-delete") is None
        assert await any_store.delete("to-delete") is False

    async def test_list_all_oldest_first(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="second", created_at=clock.now))
        await any_store.create(
            make_record(slug="first", created_at=clock.now - timedelta(minutes=1))
        )
        assert [r.slug for r in await any_store.list_all()] == ["first", "second"]


class TestConsume:
    async def test_increments(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="counted"))
        for expected in (1, 2, 3):
            result = await any_store.consume("counted", now=clock.now, purge_grace=GRACE)
            assert result.outcome is ConsumeOutcome.CONSUMED
            assert result.record is not None
            assert result.record.download_count == expected
            assert result.record.purge_after is None
        stored = await any_store.get("counted")
        assert stored is not None and stored.download_count == 3

    async def test_missing(self, any_store: MetadataStore, clock: FakeClock) -> None:
        result = await any_store.consume("ghost-slug", now=clock.now, purge_grace=GRACE)
        assert result.outcome is ConsumeOutcome.MISSING
        assert result.record is None

    async def test_expired_not_incremented(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="stale", expires_in=timedelta(seconds=-1)))
        result = await any_store.consume("stale", now=clock.now, purge_grace=GRACE)
        assert result.outcome is ConsumeOutcome.EXPIRED
        stored = await any_store.get("stale")
        assert stored is not None and stored.download_count == 0

    async def test_serves_at_exact_expiry_instant(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="edge-case", expires_in=timedelta(minutes=5)))
        result = await any_store.consume(
            "edge-case", now=clock.now + timedelta(minutes=5), purge_grace=GRACE
        )
        assert result.outcome is ConsumeOutcome.CONSUMED

    async def test_max_downloads_ceiling(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="limited", max_downloads=2))
        outcomes = [
            (await any_store.consume("limited", now=clock.now, purge_grace=GRACE)).outcome
            for _ in range(3)
        ]
        assert outcomes == [
            ConsumeOutcome.CONSUMED,
            ConsumeOutcome.CONSUMED,
            ConsumeOutcome.EXHAUSTED,
        ]
        stored = await any_store.get("limited")
        assert stored is not None
        assert stored.download_count == 2
        assert stored.purge_after == clock.now + GRACE

    async def test_one_time_stamps_purge_intent(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="once-only", one_time_download=True))
        first = await any_store.consume("once-only", now=clock.now, purge_grace=GRACE)
        assert first.outcome is ConsumeOutcome.CONSUMED
        assert first.record is not None
        assert first.record.purge_after == clock.now + GRACE

        second = await any_store.consume("once-only", now=clock.now, purge_grace=GRACE)
        assert second.outcome is ConsumeOutcome.EXHAUSTED
        assert second.record is not None and second.record.download_count == 1

    async def test_one_time_and_max_downloads_both_enforced(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(
            make_record(slug="both-set", one_time_download=True, max_downloads=5)
        )
        await any_store.consume("both-set", now=clock.now, purge_grace=GRACE)
        result = await any_store.consume("both-set", now=clock.now, purge_grace=GRACE)
        assert result.outcome is ConsumeOutcome.EXHAUSTED


class TestListPurgeDue:
    async def test_selects_expired_and_graced_exhausted(
        self, any_store: MetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await any_store.create(make_record(slug="live-one"))
        await any_store.create(make_record(slug="expired-one", expires_in=timedelta(seconds=-1)))
        await any_store.create(make_record(slug="consumed-one", one_time_download=True))
        await any_store.consume("consumed-one", now=clock.now, purge_grace=GRACE)

        due_now = {r.slug for r in await any_store.list_purge_due(clock.now)}
        assert due_now == {"expired-one"}

        due_later = {r.slug for r in await any_store.list_purge_due(clock.now + GRACE)}
        assert due_later == {"expired-one", "consumed-one"}


class TestConcurrency:
    async def test_one_time_single_winner(
        self, memory_store: InMemoryMetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await memory_store.create(make_record(slug="race-once", one_time_download=True))

        async def attempt() -> ConsumeOutcome:
            await asyncio.sleep(0)
            result = await memory_store.consume("race-once", now=clock.now, purge_grace=GRACE)
            return result.outcome

        outcomes = await asyncio.gather(*(attempt() for _ in range(25)))
        assert outcomes.count(ConsumeOutcome.CONSUMED) == 1

    async def test_consume_from_threads(
        self, memory_store: InMemoryMetadataStore, make_record: MakeRecord, clock: FakeClock
    ) -> None:
        await memory_store.create(make_record(slug="threaded", max_downloads=7))

        def attempt() -> ConsumeOutcome:
            result = asyncio.run(
                memory_store.consume("threaded", now=clock.now, purge_grace=GRACE)
            )
            return result.outcome

        outcomes = await asyncio.gather(*(asyncio.to_thread(attempt) for _ in range(20)))
        assert outcomes.count(ConsumeOutcome.CONSUMED) == 7
        stored = await memory_store.get("threaded")
        assert stored is not None and stored.download_count == 7
