"""Tests for StoreGateway: idempotent upsert, scoped replace and error mapping.

Tests verify:
- Upserting the same batch twice leaves one row per natural key
- Duplicate keys inside one batch keep the last occurrence
- replace() swaps a scope in one transaction and leaves other scopes alone
- SQLAlchemy failures surface as StoreError with a mapped kind
"""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from fpl_sync.db import StoreGateway
from fpl_sync.db.store import map_db_error
from fpl_sync.entities import EVENTS, FIXTURES, PLAYER_VALUES, Fixture, PlayerValue
from fpl_sync.errors import ErrorKind, StoreError


@pytest.fixture
def event_store(session_factory):
    return StoreGateway(EVENTS, session_factory)


@pytest.fixture
def fixture_store(session_factory):
    return StoreGateway(FIXTURES, session_factory)


class TestSaveBatch:
    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, event_store, sample_events):
        await event_store.save_batch(sample_events)
        await event_store.save_batch(sample_events)

        assert await event_store.count() == 3
        assert await event_store.find_all() == sample_events

    @pytest.mark.asyncio
    async def test_upsert_overwrites_mutable_columns(self, fixture_store, sample_fixtures):
        await fixture_store.save_batch(sample_fixtures)
        updated = Fixture(id=11, event_id=2, team_h=2, team_a=3, team_h_score=1, team_a_score=1, started=True, minutes=45)

        await fixture_store.save_batch([updated])

        assert await fixture_store.find_by_id((11,)) == updated
        assert await fixture_store.count() == 3

    @pytest.mark.asyncio
    async def test_duplicate_keys_keep_last_occurrence(self, fixture_store):
        first = Fixture(id=5, event_id=1, team_h=1, team_a=2, minutes=10)
        last = Fixture(id=5, event_id=1, team_h=1, team_a=2, minutes=90)

        persisted = await fixture_store.save_batch([first, last])

        assert persisted == [last]
        assert await fixture_store.find_by_id((5,)) == last

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self, fixture_store):
        assert await fixture_store.save_batch([]) == []
        assert await fixture_store.count() == 0

    @pytest.mark.asyncio
    async def test_timestamps_round_trip_as_utc(self, event_store, sample_events):
        await event_store.save_batch(sample_events)

        event = await event_store.find_by_id((1,))

        assert event.deadline_time == sample_events[0].deadline_time
        assert event.deadline_time.tzinfo is not None

    @pytest.mark.asyncio
    async def test_composite_date_key(self, session_factory):
        store = StoreGateway(PLAYER_VALUES, session_factory)
        values = [
            PlayerValue(element_id=1, change_date=date(2025, 9, 13), value=55),
            PlayerValue(element_id=1, change_date=date(2025, 9, 14), value=56, last_value=55),
        ]

        await store.save_batch(values)

        found = await store.find_by_id((1, date(2025, 9, 14)))
        assert found.change_type == "rise"
        assert await store.find_by_scope(date(2025, 9, 13)) == [values[0]]


class TestReads:
    @pytest.mark.asyncio
    async def test_find_by_id_missing_raises_not_found(self, event_store):
        with pytest.raises(StoreError) as exc_info:
            await event_store.find_by_id((99,))
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_find_by_scope(self, fixture_store, sample_fixtures):
        await fixture_store.save_batch(sample_fixtures)

        gw1 = await fixture_store.find_by_scope(1)

        assert [f.id for f in gw1] == [1, 2]

    @pytest.mark.asyncio
    async def test_find_first_flag(self, event_store, sample_events):
        await event_store.save_batch(sample_events)

        assert (await event_store.find_first("is_current")).id == 2
        assert (await event_store.find_first("is_next")).id == 3

    @pytest.mark.asyncio
    async def test_find_first_without_match(self, event_store):
        assert await event_store.find_first("is_current") is None

    @pytest.mark.asyncio
    async def test_scope_query_on_unscoped_kind_is_validation_error(self, event_store):
        with pytest.raises(StoreError) as exc_info:
            await event_store.find_by_scope(1)
        assert exc_info.value.kind is ErrorKind.VALIDATION


class TestReplace:
    @pytest.mark.asyncio
    async def test_replace_scope_leaves_other_scopes(self, fixture_store, sample_fixtures):
        await fixture_store.save_batch(sample_fixtures)
        rescheduled = [Fixture(id=3, event_id=1, team_h=5, team_a=6)]

        await fixture_store.replace(rescheduled, scope=1)

        assert [f.id for f in await fixture_store.find_by_scope(1)] == [3]
        assert [f.id for f in await fixture_store.find_by_scope(2)] == [11]

    @pytest.mark.asyncio
    async def test_replace_whole_table(self, event_store, sample_events):
        await event_store.save_batch(sample_events)

        await event_store.replace(sample_events[:1])

        assert await event_store.find_all() == sample_events[:1]

    @pytest.mark.asyncio
    async def test_replace_rejects_records_outside_scope(self, fixture_store, sample_fixtures):
        await fixture_store.save_batch(sample_fixtures)

        with pytest.raises(StoreError) as exc_info:
            await fixture_store.replace(sample_fixtures, scope=1)

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert await fixture_store.count() == 3

    @pytest.mark.asyncio
    async def test_delete_scope_and_all(self, fixture_store, sample_fixtures):
        await fixture_store.save_batch(sample_fixtures)

        assert await fixture_store.delete_scope(1) == 2
        assert await fixture_store.delete_all() == 1
        assert await fixture_store.count() == 0


class TestErrorMapping:
    @pytest.mark.parametrize(
        "exc,kind",
        [
            (OperationalError("SELECT 1", {}, Exception("unable to open database")), ErrorKind.CONNECTION),
            (OperationalError("SELECT 1", {}, Exception("boom"), connection_invalidated=True), ErrorKind.CONNECTION),
            (OperationalError("SELECT 1", {}, Exception("no such table: fixtures")), ErrorKind.QUERY),
            (IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed")), ErrorKind.CONSTRAINT),
            (ProgrammingError("SELECT", {}, Exception("syntax error")), ErrorKind.QUERY),
            (RuntimeError("unexpected"), ErrorKind.OPERATION),
        ],
    )
    def test_map_db_error(self, exc, kind):
        error = map_db_error(exc, "save_batch", "fixtures")

        assert error.kind is kind
        assert error.cause is exc
        assert error.details == {"kind": "fixtures", "operation": "save_batch"}
        assert error.message == "Failed to save batch fixtures"

    @pytest.mark.asyncio
    async def test_missing_table_raises_store_error(self, engine, fixture_store):
        async with engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE fixtures")

        with pytest.raises(StoreError) as exc_info:
            await fixture_store.find_all()

        # SQLite raises OperationalError for a missing table; it is not an outage
        assert exc_info.value.kind is ErrorKind.QUERY
        assert exc_info.value.message == "Failed to find all fixtures"
        assert "no such table" in str(exc_info.value.cause)

    @pytest.mark.asyncio
    async def test_check_health(self, event_store):
        assert await event_store.check_health() is True
