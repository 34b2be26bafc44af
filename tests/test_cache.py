"""Tests for the Redis cache gateway and its serialization.

Uses fakeredis so every test gets an isolated in-memory server.
"""

from datetime import date, datetime, timezone

import pytest

from fpl_sync.cache import CacheGateway, deserialize, serialize
from fpl_sync.entities import EVENTS, FIXTURES, PLAYER_VALUES, TOURNAMENT_EVENT_RESULTS, PlayerValue, TournamentEventResult
from fpl_sync.errors import CacheError, ErrorKind
from fpl_sync.monitoring import CacheMetrics


@pytest.fixture
def fixture_cache(redis_client):
    return CacheGateway(FIXTURES, redis_client, season="2526", ttl=600)


@pytest.fixture
def event_cache(redis_client):
    return CacheGateway(EVENTS, redis_client, season="2526", ttl=600)


@pytest.fixture
def result_cache(redis_client):
    return CacheGateway(TOURNAMENT_EVENT_RESULTS, redis_client, season="2526", ttl=300)


class TestSerialization:
    def test_datetime_and_date_round_trip(self):
        value = {
            "kickoff_time": datetime(2025, 8, 16, 14, 0, tzinfo=timezone.utc),
            "change_date": date(2025, 9, 14),
            "minutes": 90,
        }
        assert deserialize(serialize(value)) == value

    def test_unserializable_value(self):
        with pytest.raises(CacheError) as exc_info:
            serialize({"x": object()})
        assert exc_info.value.kind is ErrorKind.CACHE_SERIALIZATION

    def test_malformed_json(self):
        with pytest.raises(CacheError) as exc_info:
            deserialize("{not json")
        assert exc_info.value.kind is ErrorKind.CACHE_DESERIALIZATION


class TestKeys:
    def test_key_layout(self, fixture_cache, result_cache, event_cache):
        assert fixture_cache.key() == "fixture::2526"
        assert fixture_cache.key(12) == "fixture::2526::12"
        assert result_cache.key(12, 314) == "tournament_event_result::2526::12::314"
        assert event_cache.pointer_key("current") == "event::2526::current"

    def test_date_scope_is_iso(self, redis_client):
        cache = CacheGateway(PLAYER_VALUES, redis_client, season="2526", ttl=600)
        assert cache.key(date(2025, 9, 14)) == "player_value::2526::2025-09-14"


class TestCollections:
    @pytest.mark.asyncio
    async def test_write_then_read(self, fixture_cache, sample_fixtures):
        gw1 = sample_fixtures[:2]

        await fixture_cache.write(gw1, scope=1)

        assert await fixture_cache.read(scope=1) == gw1
        assert await fixture_cache.read(scope=2) is None

    @pytest.mark.asyncio
    async def test_write_sets_ttl(self, fixture_cache, redis_client, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1, ttl=120)

        ttl = await redis_client.ttl("fixture::2526::1")
        assert 0 < ttl <= 120

    @pytest.mark.asyncio
    async def test_write_replaces_previous_collection(self, fixture_cache, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1)

        await fixture_cache.write(sample_fixtures[1:2], scope=1)

        assert await fixture_cache.read(scope=1) == sample_fixtures[1:2]

    @pytest.mark.asyncio
    async def test_scoped_write_drops_season_wide_copy(self, fixture_cache, sample_fixtures):
        await fixture_cache.write(sample_fixtures)

        await fixture_cache.write(sample_fixtures[:1], scope=1)

        assert await fixture_cache.read() is None
        assert await fixture_cache.exists(1)

    @pytest.mark.asyncio
    async def test_season_wide_write_drops_scoped_copies(self, fixture_cache, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1)
        await fixture_cache.write(sample_fixtures[2:], scope=2)

        await fixture_cache.write(sample_fixtures)

        assert not await fixture_cache.exists(1)
        assert not await fixture_cache.exists(2)
        assert await fixture_cache.read() == sample_fixtures

    @pytest.mark.asyncio
    async def test_fill_without_invalidation_keeps_siblings(self, fixture_cache, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1)

        await fixture_cache.write(sample_fixtures, invalidate_related=False)

        assert await fixture_cache.exists(1)
        assert await fixture_cache.exists()

    @pytest.mark.asyncio
    async def test_secondary_scope_write_drops_scope_wide_copy(self, result_cache):
        results = [TournamentEventResult(tournament_id=314, event_id=12, entry_id=7, points=50)]
        await result_cache.write(results, scope=12)

        await result_cache.write(results, scope=12, secondary_scope=314)

        assert not await result_cache.exists(12)
        assert await result_cache.read(12, 314) == results

    @pytest.mark.asyncio
    async def test_empty_write_clears_collection(self, fixture_cache, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1)

        await fixture_cache.write([], scope=1)

        assert await fixture_cache.read(scope=1) is None


class TestInvalidEntries:
    @pytest.mark.asyncio
    async def test_structurally_invalid_entry_reads_as_absent(self, fixture_cache, redis_client, sample_fixtures):
        await fixture_cache.write(sample_fixtures[:2], scope=1)
        await redis_client.hset("fixture::2526::1", "99", serialize({"event_id": 1, "team_h": 1}))

        assert await fixture_cache.read(scope=1) is None
        assert fixture_cache.metrics.invalid_entries == 1

    @pytest.mark.asyncio
    async def test_entry_missing_required_field_reads_as_absent(self, fixture_cache, redis_client):
        await redis_client.hset("fixture::2526", "5", serialize({"id": 5, "event_id": 1}))

        assert await fixture_cache.read_one((5,)) is None

    @pytest.mark.asyncio
    async def test_malformed_json_raises(self, fixture_cache, redis_client):
        await redis_client.hset("fixture::2526", "5", "{broken")

        with pytest.raises(CacheError) as exc_info:
            await fixture_cache.read()
        assert exc_info.value.kind is ErrorKind.CACHE_DESERIALIZATION


class TestSingleRecords:
    @pytest.mark.asyncio
    async def test_read_one_by_natural_key(self, redis_client):
        cache = CacheGateway(PLAYER_VALUES, redis_client, season="2526", ttl=600)
        value = PlayerValue(element_id=5, change_date=date(2025, 9, 14), value=61, last_value=60)
        await cache.write([value], scope=date(2025, 9, 14))

        assert await cache.read_one((5, date(2025, 9, 14))) == value
        assert await cache.read_one((6, date(2025, 9, 14))) is None

    @pytest.mark.asyncio
    async def test_write_one_into_existing_collection(self, fixture_cache, sample_fixtures):
        # Fixtures are keyed by id alone, so single reads use the season-wide hash
        await fixture_cache.write(sample_fixtures[:1])

        assert await fixture_cache.write_one(sample_fixtures[1]) is True
        assert await fixture_cache.read() == sample_fixtures[:2]
        assert await fixture_cache.read_one((2,)) == sample_fixtures[1]

    @pytest.mark.asyncio
    async def test_write_one_into_scoped_collection(self, result_cache):
        first = TournamentEventResult(tournament_id=314, event_id=12, entry_id=7, points=50)
        second = TournamentEventResult(tournament_id=314, event_id=12, entry_id=9, points=61)
        await result_cache.write([first], scope=12, secondary_scope=314)

        assert await result_cache.write_one(second) is True
        assert await result_cache.read_one((314, 12, 9)) == second

    @pytest.mark.asyncio
    async def test_write_one_never_creates_collection(self, fixture_cache, sample_fixtures):
        assert await fixture_cache.write_one(sample_fixtures[0]) is False
        assert not await fixture_cache.exists()


class TestPointers:
    @pytest.mark.asyncio
    async def test_pointer_round_trip(self, event_cache, sample_events):
        await event_cache.write_pointer("current", sample_events[1], ttl=60)

        assert await event_cache.read_pointer("current") == sample_events[1]

    @pytest.mark.asyncio
    async def test_pointer_none_deletes(self, event_cache, sample_events):
        await event_cache.write_pointer("current", sample_events[1])

        await event_cache.write_pointer("current", None)

        assert await event_cache.read_pointer("current") is None

    @pytest.mark.asyncio
    async def test_invalidate_pointer(self, event_cache, sample_events):
        await event_cache.write_pointer("next", sample_events[2])

        await event_cache.invalidate_pointer("next")

        assert await event_cache.read_pointer("next") is None


class TestFailures:
    @pytest.mark.asyncio
    async def test_outage_raises_connection_error(self, fixture_cache, redis_server):
        redis_server.connected = False

        with pytest.raises(CacheError) as exc_info:
            await fixture_cache.read(scope=1)

        assert exc_info.value.kind is ErrorKind.CONNECTION
        assert exc_info.value.details["operation"] == "read"

    @pytest.mark.asyncio
    async def test_write_during_outage_raises(self, fixture_cache, redis_server, sample_fixtures):
        redis_server.connected = False

        with pytest.raises(CacheError):
            await fixture_cache.write(sample_fixtures[:1], scope=1)


class TestCacheMetrics:
    def test_failed_reads_count_as_misses(self):
        metrics = CacheMetrics(hits=6, misses=4, read_errors=1)
        assert metrics.lookups == 10
        assert metrics.hit_rate == 60.0

    def test_hit_rate_without_lookups(self):
        assert CacheMetrics().hit_rate == 0.0
