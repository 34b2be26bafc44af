"""Shared pytest fixtures for FPL sync tests."""

from datetime import datetime, timezone

import fakeredis
import pytest
import pytest_asyncio

from fpl_sync.config import Settings
from fpl_sync.container import Container
from fpl_sync.db import create_engine, create_session_factory, init_database
from fpl_sync.entities import Event, Fixture
from fpl_sync.monitoring import configure_logging

FPL_BASE = "http://fpl.test/api"


class RecordingSleep:
    """Async stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Configure structlog for test output."""
    configure_logging("development")


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a per-test SQLite file and a fake upstream.

    Cron is disabled so no periodic job interferes with a test.
    """
    return Settings(
        environment="test",
        season="2526",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fpl_sync.db'}",
        redis_url="redis://localhost:6379/15",
        fpl_api_base_url=FPL_BASE,
        fpl_api_retry_attempts=2,
        fpl_api_backoff_min=0,
        fpl_api_backoff_max=0,
        job_max_attempts=3,
        job_backoff_base=2.0,
        job_backoff_max=60.0,
        worker_concurrency=3,
        fanout_concurrency=2,
        tournament_ids=[314],
        cron_enabled=False,
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Async engine with all tables created."""
    engine = create_engine(settings)
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def redis_server():
    """Isolated fake Redis server; set .connected = False to simulate an outage."""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(redis_server):
    client = fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest_asyncio.fixture
async def container(settings, engine, redis_client, fake_sleep):
    """Fully wired container with running workers and no cron."""
    container = Container.build(settings, engine=engine, redis_client=redis_client, sleep=fake_sleep)
    await container.start(workers=True, cron=False)
    yield container
    await container.close()


@pytest.fixture
def sample_events():
    """Three gameweeks with previous / current / next pointers set."""
    return [
        Event(
            id=1,
            name="Gameweek 1",
            deadline_time=datetime(2025, 8, 15, 17, 30, tzinfo=timezone.utc),
            finished=True,
            data_checked=True,
            is_previous=True,
            highest_score=127,
        ),
        Event(
            id=2,
            name="Gameweek 2",
            deadline_time=datetime(2025, 8, 22, 17, 30, tzinfo=timezone.utc),
            is_current=True,
        ),
        Event(
            id=3,
            name="Gameweek 3",
            deadline_time=datetime(2025, 8, 29, 17, 30, tzinfo=timezone.utc),
            is_next=True,
        ),
    ]


@pytest.fixture
def sample_fixtures():
    """Two fixtures of gameweek 1 and one of gameweek 2."""
    return [
        Fixture(id=1, event_id=1, team_h=1, team_a=2, team_h_score=2, team_a_score=1, finished=True, minutes=90),
        Fixture(id=2, event_id=1, team_h=3, team_a=4, team_h_score=0, team_a_score=0, finished=True, minutes=90),
        Fixture(id=11, event_id=2, team_h=2, team_a=3),
    ]


@pytest.fixture
def bootstrap_payload():
    """bootstrap-static response trimmed to the fields the sync reads.

    Matches the FPL format, including decimals sent as strings and an empty
    selected_by_percent.
    """
    return {
        "events": [
            {
                "id": 1,
                "name": "Gameweek 1",
                "deadline_time": "2025-08-15T17:30:00Z",
                "finished": True,
                "data_checked": True,
                "is_previous": True,
                "is_current": False,
                "is_next": False,
                "highest_score": 127,
                "chip_plays": [{"chip_name": "bboost", "num_played": 143000}],
            },
            {
                "id": 2,
                "name": "Gameweek 2",
                "deadline_time": "2025-08-22T17:30:00Z",
                "finished": False,
                "is_previous": False,
                "is_current": True,
                "is_next": False,
            },
            {
                "id": 3,
                "name": "Gameweek 3",
                "deadline_time": "2025-08-29T17:30:00Z",
                "finished": False,
                "is_previous": False,
                "is_current": False,
                "is_next": True,
            },
        ],
        "teams": [
            {"id": 1, "code": 3, "name": "Arsenal", "short_name": "ARS", "strength": 5, "pulse_id": 1},
            {"id": 2, "code": 7, "name": "Aston Villa", "short_name": "AVL", "strength": 4, "pulse_id": 2},
        ],
        "elements": [
            {
                "id": 1,
                "code": 223340,
                "web_name": "Raya",
                "first_name": "David",
                "second_name": "Raya Martin",
                "element_type": 1,
                "team": 1,
                "now_cost": 55,
                "cost_change_event": 0,
                "total_points": 12,
                "form": "3.5",
                "selected_by_percent": "",
                "status": "a",
                "news": "",
            },
            {
                "id": 2,
                "code": 219847,
                "web_name": "Watkins",
                "element_type": 4,
                "team": 2,
                "now_cost": 90,
                "cost_change_event": 1,
                "total_points": 8,
                "form": "2.0",
                "selected_by_percent": "14.3",
                "status": "a",
            },
        ],
        "element_types": [{"id": 1, "singular_name": "Goalkeeper"}],
    }
