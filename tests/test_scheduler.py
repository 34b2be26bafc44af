"""Tests for the job scheduler: ids, deduplication, bounded workers, retries and cascade."""

import asyncio
from datetime import date

import pytest

from fpl_sync.errors import ErrorKind, IntegrationError, ServiceError
from fpl_sync.jobs import (
    COORDINATOR_TAG,
    JobScheduler,
    JobSource,
    JobStatus,
    job_id,
    parse_job_id,
)
from fpl_sync.sync import SyncResult, SyncStatus


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def succeed(job):
    return SyncResult(job.kind, SyncStatus.SYNCED, count=1, scope=job.scope)


class TestJobIds:
    @pytest.mark.parametrize(
        "args,expected",
        [
            (("events",), "events:all:sync"),
            (("fixtures", 12), "fixtures:12:sync"),
            (("tournament_event_results", 12, 314), "tournament_event_results:12:t314:sync"),
            (("tournament_event_results", 12, None, COORDINATOR_TAG), "tournament_event_results:12:coordinator"),
        ],
    )
    def test_format(self, args, expected):
        assert job_id(*args) == expected

    def test_date_scope(self):
        assert job_id("player_values", date(2025, 9, 14)) == "player_values:2025-09-14:sync"

    def test_parse_round_trip(self):
        parsed = parse_job_id("tournament_event_results:12:t314:sync")

        assert parsed.kind == "tournament_event_results"
        assert parsed.scope == "12"
        assert parsed.secondary_scope == "314"
        assert parsed.tag == "sync"

    def test_parse_all_scope(self):
        assert parse_job_id("events:all:sync").scope is None

    @pytest.mark.parametrize("value", ["events", "events:all", "a:b:c:d:e", "fixtures:12:314:sync"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_job_id(value)

    def test_coordinator_and_children_ids_differ(self):
        parent = job_id("tournament_event_results", 12, tag=COORDINATOR_TAG)
        child = job_id("tournament_event_results", 12, 314)
        assert parent != child


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_pending_job_is_deduplicated(self):
        scheduler = JobScheduler(succeed, concurrency=1)

        first = scheduler.enqueue("fixtures", 12)
        second = scheduler.enqueue("fixtures", 12, source=JobSource.CRON)

        assert first.id == second.id == "fixtures:12:sync"
        assert first.deduplicated is False
        assert second.deduplicated is True
        assert len(scheduler.jobs()) == 1

    @pytest.mark.asyncio
    async def test_different_scopes_are_different_jobs(self):
        scheduler = JobScheduler(succeed, concurrency=1)

        scheduler.enqueue("fixtures", 12)
        scheduler.enqueue("fixtures", 13)

        assert len(scheduler.jobs(JobStatus.PENDING)) == 2

    @pytest.mark.asyncio
    async def test_finished_job_deduplicated_within_retention(self):
        clock = FakeClock()
        scheduler = JobScheduler(succeed, concurrency=1, retention_seconds=300, clock=clock)
        await scheduler.start()
        try:
            scheduler.enqueue("events")
            await scheduler.join()

            clock.now += 299
            assert scheduler.enqueue("events").deduplicated is True

            clock.now += 1
            handle = scheduler.enqueue("events")
            assert handle.deduplicated is False
            await scheduler.join()
            assert scheduler.status(handle.id) is JobStatus.COMPLETED
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_expired_jobs_are_pruned(self):
        clock = FakeClock()
        scheduler = JobScheduler(succeed, concurrency=1, retention_seconds=10, clock=clock)
        await scheduler.start()
        try:
            handle = scheduler.enqueue("teams")
            await scheduler.join()
            clock.now += 10

            assert scheduler.get(handle.id) is None
        finally:
            await scheduler.stop()


class TestWorkerPool:
    @pytest.mark.asyncio
    async def test_hundred_jobs_with_pool_of_five(self):
        async def handler(job):
            await asyncio.sleep(0.001)
            return await succeed(job)

        scheduler = JobScheduler(handler, concurrency=5)
        await scheduler.start()
        try:
            handles = [scheduler.enqueue("fixtures", scope) for scope in range(1, 101)]
            await scheduler.join()
        finally:
            await scheduler.stop()

        tally = scheduler.tally(handles)
        assert scheduler.max_active_observed <= 5
        assert tally.synced == 100
        assert tally.errors == 0
        assert tally.max_in_flight == scheduler.max_active_observed
        assert scheduler.stats()["completed"] == 100

    @pytest.mark.asyncio
    async def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            JobScheduler(succeed, concurrency=0)

    @pytest.mark.asyncio
    async def test_result_is_stored_on_job(self):
        scheduler = JobScheduler(succeed, concurrency=1)
        await scheduler.start()
        try:
            handle = scheduler.enqueue("fixtures", 12)
            await scheduler.join()
        finally:
            await scheduler.stop()

        job = scheduler.get(handle.id)
        assert job.status is JobStatus.COMPLETED
        assert job.attempts == 1
        assert job.result["status"] == "synced"
        assert job.to_dict()["source"] == "manual"

    @pytest.mark.asyncio
    async def test_skipped_results_are_tallied(self):
        async def handler(job):
            return SyncResult(job.kind, SyncStatus.SKIPPED)

        scheduler = JobScheduler(handler, concurrency=2)
        await scheduler.start()
        try:
            handles = [scheduler.enqueue("player_stats", 3), scheduler.enqueue("player_stats", 4)]
            await scheduler.join()
        finally:
            await scheduler.stop()

        assert scheduler.tally(handles).skipped == 2


class TestRetries:
    @pytest.mark.asyncio
    async def test_retry_exhaustion_marks_job_failed(self, fake_sleep):
        calls = 0

        async def handler(job):
            nonlocal calls
            calls += 1
            raise ServiceError(
                ErrorKind.INTEGRATION,
                "FPL API returned 503",
                cause=IntegrationError(ErrorKind.INTEGRATION, "FPL API returned 503"),
            )

        scheduler = JobScheduler(handler, concurrency=1, max_attempts=3, backoff_base=2.0, sleep=fake_sleep)
        await scheduler.start()
        try:
            handle = scheduler.enqueue("fixtures", 12)
            await scheduler.join()
        finally:
            await scheduler.stop()

        job = scheduler.get(handle.id)
        assert calls == 3
        assert fake_sleep.delays == [2.0, 4.0]
        assert job.status is JobStatus.FAILED
        assert job.attempts == 3
        assert job.error["layer"] == "service"
        assert job.error["cause"]["layer"] == "integration"
        assert scheduler.tally([handle]).errors == 1

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, fake_sleep):
        async def handler(job):
            raise ServiceError(ErrorKind.CONNECTION, "db down")

        scheduler = JobScheduler(
            handler, concurrency=1, max_attempts=5, backoff_base=2.0, backoff_max=5.0, sleep=fake_sleep
        )
        await scheduler.start()
        try:
            scheduler.enqueue("teams")
            await scheduler.join()
        finally:
            await scheduler.stop()

        assert fake_sleep.delays == [2.0, 4.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_transient_failure_then_success(self, fake_sleep):
        attempts = 0

        async def handler(job):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ServiceError(ErrorKind.CONNECTION, "redis timeout")
            return await succeed(job)

        scheduler = JobScheduler(handler, concurrency=1, sleep=fake_sleep)
        await scheduler.start()
        try:
            handle = scheduler.enqueue("players")
            await scheduler.join()
        finally:
            await scheduler.stop()

        job = scheduler.get(handle.id)
        assert job.status is JobStatus.COMPLETED
        assert job.attempts == 2
        assert fake_sleep.delays == [2.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [ErrorKind.VALIDATION, ErrorKind.NOT_FOUND])
    async def test_validation_and_not_found_are_not_retried(self, fake_sleep, kind):
        async def handler(job):
            raise ServiceError(kind, "not retryable")

        scheduler = JobScheduler(handler, concurrency=1, sleep=fake_sleep)
        await scheduler.start()
        try:
            handle = scheduler.enqueue("fixtures", 99)
            await scheduler.join()
        finally:
            await scheduler.stop()

        job = scheduler.get(handle.id)
        assert job.status is JobStatus.FAILED
        assert job.attempts == 1
        assert fake_sleep.delays == []


class TestCascade:
    @pytest.mark.asyncio
    async def test_coordinator_enqueues_one_child_per_tournament(self):
        seen = []

        async def handler(job):
            seen.append((job.scope, job.secondary_scope))
            return await succeed(job)

        async def tournaments(job):
            return [314, 1024]

        scheduler = JobScheduler(handler, concurrency=2, coordinators={"tournament_event_results": tournaments})
        await scheduler.start()
        try:
            parent = scheduler.enqueue("tournament_event_results", 12, tag=COORDINATOR_TAG)
            await scheduler.join()
        finally:
            await scheduler.stop()

        parent_job = scheduler.get(parent.id)
        assert parent.id == "tournament_event_results:12:coordinator"
        assert parent_job.result["children"] == [
            "tournament_event_results:12:t314:sync",
            "tournament_event_results:12:t1024:sync",
        ]
        assert sorted(seen) == [(12, 314), (12, 1024)]
        children = [scheduler.get(cid) for cid in parent_job.result["children"]]
        assert all(child.source is JobSource.CASCADE for child in children)
        assert all(child.status is JobStatus.COMPLETED for child in children)

    @pytest.mark.asyncio
    async def test_coordinator_requires_registration(self):
        scheduler = JobScheduler(succeed, concurrency=1)

        with pytest.raises(ServiceError) as exc_info:
            scheduler.enqueue("fixtures", 12, tag=COORDINATOR_TAG)

        assert exc_info.value.kind is ErrorKind.VALIDATION


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_cancels_active_job(self):
        started = asyncio.Event()

        async def handler(job):
            started.set()
            await asyncio.sleep(10)

        scheduler = JobScheduler(handler, concurrency=1)
        await scheduler.start()
        handle = scheduler.enqueue("events")
        await started.wait()

        await scheduler.stop()

        job = scheduler.get(handle.id)
        assert job.status is JobStatus.FAILED
        assert job.error["message"] == "cancelled"
        assert scheduler.running is False
