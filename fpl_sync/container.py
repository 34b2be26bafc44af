"""Composition root.

Builds every long-lived object from Settings exactly once: engine and session
factory, Redis client, FPL client, one StoreGateway / CacheGateway /
SyncOperation per entity kind, the sync services, the job scheduler and the
periodic triggers. Nothing in the core creates its own connections.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fpl_sync.cache import CacheGateway, close_redis, create_redis, ping_redis
from fpl_sync.clients import FPLClient
from fpl_sync.config import Settings, get_settings
from fpl_sync.db import create_engine, create_session_factory, init_database, stores_for
from fpl_sync.entities import REGISTRY
from fpl_sync.errors import CacheError
from fpl_sync.jobs import JobScheduler, SyncJob, SyncTriggers
from fpl_sync.monitoring import CacheMetrics, get_logger
from fpl_sync.sync import SyncOperation, SyncServices

log = get_logger()


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: redis.Redis
    client: FPLClient
    operations: dict[str, SyncOperation]
    services: SyncServices
    scheduler: JobScheduler
    triggers: SyncTriggers
    started: bool = field(default=False, init=False)

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        engine: AsyncEngine | None = None,
        redis_client: redis.Redis | None = None,
        http: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "Container":
        """Wire the application.

        Args:
            settings: Settings (defaults to get_settings())
            engine / redis_client / http: Pre-built connections, used by tests
            sleep: Backoff sleep for API and job retries
        """
        settings = settings or get_settings()
        engine = engine or create_engine(settings)
        session_factory = create_session_factory(engine)
        redis_client = redis_client if redis_client is not None else create_redis(settings)
        client = FPLClient.from_settings(settings, http=http, sleep=sleep)

        operations = {}
        for kind, store in stores_for(REGISTRY.values(), session_factory).items():
            spec = store.spec
            cache = CacheGateway(
                spec,
                redis_client,
                season=settings.season,
                ttl=getattr(settings, spec.ttl_setting),
                metrics=CacheMetrics(),
            )
            operations[kind] = SyncOperation(store, cache, pointer_ttl=settings.cache_ttl_pointer)

        services = SyncServices(
            client,
            operations,
            fanout_concurrency=settings.fanout_concurrency,
            tournament_ids=settings.tournament_ids,
        )

        async def run_job(job: SyncJob) -> Any:
            return await services.run(job.kind, job.scope, job.secondary_scope)

        async def tournaments_for(job: SyncJob) -> list[int]:
            return await services.tournament_ids()

        scheduler = JobScheduler(
            run_job,
            concurrency=settings.worker_concurrency,
            max_attempts=settings.job_max_attempts,
            backoff_base=settings.job_backoff_base,
            backoff_max=settings.job_backoff_max,
            retention_seconds=settings.job_retention_seconds,
            coordinators={"tournament_event_results": tournaments_for},
            sleep=sleep,
        )
        triggers = SyncTriggers(scheduler, settings)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            redis=redis_client,
            client=client,
            operations=operations,
            services=services,
            scheduler=scheduler,
            triggers=triggers,
        )

    async def start(self, workers: bool = True, cron: bool = True) -> None:
        """Create tables, check the cache and start background tasks."""
        await init_database(self.engine)
        try:
            await ping_redis(self.redis)
        except CacheError as e:
            # Reads fall back to the store and syncs degrade, so keep serving.
            log.warning("cache_unavailable_at_startup", error=e.message)
        if workers:
            await self.scheduler.start()
        if cron:
            self.triggers.start()
        self.started = True
        log.info("container_started", season=self.settings.season, workers=workers, cron=cron)

    async def close(self) -> None:
        await self.triggers.stop()
        await self.scheduler.stop()
        await self.client.aclose()
        await close_redis(self.redis)
        await self.engine.dispose()
        self.started = False
        log.info("container_closed")

    async def check_health(self) -> dict[str, Any]:
        store_ok = await self.operations["events"].store.check_health()
        try:
            await ping_redis(self.redis)
            cache_ok = True
        except CacheError:
            cache_ok = False
        return {
            "store": store_ok,
            "cache": cache_ok,
            "circuit": self.client.circuit.state,
            "jobs": self.scheduler.stats(),
            "cache_metrics": {kind: op.metrics.to_dict() for kind, op in self.operations.items()},
        }
