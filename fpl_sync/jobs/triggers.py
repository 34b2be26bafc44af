"""Periodic sync triggers.

Two asyncio loops enqueue jobs with source "cron":

    daily   events, teams, players, fixtures, today's player values and the
            entries of every configured tournament
    live    player stats and tournament results of the current event

Both are gated by the FPL season (August through May); outside it they log
and enqueue nothing. Manual triggers are never gated.
"""

import asyncio
from datetime import date
from typing import Awaitable, Callable

from fpl_sync.config import Settings, is_fpl_season
from fpl_sync.jobs.ids import COORDINATOR_TAG
from fpl_sync.jobs.scheduler import JobHandle, JobScheduler, JobSource
from fpl_sync.monitoring import get_logger

log = get_logger()

DAILY_KINDS = ("events", "teams", "players", "fixtures")


class SyncTriggers:
    def __init__(
        self,
        scheduler: JobScheduler,
        settings: Settings,
        today: Callable[[], date] = date.today,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.scheduler = scheduler
        self.settings = settings
        self.today = today
        self._sleep = sleep
        self._tasks: list[asyncio.Task] = []

    def fire_daily(self) -> list[JobHandle]:
        today = self.today()
        if not is_fpl_season(today):
            log.info("cron_skipped_off_season", trigger="daily", date=today.isoformat())
            return []
        handles = [self.scheduler.enqueue(kind, source=JobSource.CRON) for kind in DAILY_KINDS]
        handles.append(self.scheduler.enqueue("player_values", scope=today, source=JobSource.CRON))
        handles.extend(
            self.scheduler.enqueue("tournament_entries", scope=tid, source=JobSource.CRON)
            for tid in self.settings.tournament_ids
        )
        log.info("cron_fired", trigger="daily", jobs=len(handles))
        return handles

    def fire_live(self) -> list[JobHandle]:
        today = self.today()
        if not is_fpl_season(today):
            log.info("cron_skipped_off_season", trigger="live", date=today.isoformat())
            return []
        handles = [
            self.scheduler.enqueue("player_stats", source=JobSource.CRON),
            self.scheduler.enqueue("tournament_event_results", source=JobSource.CRON, tag=COORDINATOR_TAG),
        ]
        log.info("cron_fired", trigger="live", jobs=len(handles))
        return handles

    def start(self) -> None:
        if not self.settings.cron_enabled:
            log.info("cron_disabled")
            return
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._loop(self.fire_daily, self.settings.cron_interval_seconds), name="cron-daily"),
            asyncio.create_task(self._loop(self.fire_live, self.settings.live_interval_seconds), name="cron-live"),
        ]
        log.info(
            "cron_started",
            daily_interval=self.settings.cron_interval_seconds,
            live_interval=self.settings.live_interval_seconds,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _loop(self, fire: Callable[[], list[JobHandle]], interval: float) -> None:
        while True:
            await self._sleep(interval)
            fire()
