"""Sync services: fetch from the FPL API, transform, synchronize.

One coroutine per entity kind. Each one is the service-layer error boundary:
domain and integration failures are translated with domain_to_service() and
re-raised, so callers (the job scheduler, the CLI) only ever see ServiceError.

Empty upstream data never wipes stored data: the sync is reported as skipped
and nothing is written.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Awaitable, Callable

from fpl_sync.clients import FPLClient
from fpl_sync.entities import TournamentEntry
from fpl_sync.errors import (
    DomainError,
    ErrorKind,
    IntegrationError,
    ServiceError,
    domain_to_service,
    root_cause,
)
from fpl_sync.jobs.fanout import SyncTally, map_bounded
from fpl_sync.monitoring import get_logger
from fpl_sync.sync.operation import SyncOperation, SyncOutcome
from fpl_sync import transformers

log = get_logger()


class SyncStatus(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    DEGRADED = "degraded"
    PARTIAL = "partial"


@dataclass
class SyncResult:
    """Summary of one service-level sync.

    status:
        synced    stored and cached
        skipped   upstream had nothing to sync
        degraded  stored, but the cache write failed
        partial   fan-out finished with per-item errors
    """

    kind: str
    status: SyncStatus
    count: int = 0
    scope: Any = None
    secondary_scope: Any = None
    tally: SyncTally | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "kind": self.kind,
            "status": self.status.value,
            "count": self.count,
            "scope": _plain(self.scope),
            "secondary_scope": _plain(self.secondary_scope),
        }
        if self.tally is not None:
            data["tally"] = self.tally.to_dict()
        return data


class SyncServices:
    """Fetch -> transform -> sync for every entity kind.

    Example:
        services = SyncServices(client, operations, fanout_concurrency=5)
        result = await services.sync_fixtures(12)
    """

    def __init__(
        self,
        client: FPLClient,
        operations: dict[str, SyncOperation],
        fanout_concurrency: int = 5,
        tournament_ids: list[int] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.operations = operations
        self.fanout_concurrency = fanout_concurrency
        self.configured_tournaments = list(tournament_ids or [])
        self.today = today
        self._handlers: dict[str, Callable[..., Awaitable[SyncResult]]] = {
            "events": self._events,
            "teams": self._teams,
            "players": self._players,
            "fixtures": self._fixtures,
            "player_stats": self._player_stats,
            "player_values": self._player_values,
            "tournament_entries": self._tournament_entries,
            "tournament_event_results": self._tournament_event_results,
        }

    async def run(self, kind: str, scope: Any = None, secondary_scope: Any = None) -> SyncResult:
        """Dispatch a sync by kind.

        Raises:
            ServiceError: On any failure (validation for unknown kinds)
        """
        handler = self._handlers.get(kind)
        if handler is None:
            raise ServiceError(ErrorKind.VALIDATION, f"Unknown sync kind: {kind}", details={"kind": kind})
        log.info("sync_started", kind=kind, scope=scope, secondary_scope=secondary_scope)
        try:
            result = await handler(scope, secondary_scope)
        except (DomainError, IntegrationError) as e:
            error = domain_to_service(e)
            log.error(
                "sync_failed",
                kind=kind,
                scope=scope,
                secondary_scope=secondary_scope,
                error_kind=error.kind.value,
                error=error.message,
                cause=root_cause(e),
            )
            raise error from e
        log.info("sync_finished", **result.to_dict())
        return result

    async def sync_events(self) -> SyncResult:
        return await self.run("events")

    async def sync_teams(self) -> SyncResult:
        return await self.run("teams")

    async def sync_players(self) -> SyncResult:
        return await self.run("players")

    async def sync_fixtures(self, event_id: int | None = None) -> SyncResult:
        return await self.run("fixtures", event_id)

    async def sync_player_stats(self, event_id: int | None = None) -> SyncResult:
        return await self.run("player_stats", event_id)

    async def sync_player_values(self, change_date: date | None = None) -> SyncResult:
        return await self.run("player_values", change_date)

    async def sync_tournament_entries(self, tournament_id: int) -> SyncResult:
        return await self.run("tournament_entries", tournament_id)

    async def sync_tournament_event_results(self, event_id: int | None, tournament_id: int) -> SyncResult:
        return await self.run("tournament_event_results", event_id, tournament_id)

    async def tournament_ids(self) -> list[int]:
        """Configured tournaments plus every tournament with stored entries."""
        try:
            entries = await self.operations["tournament_entries"].read()
        except DomainError as e:
            raise domain_to_service(e) from e
        return sorted(set(self.configured_tournaments) | {e.tournament_id for e in entries})

    async def _events(self, scope: Any, secondary_scope: Any) -> SyncResult:
        bootstrap = transformers.parse_bootstrap(await self.client.get_bootstrap_static())
        return await self._sync("events", transformers.to_events(bootstrap))

    async def _teams(self, scope: Any, secondary_scope: Any) -> SyncResult:
        bootstrap = transformers.parse_bootstrap(await self.client.get_bootstrap_static())
        return await self._sync("teams", transformers.to_teams(bootstrap))

    async def _players(self, scope: Any, secondary_scope: Any) -> SyncResult:
        bootstrap = transformers.parse_bootstrap(await self.client.get_bootstrap_static())
        return await self._sync("players", transformers.to_players(bootstrap))

    async def _fixtures(self, event_id: int | None, secondary_scope: Any) -> SyncResult:
        fixtures = transformers.to_fixtures(await self.client.get_fixtures(event_id), event_id)
        return await self._sync("fixtures", fixtures, scope=event_id)

    async def _player_stats(self, event_id: int | None, secondary_scope: Any) -> SyncResult:
        event_id = event_id or await self._current_event()
        if event_id is None:
            return SyncResult("player_stats", SyncStatus.SKIPPED)
        stats = transformers.to_player_stats(await self.client.get_event_live(event_id), event_id)
        return await self._sync("player_stats", stats, scope=event_id)

    async def _player_values(self, change_date: date | None, secondary_scope: Any) -> SyncResult:
        change_date = change_date or self.today()
        bootstrap = transformers.parse_bootstrap(await self.client.get_bootstrap_static())

        # Records come sorted by (element_id, change_date): the last one seen
        # before change_date is the element's latest price.
        last_values: dict[int, int] = {}
        for value in await self.operations["player_values"].read():
            if value.change_date < change_date:
                last_values[value.element_id] = value.value

        values = transformers.to_player_values(bootstrap.elements, change_date, last_values)
        return await self._sync("player_values", values, scope=change_date)

    async def _tournament_entries(self, tournament_id: int, secondary_scope: Any) -> SyncResult:
        if tournament_id is None:
            raise DomainError(ErrorKind.VALIDATION, "tournament_id is required to sync tournament entries")
        pages = []
        page = 1
        while True:
            standings = transformers.parse_standings(
                await self.client.get_classic_standings(tournament_id, page), tournament_id
            )
            pages.append(standings)
            if not standings.standings.has_next:
                break
            page += 1
        entries = transformers.to_tournament_entries(pages, tournament_id)
        return await self._sync("tournament_entries", entries, scope=tournament_id)

    async def _tournament_event_results(self, event_id: int | None, tournament_id: int) -> SyncResult:
        if tournament_id is None:
            raise DomainError(ErrorKind.VALIDATION, "tournament_id is required to sync tournament results")
        event_id = event_id or await self._current_event()
        if event_id is None:
            return SyncResult("tournament_event_results", SyncStatus.SKIPPED, secondary_scope=tournament_id)

        entries = await self.operations["tournament_entries"].read(scope=tournament_id)
        if not entries:
            log.info("tournament_has_no_entries", tournament_id=tournament_id, event_id=event_id)
            return SyncResult("tournament_event_results", SyncStatus.SKIPPED, 0, event_id, tournament_id)

        async def fetch(entry: TournamentEntry):
            raw = await self.client.get_entry_event_picks(entry.entry_id, event_id)
            return transformers.to_tournament_event_result(raw, tournament_id, event_id, entry.entry_id)

        outcomes, tally = await map_bounded(
            entries, fetch, self.fanout_concurrency, label="tournament_event_results"
        )
        results = [o.value for o in outcomes if o.value is not None]
        log.info(
            "tournament_event_results_fetched",
            tournament_id=tournament_id,
            event_id=event_id,
            **tally.to_dict(),
        )

        # With per-entry failures the scope is upserted, not replaced, so the
        # failed entries keep their previous rows.
        result = await self._sync(
            "tournament_event_results",
            results,
            scope=event_id,
            secondary_scope=tournament_id,
            replace=tally.errors == 0,
        )
        result.tally = tally
        if tally.errors and result.status is SyncStatus.SYNCED:
            result.status = SyncStatus.PARTIAL
        return result

    async def _current_event(self) -> int | None:
        event = await self.operations["events"].read_pointer("current")
        return event.id if event is not None else None

    async def _sync(
        self,
        kind: str,
        records: list[Any],
        scope: Any = None,
        secondary_scope: Any = None,
        replace: bool = True,
    ) -> SyncResult:
        if not records:
            log.info("sync_skipped_empty", kind=kind, scope=scope, secondary_scope=secondary_scope)
            return SyncResult(kind, SyncStatus.SKIPPED, 0, scope, secondary_scope)
        outcome: SyncOutcome = await self.operations[kind].sync(
            records, scope=scope, secondary_scope=secondary_scope, replace=replace
        )
        status = SyncStatus.DEGRADED if outcome.cache_degraded else SyncStatus.SYNCED
        return SyncResult(kind, status, outcome.count, scope, secondary_scope)


def _plain(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value
