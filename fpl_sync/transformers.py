"""Convert validated FPL API payloads into entity records.

Each parse step validates the raw JSON with the pydantic models in
fpl_sync.clients.schemas; a validation failure becomes a DomainError of kind
TRANSFORMATION carrying the pydantic error as cause.
"""

from datetime import date
from typing import Any, Iterable

from pydantic import BaseModel, TypeAdapter, ValidationError

from fpl_sync.clients.schemas import (
    BootstrapElement,
    BootstrapStatic,
    ClassicLeagueStandings,
    EntryEventPicks,
    EventLive,
    FixtureResponse,
)
from fpl_sync.entities import (
    Event,
    Fixture,
    Player,
    PlayerStat,
    PlayerValue,
    Team,
    TournamentEntry,
    TournamentEventResult,
)
from fpl_sync.errors import DomainError, ErrorKind

_FIXTURES = TypeAdapter(list[FixtureResponse])


def parse(model: type[BaseModel] | TypeAdapter, raw: Any, source: str) -> Any:
    """Validate a raw payload.

    Args:
        model: Pydantic model or TypeAdapter to validate with
        raw: Decoded JSON
        source: What the payload is, for the error message

    Raises:
        DomainError: kind TRANSFORMATION if validation fails
    """
    try:
        if isinstance(model, TypeAdapter):
            return model.validate_python(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        raise DomainError(
            ErrorKind.TRANSFORMATION,
            f"Invalid {source} payload: {e.error_count()} validation error(s)",
            details={"source": source, "errors": e.errors(include_url=False)[:5]},
            cause=e,
        ) from e


def parse_bootstrap(raw: Any) -> BootstrapStatic:
    return parse(BootstrapStatic, raw, "bootstrap-static")


def to_events(bootstrap: BootstrapStatic) -> list[Event]:
    return [Event(**e.model_dump()) for e in bootstrap.events]


def to_teams(bootstrap: BootstrapStatic) -> list[Team]:
    return [Team(**t.model_dump()) for t in bootstrap.teams]


def to_player(element: BootstrapElement) -> Player:
    data = element.model_dump(exclude={"team", "cost_change_event"})
    return Player(team_id=element.team, **data)


def to_players(bootstrap: BootstrapStatic) -> list[Player]:
    return [to_player(e) for e in bootstrap.elements]


def to_fixtures(raw: Any, event_id: int | None = None) -> list[Fixture]:
    """Build fixtures, dropping unscheduled ones and those of other events."""
    fixtures = []
    for f in parse(_FIXTURES, raw, "fixtures"):
        if f.event is None or (event_id is not None and f.event != event_id):
            continue
        data = f.model_dump(exclude={"event"})
        data["started"] = bool(data["started"])
        fixtures.append(Fixture(event_id=f.event, **data))
    return fixtures


def to_player_stats(raw: Any, event_id: int) -> list[PlayerStat]:
    live = parse(EventLive, raw, f"event {event_id} live")
    return [PlayerStat(event_id=event_id, element_id=e.id, **e.stats.model_dump()) for e in live.elements]


def to_player_values(
    elements: Iterable[BootstrapElement],
    change_date: date,
    last_values: dict[int, int],
) -> list[PlayerValue]:
    """Build the price changes of one day.

    Only players whose price differs from their last recorded value (or who
    have no recorded value yet) produce a record.

    Args:
        elements: Players from bootstrap-static
        change_date: Day the prices were observed
        last_values: element id -> most recent recorded price before change_date
    """
    values = []
    for element in elements:
        if element.now_cost is None:
            continue
        last = last_values.get(element.id)
        if last is not None and last == element.now_cost:
            continue
        values.append(
            PlayerValue(
                element_id=element.id,
                change_date=change_date,
                value=element.now_cost,
                last_value=last,
                element_type=element.element_type,
                team_id=element.team,
            )
        )
    return values


def parse_standings(raw: Any, league_id: int) -> ClassicLeagueStandings:
    return parse(ClassicLeagueStandings, raw, f"league {league_id} standings")


def to_tournament_entries(pages: Iterable[ClassicLeagueStandings], tournament_id: int) -> list[TournamentEntry]:
    return [
        TournamentEntry(
            tournament_id=tournament_id,
            entry_id=r.entry,
            entry_name=r.entry_name,
            player_name=r.player_name,
            rank=r.rank,
            last_rank=r.last_rank,
            total=r.total,
        )
        for page in pages
        for r in page.standings.results
    ]


def to_tournament_event_result(raw: Any, tournament_id: int, event_id: int, entry_id: int) -> TournamentEventResult:
    picks = parse(EntryEventPicks, raw, f"entry {entry_id} event {event_id} picks")
    history = picks.entry_history.model_dump(exclude={"event"})
    return TournamentEventResult(tournament_id=tournament_id, event_id=event_id, entry_id=entry_id, **history)
