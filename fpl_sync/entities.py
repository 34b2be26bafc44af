"""Synchronized entity records and the entity registry.

Records are immutable dataclasses mirroring what the FPL API provides plus a
few locally derived fields. Each kind is described by an EntitySpec that tells
the generic store gateway, cache gateway and sync operation how to extract
natural keys and scopes, which cache prefix and TTL to use, and how to check a
deserialized cache entry for structural validity.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import cached_property
from typing import Any, get_type_hints


@dataclass(frozen=True)
class Event:
    """A gameweek.

    Attributes:
        id: Gameweek number (1-38)
        name: Display name, e.g. "Gameweek 1"
        deadline_time: Transfer deadline
        is_previous / is_current / is_next: Pointer flags maintained by FPL
    """

    id: int
    name: str
    deadline_time: datetime | None = None
    finished: bool = False
    data_checked: bool = False
    is_previous: bool = False
    is_current: bool = False
    is_next: bool = False
    average_entry_score: int | None = None
    highest_score: int | None = None
    highest_scoring_entry: int | None = None
    most_selected: int | None = None
    most_captained: int | None = None
    most_transferred_in: int | None = None
    top_element: int | None = None
    transfers_made: int | None = None


@dataclass(frozen=True)
class Team:
    id: int
    code: int
    name: str
    short_name: str
    strength: int | None = None
    position: int | None = None
    played: int | None = None
    win: int | None = None
    draw: int | None = None
    loss: int | None = None
    points: int | None = None
    strength_attack_home: int | None = None
    strength_attack_away: int | None = None
    strength_defence_home: int | None = None
    strength_defence_away: int | None = None


@dataclass(frozen=True)
class Player:
    """A player ("element" in FPL terms).

    element_type is the position: 1 GK, 2 DEF, 3 MID, 4 FWD.
    now_cost is in tenths of a million (e.g. 55 = 5.5m).
    """

    id: int
    code: int
    web_name: str
    element_type: int
    team_id: int
    first_name: str | None = None
    second_name: str | None = None
    now_cost: int | None = None
    total_points: int | None = None
    form: float | None = None
    selected_by_percent: float | None = None
    status: str | None = None
    news: str | None = None
    chance_of_playing_next_round: int | None = None


@dataclass(frozen=True)
class Fixture:
    id: int
    event_id: int
    team_h: int
    team_a: int
    kickoff_time: datetime | None = None
    team_h_score: int | None = None
    team_a_score: int | None = None
    team_h_difficulty: int | None = None
    team_a_difficulty: int | None = None
    started: bool = False
    finished: bool = False
    minutes: int = 0


@dataclass(frozen=True)
class PlayerStat:
    """Live per-gameweek statistics of one player."""

    event_id: int
    element_id: int
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    goals_conceded: int = 0
    own_goals: int = 0
    penalties_saved: int = 0
    penalties_missed: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0
    bonus: int = 0
    bps: int = 0
    total_points: int = 0
    in_dreamteam: bool = False


@dataclass(frozen=True)
class PlayerValue:
    """Price snapshot of one player on a given day.

    change_type is derived from value and last_value: "rise", "fall" or
    "start" when there is no previous value.
    """

    element_id: int
    change_date: date
    value: int
    last_value: int | None = None
    element_type: int | None = None
    team_id: int | None = None
    change_type: str = field(init=False)

    def __post_init__(self) -> None:
        if self.last_value is None or self.last_value == 0:
            change_type = "start"
        elif self.value > self.last_value:
            change_type = "rise"
        elif self.value < self.last_value:
            change_type = "fall"
        else:
            change_type = "stable"
        object.__setattr__(self, "change_type", change_type)


@dataclass(frozen=True)
class TournamentEntry:
    """A manager entry registered in a tournament (classic league)."""

    tournament_id: int
    entry_id: int
    entry_name: str | None = None
    player_name: str | None = None
    rank: int | None = None
    last_rank: int | None = None
    total: int | None = None


@dataclass(frozen=True)
class TournamentEventResult:
    """Gameweek result of one tournament entry.

    net_points is derived: points minus the transfer hit.
    """

    tournament_id: int
    event_id: int
    entry_id: int
    points: int = 0
    event_transfers: int = 0
    event_transfers_cost: int = 0
    total_points: int | None = None
    overall_rank: int | None = None
    bank: int | None = None
    value: int | None = None
    net_points: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "net_points", self.points - self.event_transfers_cost)


@dataclass(frozen=True)
class EntitySpec:
    """Describes how one entity kind is keyed, scoped and cached.

    Attributes:
        kind: Registry key, also the job kind (e.g. "player_stats")
        record_type: Frozen dataclass holding one record
        key_fields: Natural key columns, in order
        cache_prefix: Prefix of every cache key of this kind
        path: REST path segment
        scope_field: Field partitioning collections (cache sub-key, resync scope)
        secondary_scope_field: Optional second partition (e.g. tournament id)
        ttl_setting: Settings attribute holding the cache TTL for this kind
        pointers: Singular pointer name -> boolean field selecting it
    """

    kind: str
    record_type: type
    key_fields: tuple[str, ...]
    cache_prefix: str
    path: str
    scope_field: str | None = None
    secondary_scope_field: str | None = None
    ttl_setting: str = "cache_ttl_default"
    pointers: dict[str, str] = field(default_factory=dict)

    @cached_property
    def field_types(self) -> dict[str, Any]:
        return get_type_hints(self.record_type)

    @property
    def scope_fields(self) -> tuple[str, ...]:
        return tuple(f for f in (self.scope_field, self.secondary_scope_field) if f)

    @property
    def member_key_fields(self) -> tuple[str, ...]:
        """Key fields that identify a record inside its scope."""
        return tuple(f for f in self.key_fields if f not in self.scope_fields)

    def key_of(self, record: Any) -> tuple:
        return tuple(getattr(record, f) for f in self.key_fields)

    def member_key_of(self, record: Any) -> str:
        return ":".join(_key_part(getattr(record, f)) for f in self.member_key_fields)

    def scope_of(self, record: Any) -> tuple[Any, Any]:
        scope = getattr(record, self.scope_field) if self.scope_field else None
        secondary = getattr(record, self.secondary_scope_field) if self.secondary_scope_field else None
        return scope, secondary

    def to_dict(self, record: Any) -> dict[str, Any]:
        return dataclasses.asdict(record)

    def from_dict(self, data: dict[str, Any]) -> Any:
        """Build a record from a dict, ignoring derived (init=False) fields.

        Raises:
            TypeError: If required fields are missing
        """
        init_fields = {f.name for f in dataclasses.fields(self.record_type) if f.init}
        return self.record_type(**{k: v for k, v in data.items() if k in init_fields})

    def is_valid(self, data: Any) -> bool:
        """Minimal structural validity predicate for cached entries.

        Every natural key field must be present and be an integer (booleans
        rejected) or a date.
        """
        if not isinstance(data, dict):
            return False
        for name in self.key_fields:
            value = data.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, date)):
                return False
            if isinstance(value, datetime):
                return False
        return True

    def coerce(self, name: str, raw: Any) -> Any:
        """Convert a raw (string) key or scope value into the field's type.

        Raises:
            ValueError: If the value cannot be converted
        """
        if raw is None:
            return None
        hint = self.field_types[name]
        if hint is date:
            return raw if isinstance(raw, date) else date.fromisoformat(str(raw))
        value = int(raw)
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer, got {raw!r}")
        return value

    def build_key(self, member_key: str, scope: Any = None, secondary_scope: Any = None) -> tuple:
        """Assemble a full natural key from a REST member id plus scopes.

        Raises:
            ValueError: If a part is missing or malformed
        """
        parts = str(member_key).split(":")
        if len(parts) != len(self.member_key_fields):
            raise ValueError(f"Expected {len(self.member_key_fields)} key part(s) for {self.kind}")
        values = dict(zip(self.member_key_fields, parts))
        if self.scope_field:
            values[self.scope_field] = scope
        if self.secondary_scope_field:
            values[self.secondary_scope_field] = secondary_scope
        key = []
        for name in self.key_fields:
            if values.get(name) is None:
                raise ValueError(f"{name} is required to look up {self.kind}")
            key.append(self.coerce(name, values[name]))
        return tuple(key)


def _key_part(value: Any) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


EVENTS = EntitySpec(
    kind="events",
    record_type=Event,
    key_fields=("id",),
    cache_prefix="event",
    path="events",
    pointers={"current": "is_current", "next": "is_next"},
)
TEAMS = EntitySpec(kind="teams", record_type=Team, key_fields=("id",), cache_prefix="team", path="teams")
PLAYERS = EntitySpec(kind="players", record_type=Player, key_fields=("id",), cache_prefix="player", path="players")
FIXTURES = EntitySpec(
    kind="fixtures",
    record_type=Fixture,
    key_fields=("id",),
    cache_prefix="fixture",
    path="fixtures",
    scope_field="event_id",
)
PLAYER_STATS = EntitySpec(
    kind="player_stats",
    record_type=PlayerStat,
    key_fields=("event_id", "element_id"),
    cache_prefix="player_stat",
    path="player-stats",
    scope_field="event_id",
    ttl_setting="cache_ttl_live",
)
PLAYER_VALUES = EntitySpec(
    kind="player_values",
    record_type=PlayerValue,
    key_fields=("element_id", "change_date"),
    cache_prefix="player_value",
    path="player-values",
    scope_field="change_date",
)
TOURNAMENT_ENTRIES = EntitySpec(
    kind="tournament_entries",
    record_type=TournamentEntry,
    key_fields=("tournament_id", "entry_id"),
    cache_prefix="tournament_entry",
    path="tournament-entries",
    scope_field="tournament_id",
)
TOURNAMENT_EVENT_RESULTS = EntitySpec(
    kind="tournament_event_results",
    record_type=TournamentEventResult,
    key_fields=("tournament_id", "event_id", "entry_id"),
    cache_prefix="tournament_event_result",
    path="tournament-event-results",
    scope_field="event_id",
    secondary_scope_field="tournament_id",
    ttl_setting="cache_ttl_live",
)

REGISTRY: dict[str, EntitySpec] = {
    spec.kind: spec
    for spec in (
        EVENTS,
        TEAMS,
        PLAYERS,
        FIXTURES,
        PLAYER_STATS,
        PLAYER_VALUES,
        TOURNAMENT_ENTRIES,
        TOURNAMENT_EVENT_RESULTS,
    )
}


def get_spec(kind: str) -> EntitySpec:
    """Look up an entity spec by kind.

    Raises:
        KeyError: If the kind is not registered
    """
    return REGISTRY[kind]
