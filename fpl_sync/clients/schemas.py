"""Pydantic models for FPL API payloads.

Only the fields the sync backend persists are declared; everything else the
API returns is ignored. FPL sends several decimals as strings ("5.3"), which
pydantic coerces to float.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FPLModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class BootstrapEvent(FPLModel):
    id: int = Field(gt=0)
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


class BootstrapTeam(FPLModel):
    id: int = Field(gt=0)
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


class BootstrapElement(FPLModel):
    """A player as listed in bootstrap-static.

    Attributes:
        team: Team id
        element_type: Position (1 GK, 2 DEF, 3 MID, 4 FWD)
        now_cost: Current price in tenths of a million
    """

    id: int = Field(gt=0)
    code: int
    web_name: str
    element_type: int = Field(ge=1, le=5)
    team: int = Field(gt=0)
    first_name: str | None = None
    second_name: str | None = None
    now_cost: int | None = None
    cost_change_event: int | None = None
    total_points: int | None = None
    form: float | None = None
    selected_by_percent: float | None = None
    status: str | None = None
    news: str | None = None
    chance_of_playing_next_round: int | None = None

    @field_validator("form", "selected_by_percent", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        return None if v == "" else v


class BootstrapStatic(FPLModel):
    events: list[BootstrapEvent]
    teams: list[BootstrapTeam]
    elements: list[BootstrapElement]


class FixtureResponse(FPLModel):
    id: int = Field(gt=0)
    # Unscheduled (postponed) fixtures have no event.
    event: int | None = None
    team_h: int
    team_a: int
    kickoff_time: datetime | None = None
    team_h_score: int | None = None
    team_a_score: int | None = None
    team_h_difficulty: int | None = None
    team_a_difficulty: int | None = None
    started: bool | None = False
    finished: bool = False
    minutes: int = 0


class LiveStats(FPLModel):
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


class LiveElement(FPLModel):
    id: int = Field(gt=0)
    stats: LiveStats


class EventLive(FPLModel):
    elements: list[LiveElement]


class StandingResult(FPLModel):
    entry: int = Field(gt=0)
    entry_name: str | None = None
    player_name: str | None = None
    rank: int | None = None
    last_rank: int | None = None
    total: int | None = None


class Standings(FPLModel):
    has_next: bool = False
    page: int = 1
    results: list[StandingResult]


class ClassicLeagueStandings(FPLModel):
    standings: Standings


class EntryHistory(FPLModel):
    event: int = Field(gt=0)
    points: int = 0
    total_points: int | None = None
    overall_rank: int | None = None
    bank: int | None = None
    value: int | None = None
    event_transfers: int = 0
    event_transfers_cost: int = 0


class EntryEventPicks(FPLModel):
    entry_history: EntryHistory
