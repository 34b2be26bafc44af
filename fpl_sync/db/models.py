"""SQLAlchemy ORM models for synchronized FPL data.

Column names mirror the fields of the frozen records in fpl_sync.entities so
the generic StoreGateway can convert rows to records by name. Natural keys are
primary keys (composite for junction-like entities) and act as the upsert
conflict target.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """created_at is set once on insert; updated_at moves on every upsert."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class EventModel(TimestampMixin, Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    deadline_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_previous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_next: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    average_entry_score: Mapped[int | None] = mapped_column(Integer)
    highest_score: Mapped[int | None] = mapped_column(Integer)
    highest_scoring_entry: Mapped[int | None] = mapped_column(Integer)
    most_selected: Mapped[int | None] = mapped_column(Integer)
    most_captained: Mapped[int | None] = mapped_column(Integer)
    most_transferred_in: Mapped[int | None] = mapped_column(Integer)
    top_element: Mapped[int | None] = mapped_column(Integer)
    transfers_made: Mapped[int | None] = mapped_column(Integer)


class TeamModel(TimestampMixin, Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    code: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    short_name: Mapped[str] = mapped_column(String(5), nullable=False)
    strength: Mapped[int | None] = mapped_column(Integer)
    position: Mapped[int | None] = mapped_column(Integer)
    played: Mapped[int | None] = mapped_column(Integer)
    win: Mapped[int | None] = mapped_column(Integer)
    draw: Mapped[int | None] = mapped_column(Integer)
    loss: Mapped[int | None] = mapped_column(Integer)
    points: Mapped[int | None] = mapped_column(Integer)
    strength_attack_home: Mapped[int | None] = mapped_column(Integer)
    strength_attack_away: Mapped[int | None] = mapped_column(Integer)
    strength_defence_home: Mapped[int | None] = mapped_column(Integer)
    strength_defence_away: Mapped[int | None] = mapped_column(Integer)


class PlayerModel(TimestampMixin, Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    code: Mapped[int] = mapped_column(Integer, nullable=False)
    web_name: Mapped[str] = mapped_column(String(100), nullable=False)
    element_type: Mapped[int] = mapped_column(Integer, nullable=False)
    team_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100))
    second_name: Mapped[str | None] = mapped_column(String(100))
    now_cost: Mapped[int | None] = mapped_column(Integer)
    total_points: Mapped[int | None] = mapped_column(Integer)
    form: Mapped[float | None] = mapped_column(Float)
    selected_by_percent: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str | None] = mapped_column(String(5))
    news: Mapped[str | None] = mapped_column(Text)
    chance_of_playing_next_round: Mapped[int | None] = mapped_column(Integer)


class FixtureModel(TimestampMixin, Base):
    __tablename__ = "fixtures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    team_h: Mapped[int] = mapped_column(Integer, nullable=False)
    team_a: Mapped[int] = mapped_column(Integer, nullable=False)
    kickoff_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    team_h_score: Mapped[int | None] = mapped_column(Integer)
    team_a_score: Mapped[int | None] = mapped_column(Integer)
    team_h_difficulty: Mapped[int | None] = mapped_column(Integer)
    team_a_difficulty: Mapped[int | None] = mapped_column(Integer)
    started: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PlayerStatModel(TimestampMixin, Base):
    __tablename__ = "player_stats"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    element_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goals_scored: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assists: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clean_sheets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goals_conceded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    own_goals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penalties_saved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penalties_missed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yellow_cards: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    red_cards: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    saves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_dreamteam: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PlayerValueModel(TimestampMixin, Base):
    __tablename__ = "player_values"

    element_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    change_date: Mapped[date] = mapped_column(Date, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    last_value: Mapped[int | None] = mapped_column(Integer)
    element_type: Mapped[int | None] = mapped_column(Integer)
    team_id: Mapped[int | None] = mapped_column(Integer)
    change_type: Mapped[str] = mapped_column(String(10), nullable=False)

    __table_args__ = (Index("ix_player_values_change_date", "change_date"),)


class TournamentEntryModel(TimestampMixin, Base):
    __tablename__ = "tournament_entries"

    tournament_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    entry_name: Mapped[str | None] = mapped_column(String(100))
    player_name: Mapped[str | None] = mapped_column(String(100))
    rank: Mapped[int | None] = mapped_column(Integer)
    last_rank: Mapped[int | None] = mapped_column(Integer)
    total: Mapped[int | None] = mapped_column(Integer)


class TournamentEventResultModel(TimestampMixin, Base):
    __tablename__ = "tournament_event_results"

    tournament_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    event_transfers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    event_transfers_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int | None] = mapped_column(Integer)
    overall_rank: Mapped[int | None] = mapped_column(Integer)
    bank: Mapped[int | None] = mapped_column(Integer)
    value: Mapped[int | None] = mapped_column(Integer)
    net_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_tournament_event_results_event_tournament", "event_id", "tournament_id"),
    )


MODELS: dict[str, type[Base]] = {
    "events": EventModel,
    "teams": TeamModel,
    "players": PlayerModel,
    "fixtures": FixtureModel,
    "player_stats": PlayerStatModel,
    "player_values": PlayerValueModel,
    "tournament_entries": TournamentEntryModel,
    "tournament_event_results": TournamentEventResultModel,
}
