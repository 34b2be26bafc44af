"""Configuration management for the FPL sync backend.

Settings are loaded from environment variables (and an optional .env file)
using pydantic-settings. Every connection parameter, retry bound, pool size and
cache TTL consumed by the sync core is defined here so nothing in the core is
hard-coded.
"""

from datetime import date
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def current_season(today: date | None = None) -> str:
    """Derive the FPL season code for a date.

    Seasons start in August, so 2025-09-01 belongs to "2526" and
    2026-03-01 belongs to "2526" as well.

    Args:
        today: Date to evaluate (defaults to today)

    Returns:
        Four digit season code, e.g. "2526"
    """
    today = today or date.today()
    start_year = today.year if today.month >= 8 else today.year - 1
    return f"{start_year % 100:02d}{(start_year + 1) % 100:02d}"


def is_fpl_season(today: date | None = None) -> bool:
    """Check whether a date falls inside the FPL season (August through May)."""
    today = today or date.today()
    return today.month >= 8 or today.month <= 5


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Connections:
    - DATABASE_URL: SQLAlchemy async URL (default: local SQLite file)
    - REDIS_URL: Redis connection URL for the cache store
    - FPL_API_BASE_URL: Base URL of the upstream FPL API

    Sync tuning:
    - FPL_API_RETRY_ATTEMPTS / FPL_API_BACKOFF_MIN / FPL_API_BACKOFF_MAX
    - JOB_MAX_ATTEMPTS / JOB_BACKOFF_BASE / JOB_BACKOFF_MAX
    - WORKER_CONCURRENCY / FANOUT_CONCURRENCY
    - CACHE_TTL_DEFAULT / CACHE_TTL_LIVE / CACHE_TTL_POINTER
    """

    environment: str = Field(default="development")
    season: str = Field(default_factory=current_season, pattern=r"^\d{4}$")

    # Relational store
    database_url: str = Field(default="sqlite+aiosqlite:///./fpl_sync.db")
    db_pool_size: int = Field(default=10, ge=1, le=50, description="SQLAlchemy connection pool size")
    db_max_overflow: int = Field(default=20, ge=0, le=100, description="Max overflow connections beyond pool_size")
    db_pool_recycle: int = Field(default=3600, ge=300, le=86400)

    # Cache store
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=5.0, gt=0)
    cache_ttl_default: int = Field(default=86400, ge=1, description="TTL for season-wide collections")
    cache_ttl_live: int = Field(default=300, ge=1, description="TTL for live per-event collections")
    cache_ttl_pointer: int = Field(default=3600, ge=1, description="TTL for current/next event pointers")

    # External API
    fpl_api_base_url: str = Field(default="https://fantasy.premierleague.com/api")
    fpl_api_timeout: float = Field(default=15.0, gt=0)
    fpl_api_retry_attempts: int = Field(default=3, ge=1, le=10)
    fpl_api_backoff_min: float = Field(default=1.0, ge=0)
    fpl_api_backoff_max: float = Field(default=30.0, ge=0)
    fpl_api_circuit_threshold: int = Field(default=3, ge=1, description="Failures before the circuit opens")
    fpl_api_circuit_recovery: int = Field(default=300, ge=1, description="Seconds before a half-open retry")
    fpl_api_user_agent: str = Field(
        default="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Tournaments (classic league ids) synced by the periodic triggers
    tournament_ids: list[int] = Field(default_factory=list)

    # Job scheduler
    job_max_attempts: int = Field(default=3, ge=1, le=20)
    job_backoff_base: float = Field(default=2.0, ge=0)
    job_backoff_max: float = Field(default=120.0, ge=0)
    worker_concurrency: int = Field(default=5, ge=1, le=64)
    fanout_concurrency: int = Field(default=5, ge=1, le=64)
    job_retention_seconds: float = Field(default=300.0, ge=0)

    # Periodic triggers
    cron_enabled: bool = Field(default=True)
    cron_interval_seconds: int = Field(default=86400, ge=60)
    live_interval_seconds: int = Field(default=600, ge=30)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance (singleton).

    Returns:
        Settings instance with validated configuration

    Raises:
        ValidationError: If an environment value is out of bounds
    """
    return Settings()
