"""Tests for settings, season derivation and the season gate."""

from datetime import date

import pytest
from freezegun import freeze_time
from pydantic import ValidationError

from fpl_sync.config import Settings, current_season, get_settings, is_fpl_season
from fpl_sync.db.session import normalize_database_url


class TestSeason:
    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2025, 8, 1), "2526"),
            (date(2025, 12, 31), "2526"),
            (date(2026, 5, 31), "2526"),
            (date(2026, 7, 31), "2526"),
            (date(2099, 9, 1), "9900"),
        ],
    )
    def test_current_season(self, day, expected):
        assert current_season(day) == expected

    @freeze_time("2025-10-04")
    def test_current_season_defaults_to_today(self):
        assert current_season() == "2526"

    @pytest.mark.parametrize("month", [8, 9, 12, 1, 5])
    def test_in_season_months(self, month):
        assert is_fpl_season(date(2026, month, 15))

    @pytest.mark.parametrize("month", [6, 7])
    def test_off_season_months(self, month):
        assert not is_fpl_season(date(2026, month, 15))


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.fpl_api_base_url == "https://fantasy.premierleague.com/api"
        assert settings.worker_concurrency == 5
        assert settings.cache_ttl_live < settings.cache_ttl_default
        assert settings.tournament_ids == []

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("WORKER_CONCURRENCY", "8")
        monkeypatch.setenv("TOURNAMENT_IDS", "[314, 1024]")
        monkeypatch.setenv("SEASON", "2425")

        settings = Settings(_env_file=None)

        assert settings.worker_concurrency == 8
        assert settings.tournament_ids == [314, 1024]
        assert settings.season == "2425"

    def test_rejects_out_of_bounds_values(self, monkeypatch):
        monkeypatch.setenv("WORKER_CONCURRENCY", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_rejects_malformed_season(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, season="2025/26")

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgres://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
            ("postgresql://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
            ("sqlite+aiosqlite:///./fpl_sync.db", "sqlite+aiosqlite:///./fpl_sync.db"),
        ],
    )
    def test_normalize(self, url, expected):
        assert normalize_database_url(url) == expected
