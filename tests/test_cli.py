"""Tests for the Typer CLI.

The sync command runs a real container against a temporary SQLite file,
fakeredis and a mocked FPL API.
"""

import fakeredis
import pytest
from typer.testing import CliRunner

from fpl_sync import __version__
from fpl_sync.cli.main import cli

runner = CliRunner()

FPL_BASE = "http://fpl.test/api"


@pytest.fixture
def cli_settings(settings, monkeypatch):
    """Point the CLI at the test settings and an in-memory Redis."""
    settings = settings.model_copy(update={"job_max_attempts": 1})
    monkeypatch.setattr("fpl_sync.cli.main.get_settings", lambda: settings)
    monkeypatch.setattr(
        "fpl_sync.container.create_redis",
        lambda _settings: fakeredis.aioredis.FakeRedis(decode_responses=True),
    )
    return settings


class TestBasicCommands:
    def test_version(self):
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("serve", "init-db", "sync"):
            assert command in result.stdout

    def test_init_db(self, cli_settings):
        result = runner.invoke(cli, ["init-db"])

        assert result.exit_code == 0
        assert "Database tables created" in result.stdout


class TestSyncCommand:
    def test_unknown_kind(self):
        result = runner.invoke(cli, ["sync", "transfers"])

        assert result.exit_code == 2
        assert "Unknown kind" in result.stdout

    @pytest.mark.parametrize(
        "args",
        [
            ["sync", "teams", "--scope", "3"],
            ["sync", "fixtures", "--scope", "twelve"],
            ["sync", "fixtures", "--secondary-scope", "314"],
        ],
    )
    def test_invalid_scope(self, args):
        result = runner.invoke(cli, args)

        assert result.exit_code == 2

    def test_sync_success(self, cli_settings, httpx_mock, bootstrap_payload):
        httpx_mock.add_response(url=f"{FPL_BASE}/bootstrap-static/", json=bootstrap_payload)

        result = runner.invoke(cli, ["sync", "teams"])

        assert result.exit_code == 0
        assert "teams:all:sync" in result.stdout
        assert "completed" in result.stdout

    def test_sync_failure_exits_nonzero(self, cli_settings, httpx_mock):
        httpx_mock.add_response(url=f"{FPL_BASE}/fixtures/?event=12", json={"not": "a list"})

        result = runner.invoke(cli, ["sync", "fixtures", "-s", "12"])

        assert result.exit_code == 1
        assert "failed" in result.stdout
