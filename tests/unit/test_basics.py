import json
from pathlib import Path
from time import sleep

import pytest
from typer.testing import CliRunner

from socialpipe import config
from socialpipe.main import EXIT_FAILURE, app
from socialpipe.query.catalog import available_queries
from socialpipe.utils import profiler

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch) -> Path:
    root = tmp_path / "store"
    monkeypatch.setenv("STORAGE_URI", f"file://{root}")
    monkeypatch.setenv("STORAGE_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("STORAGE_RETRY_DELAY", "0")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    config.get_settings.cache_clear()
    return root


def test_get_settings_defaults(monkeypatch):
    for name in ("DB_HOST", "DB_PORT", "DB_USER", "DB_NAME", "QUERY_DSN", "STORAGE_URI", "BASE_PATH"):
        monkeypatch.delenv(name, raising=False)
    settings = config.Settings(_env_file=None)
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_user == "postgres"
    assert settings.db_name == "socialpipe"
    assert settings.storage_uri == "file://./data"
    assert settings.query_max_attempts == 3 and settings.storage_max_attempts == 5
    assert settings.write_concurrency > 0


def test_build_dsn_prefers_explicit_override():
    assert config.build_dsn(config.Settings(query_dsn="postgresql://x@y/z")) == "postgresql://x@y/z"
    dsn = config.build_dsn(config.Settings(db_host="db", db_port=6543, db_name="social", query_dsn=None))
    assert dsn.endswith("@db:6543/social")


def test_profile_block_measures_time():
    with profiler.profile_block("sleep") as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    assert stats.peak_rss_bytes is None or stats.peak_rss_bytes > 0
    if stats.cpu_percent is not None:
        assert isinstance(stats.cpu_percent, float)


def test_queries_command_lists_catalog():
    result = runner.invoke(app, ["queries"])
    assert result.exit_code == 0
    for name in available_queries():
        assert name in result.stdout


def test_unknown_query_exits_with_failure(cli_env):
    result = runner.invoke(app, ["query", "nope"])
    assert result.exit_code == EXIT_FAILURE


def test_malformed_query_param_exits_with_failure(cli_env):
    result = runner.invoke(app, ["query", "most_liked", "--param", "limit"])
    assert result.exit_code == EXIT_FAILURE


def test_query_param_named_like_an_argument_exits_with_failure(cli_env):
    result = runner.invoke(app, ["query", "most_liked", "--param", "settings=x"])
    assert result.exit_code == EXIT_FAILURE
    assert "settings" in result.output


def test_analyze_rejects_bad_month_before_connecting(cli_env):
    result = runner.invoke(app, ["analyze", "--year", "2024", "--month", "13"])
    assert result.exit_code == EXIT_FAILURE
    assert "hourly_activity" in result.output


def test_analyze_prints_every_result(cli_env, monkeypatch):
    seen = {}

    def fake_analysis(shared):
        seen.update(shared)
        return {name: [] for name in available_queries()}

    monkeypatch.setattr("socialpipe.main.run_analysis", fake_analysis)

    result = runner.invoke(app, ["analyze", "--category", "sports", "--limit", "3", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {name: [] for name in available_queries()}
    assert seen["category"] == "sports"
    assert seen["limit"] == 3
    assert 1 <= seen["month"] <= 12


def test_write_command_reports_partitions(cli_env):
    result = runner.invoke(app, ["write", "posts", "--count", "5", "--span-hours", "1", "--json"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["kind"] == "posts"
    assert report["total_records"] == 5
    assert report["failed"] == 0
    assert sum(p["records"] for p in report["partitions"]) == 5
    assert list((cli_env / "social" / "posts").rglob("posts_*.json"))


def test_write_command_rejects_unknown_kind(cli_env):
    result = runner.invoke(app, ["write", "tweets", "--count", "1"])
    assert result.exit_code == EXIT_FAILURE
