"""Tests for the indexlog command line interface."""

from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from algolia_indexlog.cli import app
from algolia_indexlog.constants import Level, Stage
from algolia_indexlog.store import SQLEventStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_console(monkeypatch):
    """Render rich output without colors at a fixed width."""
    console = Console(width=120, color_system=None, force_terminal=False)
    for module in ("common", "db_commands", "query_commands"):
        monkeypatch.setattr(f"algolia_indexlog.cli.{module}.console", console)


@pytest.fixture
def db_url(tmp_path, make_event):
    """SQLite file holding one small session."""
    url = f"sqlite:///{tmp_path / 'indexlog.sqlite'}"
    with SQLEventStore.from_url(url) as store:
        store.append(
            [
                make_event("sess-a", 1, Stage.RETRIEVAL, 0, payload={"type": "product"}),
                make_event("sess-a", 2, Stage.RETRIEVAL, 1),
                make_event("sess-a", 1, Stage.FILTERING, 2, Level.DEBUG, {"should_index": True}),
                make_event("sess-a", 2, Stage.FILTERING, 3, Level.DEBUG, {"should_index": False}),
                make_event("sess-a", 1, Stage.SUBMISSION, 4, payload={"success": True}),
            ]
        )
    return url


class TestDbCommands:
    """Test event store management."""

    def test_init(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'new.sqlite'}"
        result = runner.invoke(app, ["--db", url, "db", "init"])
        assert result.exit_code == 0, result.output
        assert "Event store ready (4 tables)" in result.output

    def test_purge(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "db", "purge", "--ttl-days", "1"])
        assert result.exit_code == 0, result.output
        assert "Purged 5 records" in result.output

    def test_bad_url(self):
        result = runner.invoke(app, ["--db", "nosuchdb://x", "db", "init"])
        assert result.exit_code == 1


class TestQueryCommands:
    """Test analysis commands."""

    def test_sessions(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "sessions"])
        assert result.exit_code == 0, result.output
        assert "sess-a" in result.output

    def test_summary_json(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "summary", "sess-a", "--json"])
        assert result.exit_code == 0, result.output
        assert '"session_id": "sess-a"' in result.output
        assert '"total_items": 2' in result.output

    def test_summary_lists_batch_errors(self, db_url, make_event):
        """Test that a failed batch submission is shown with its message."""
        with SQLEventStore.from_url(db_url) as store:
            store.append(
                [
                    make_event(
                        "sess-a", 0, Stage.SUBMISSION, 5, Level.ERROR,
                        {"success": False, "error": "HTTP 500"},
                    )
                ]
            )
        result = runner.invoke(app, ["--db", db_url, "query", "summary", "sess-a"])
        assert result.exit_code == 0, result.output
        assert "Errors (1)" in result.output
        assert "HTTP 500" in result.output
        assert "batch" in result.output

        result = runner.invoke(app, ["--db", db_url, "query", "summary", "sess-a", "--json"])
        assert '"total_count": 1' in result.output
        assert '"message": "HTTP 500"' in result.output

    def test_summary_unknown_session(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "summary", "nope"])
        assert result.exit_code == 1
        assert "No events found" in result.output

    def test_missing(self, db_url):
        result = runner.invoke(
            app, ["--db", db_url, "query", "missing", "sess-a", "--ids", "1,2,3"]
        )
        assert result.exit_code == 0, result.output
        assert "Never seen (1)" in result.output

    def test_missing_ids_file(self, db_url, tmp_path):
        ids_file = tmp_path / "ids.txt"
        ids_file.write_text("1\n2\n")
        result = runner.invoke(
            app, ["--db", db_url, "query", "missing", "sess-a", "--ids-file", str(ids_file)]
        )
        assert result.exit_code == 0, result.output
        assert "Every expected item was retrieved" in result.output

    def test_timeline(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "timeline", "sess-a", "1"])
        assert result.exit_code == 0, result.output
        assert "submission" in result.output

    def test_compare_missing_session(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "compare", "sess-a", "nope"])
        assert result.exit_code == 1

    def test_races_none(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "races"])
        assert result.exit_code == 0, result.output
        assert "No race correlations found" in result.output

    def test_export_stdout(self, db_url):
        result = runner.invoke(app, ["--db", db_url, "query", "export", "sess-a"])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "item_id,type,final_status,skip_reason,error_count,last_stage"
        assert lines[1] == "1,product,indexed,,0,submission"

    def test_export_file(self, db_url, tmp_path):
        output = tmp_path / "items.csv"
        result = runner.invoke(
            app,
            ["--db", db_url, "query", "export", "sess-a", "--problems-only", "-o", str(output)],
        )
        assert result.exit_code == 0, result.output
        assert output.read_text().splitlines()[1].startswith("2,,skipped")

    def test_env_file(self, db_url, tmp_path, monkeypatch):
        """Test that --env-file supplies the database URL."""
        monkeypatch.setenv("INDEXLOG_DATABASE_URL", "sqlite:///unused.sqlite")
        env_file = tmp_path / ".env"
        env_file.write_text(f"INDEXLOG_DATABASE_URL={db_url}\n")
        result = runner.invoke(app, ["--env-file", str(env_file), "query", "sessions"])
        assert result.exit_code == 0, result.output
        assert "sess-a" in result.output
