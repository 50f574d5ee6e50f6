"""Tests for fanout.cli — command smoke tests via CliRunner against a real database."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from fanout import __version__
from fanout.cli.app import app
from fanout.control import MissionControl
from fanout.core.settings import clear_settings_cache, get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FANOUT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("FANOUT_PACING_DELAY_SECONDS", "0")
    monkeypatch.setenv("FANOUT_LOG_LEVEL", "ERROR")
    clear_settings_cache()


@pytest.fixture()
def item_id() -> int:
    """A source item seeded through the same settings the CLI will load."""
    control = MissionControl.from_settings(get_settings())
    try:
        return control.store.create_item(title="Spring launch", language="en-gb").id
    finally:
        control.close()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"fanout {__version__}" in result.output


class TestDuplicate:
    def test_duplicates_item(self, item_id):
        result = runner.invoke(app, ["duplicate", str(item_id)])
        assert result.exit_code == 0, result.output
        assert "completed" in result.output

    def test_json_output(self, item_id):
        result = runner.invoke(app, ["duplicate", str(item_id), "--langs", "fr-fr", "--json"])
        assert result.exit_code == 0, result.output
        assert '"fr-fr"' in result.output

    def test_missing_item_exits_nonzero(self):
        result = runner.invoke(app, ["duplicate", "999"])
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output

    def test_empty_language_list_is_rejected(self, item_id):
        result = runner.invoke(app, ["duplicate", str(item_id), "--langs", ","])
        assert result.exit_code == 2

    def test_rerun_warns(self, item_id):
        runner.invoke(app, ["duplicate", str(item_id)])
        result = runner.invoke(app, ["duplicate", str(item_id)])
        assert result.exit_code == 0
        assert "--force" in result.output


class TestControls:
    def test_abort_then_status_warns(self):
        assert runner.invoke(app, ["abort"]).exit_code == 0
        result = runner.invoke(app, ["status", "--json"])
        assert result.exit_code == 0
        assert "WARNINGS" in result.output

    def test_reset_clears_abort(self):
        runner.invoke(app, ["abort"])
        result = runner.invoke(app, ["reset"])
        assert result.exit_code == 0
        assert "abort_cleared" in result.output
        assert "NOMINAL" in runner.invoke(app, ["status"]).output

    def test_status_of_unknown_item(self, item_id):
        result = runner.invoke(app, ["status", str(item_id)])
        assert result.exit_code == 1
        assert "no mission record" in result.output

    def test_status_of_processed_item(self, item_id):
        runner.invoke(app, ["duplicate", str(item_id)])
        result = runner.invoke(app, ["status", str(item_id), "--json"])
        assert result.exit_code == 0
        assert '"status": "completed"' in result.output


class TestMaintenance:
    def test_log_tail(self):
        runner.invoke(app, ["abort"])
        result = runner.invoke(app, ["log", "-n", "1"])
        assert result.exit_code == 0
        assert "Abort signal set by operator" in result.output

    def test_diagnostics(self):
        result = runner.invoke(app, ["diagnostics", "--json"])
        assert result.exit_code == 0
        assert "duplicator_available" in result.output

    def test_sweep(self):
        result = runner.invoke(app, ["sweep"])
        assert result.exit_code == 0
        assert "timed_out" in result.output

    def test_run_due_with_nothing_due(self):
        result = runner.invoke(app, ["run-due", "--json"])
        assert result.exit_code == 0
        assert '"dispatched": []' in result.output

    def test_database_override(self, tmp_path):
        db = tmp_path / "other.db"
        result = runner.invoke(app, ["status", "--database", str(db)])
        assert result.exit_code == 0
        assert db.exists()
