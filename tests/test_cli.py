"""Tests for keeperlog.cli using typer's CliRunner."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from keeperlog.cli import app
from keeperlog.competencies import DEFAULT_COMPETENCIES
from keeperlog.storage.repository import Repository

runner = CliRunner()


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db = tmp_path / "cli.db"
    monkeypatch.setenv("KEEPERLOG_DB_PATH", str(db))
    monkeypatch.setenv("KEEPERLOG_PROFILE_PATH", str(tmp_path / "profile.json"))
    monkeypatch.chdir(tmp_path)
    return db


class TestInit:
    def test_seeds_competencies(self, env: Path):
        result = runner.invoke(app, ["init", "--name", "Alex"])
        assert result.exit_code == 0, result.output
        with Repository(env) as repo:
            assert repo.competencies.count() == len(DEFAULT_COMPETENCIES)

    def test_profile_saved(self, env: Path):
        runner.invoke(app, ["init", "--name", "Alex"])
        result = runner.invoke(app, ["profile"])
        assert "Alex" in result.output


class TestSessionFlow:
    def test_start_capture_finish(self, env: Path):
        runner.invoke(app, ["init"])
        assert runner.invoke(app, ["start", "Taronga Zoo", "--supervisor", "Sam"]).exit_code == 0
        result = runner.invoke(app, ["capture", "Checked water bowls", "-t", "husbandry"])
        assert result.exit_code == 0, result.output
        result = runner.invoke(
            app, ["finish", "-a", "Fed koalas", "-a", "Routine", "--duration", "120"]
        )
        assert result.exit_code == 0, result.output

        with Repository(env) as repo:
            session = repo.sessions.all()[0]
            assert session.status == "completed"
            assert session.duration_minutes == 120
            assert repo.captures.for_session(session.id)[0].tags == ["husbandry"]

        result = runner.invoke(app, ["skills", "--view", "improving"])
        assert result.exit_code == 0, result.output
        assert "husbandry" in result.output

    def test_second_start_fails(self, env: Path):
        runner.invoke(app, ["start", "Taronga Zoo"])
        result = runner.invoke(app, ["start", "Symbio"])
        assert result.exit_code == 1
        assert "already active" in result.output

    def test_capture_without_session(self, env: Path):
        result = runner.invoke(app, ["capture", "orphan note"])
        assert result.exit_code == 1
        assert "No active session" in result.output

    def test_delete_missing_session(self, env: Path):
        result = runner.invoke(app, ["delete-session", "99", "--yes"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestExchange:
    def test_backup_and_restore(self, env: Path, tmp_path: Path):
        runner.invoke(app, ["init"])
        runner.invoke(app, ["start", "Taronga Zoo"])
        backup = tmp_path / "backup.json"
        assert runner.invoke(app, ["backup", "-o", str(backup)]).exit_code == 0

        runner.invoke(app, ["clear", "--yes"])
        result = runner.invoke(app, ["restore", str(backup), "--yes"])
        assert result.exit_code == 0, result.output
        assert "1 sessions" in result.output

    def test_restore_bad_file(self, env: Path, tmp_path: Path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")
        result = runner.invoke(app, ["restore", str(bad), "--yes"])
        assert result.exit_code == 1

    def test_csv_round_trip(self, env: Path, tmp_path: Path):
        runner.invoke(app, ["start", "Taronga Zoo"])
        runner.invoke(app, ["finish", "-a", "Fed koalas", "--duration", "125"])
        out = tmp_path / "sessions.csv"
        assert runner.invoke(app, ["export-csv", "-o", str(out)]).exit_code == 0
        result = runner.invoke(app, ["import-csv", str(out)])
        assert result.exit_code == 0, result.output
        with Repository(env) as repo:
            assert repo.sessions.count() == 2

    def test_activity_lists_exports(self, env: Path, tmp_path: Path):
        runner.invoke(app, ["backup", "-o", str(tmp_path / "b.json")])
        result = runner.invoke(app, ["activity"])
        assert "backup" in result.output


class TestReporting:
    def test_stats_and_badges(self, env: Path):
        runner.invoke(app, ["init"])
        assert runner.invoke(app, ["stats"]).exit_code == 0
        result = runner.invoke(app, ["badges"])
        assert result.exit_code == 0
        assert "Eagle Eye" in result.output

    def test_report_to_file(self, env: Path, tmp_path: Path):
        out = tmp_path / "report.md"
        result = runner.invoke(app, ["report", "-o", str(out)])
        assert result.exit_code == 0
        assert out.read_text().startswith("# Placement Logbook")


class TestFirstUse:
    def test_fresh_database_gets_defaults(self, env: Path):
        assert runner.invoke(app, ["start", "Taronga Zoo"]).exit_code == 0
        with Repository(env) as repo:
            assert repo.competencies.count() == len(DEFAULT_COMPETENCIES)

        result = runner.invoke(app, ["skills"])
        assert result.exit_code == 0, result.output
        assert f"Not started: {len(DEFAULT_COMPETENCIES)}" in result.output

    def test_reseeded_after_clear(self, env: Path):
        runner.invoke(app, ["init"])
        runner.invoke(app, ["clear", "--yes"])
        assert runner.invoke(app, ["stats"]).exit_code == 0
        with Repository(env) as repo:
            assert repo.competencies.count() == len(DEFAULT_COMPETENCIES)


class TestEditing:
    def test_capture_delete(self, env: Path):
        runner.invoke(app, ["start", "Taronga Zoo"])
        runner.invoke(app, ["capture", "Wrong note"])
        with Repository(env) as repo:
            capture_id = repo.captures.all()[0].id

        result = runner.invoke(app, ["capture-delete", str(capture_id)])
        assert result.exit_code == 0, result.output
        with Repository(env) as repo:
            assert repo.captures.count() == 0
            assert repo.sessions.count() == 1

    def test_capture_delete_missing(self, env: Path):
        result = runner.invoke(app, ["capture-delete", "42"])
        assert result.exit_code == 1

    def test_competency_rename(self, env: Path):
        runner.invoke(app, ["competency-add", "Reptile handling"])
        with Repository(env) as repo:
            competency_id = repo.competencies.by_code("Reptile handling").id

        result = runner.invoke(app, ["competency-rename", str(competency_id), "Reptile care"])
        assert result.exit_code == 0, result.output
        with Repository(env) as repo:
            assert repo.competencies.get(competency_id).code == "Reptile care"
