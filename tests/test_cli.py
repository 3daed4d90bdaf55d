"""Tests for the practice-growth command line."""

import pytest
from click.testing import CliRunner

from practice_growth import config as config_module
from practice_growth.cli.main import cli


@pytest.fixture
def runner(temp_data_dir, monkeypatch):
    monkeypatch.setenv("PG_DATABASE_PATH", str(temp_data_dir / "growth.db"))
    monkeypatch.setenv("PG_SCORING_CONFIG", str(temp_data_dir / "scoring.json"))
    monkeypatch.setenv("PG_TIMEZONE", "UTC")
    monkeypatch.setenv("PG_PRACTICE_NAME", "Spine Center")
    # Drop cached settings so the environment above is read
    monkeypatch.setattr(config_module, "_settings", None)
    return CliRunner()


def capture(runner, *extra):
    return runner.invoke(cli, [
        "capture", "--first", "Ana", "--last", "Ruiz", "--email", "ana@example.com",
        "--phone", "555-010-2000", "--visits", "3", "--page-views", "5", "--time-on-site", "120",
        *extra,
    ])


class TestLeadCommands:

    def test_capture(self, runner):
        result = capture(runner)
        assert result.exit_code == 0, result.output
        assert "Lead #1 captured" in result.output
        assert "45/100" in result.output

    def test_capture_duplicate_merges(self, runner):
        capture(runner)
        result = capture(runner)
        assert result.exit_code == 0
        assert "Merged into existing lead #1" in result.output

    def test_capture_rejects_bad_email(self, runner):
        result = runner.invoke(cli, ["capture", "--first", "Ana", "--last", "Ruiz", "--email", "nope"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_score_and_list(self, runner):
        capture(runner)
        result = runner.invoke(cli, ["score", "1", "--force"])
        assert result.exit_code == 0, result.output
        assert "Quality:" in result.output

        result = runner.invoke(cli, ["leads"])
        assert result.exit_code == 0
        assert "Ana Ruiz" in result.output

    def test_missing_lead_exits_with_error(self, runner):
        result = runner.invoke(cli, ["score", "99"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_custom_db_path(self, runner, temp_data_dir):
        db_path = str(temp_data_dir / "other.db")
        capture(runner, "--db", db_path)
        result = runner.invoke(cli, ["leads", "--db", db_path])
        assert "Ana Ruiz" in result.output
        result = runner.invoke(cli, ["leads"])
        assert "No leads found" in result.output

    def test_rankings_and_status(self, runner):
        capture(runner)
        assert runner.invoke(cli, ["rankings"]).exit_code == 0

        result = runner.invoke(cli, ["status", "1", "cold", "--user", "dr-lee", "--notes", "No answer"])
        assert result.exit_code == 0, result.output
        assert "cold" in result.output

        result = runner.invoke(cli, ["status", "1", "converted"])
        assert result.exit_code == 1

    def test_roster_and_assign(self, runner):
        capture(runner)
        result = runner.invoke(cli, ["roster-add", "amy", "--name", "Amy"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(cli, ["assign", "1"])
        assert result.exit_code == 0, result.output
        assert "assigned to Amy" in result.output

    def test_convert(self, runner):
        capture(runner)
        result = runner.invoke(cli, ["convert", "1", "--customer", "patient-9", "--value", "1200"])
        assert result.exit_code == 0, result.output
        result = runner.invoke(cli, ["activity", "1"])
        assert "lead_converted" in result.output


class TestNurtureCommands:

    def test_sequences(self, runner):
        result = runner.invoke(cli, ["sequences"])
        assert result.exit_code == 0
        # Sequence ids are copied from this table, so they must not wrap
        for sequence_id in ("awareness", "consideration", "decision", "re_engagement"):
            assert sequence_id in result.output

    def test_nurture_and_dispatch(self, runner):
        capture(runner)
        result = runner.invoke(cli, ["nurture", "1"])
        assert result.exit_code == 0, result.output
        assert "Consideration Sequence" in result.output

        result = runner.invoke(cli, ["due"])
        assert result.exit_code == 0, result.output
        assert "Dispatched 1 of 1" in result.output

    def test_engage_and_respond(self, runner):
        capture(runner)
        runner.invoke(cli, ["nurture", "1"])

        result = runner.invoke(cli, ["engage", "1", "sms_reply", "--step", "1"])
        assert result.exit_code == 0, result.output
        assert "status hot" in result.output

        result = runner.invoke(cli, ["respond", "1", "email_reply", "--content", "Yes, ready to book"])
        assert result.exit_code == 0, result.output
        assert "positive" in result.output

    def test_pause_requires_nurturing(self, runner):
        capture(runner)
        result = runner.invoke(cli, ["pause", "1"])
        assert result.exit_code == 1

    def test_stats(self, runner):
        capture(runner)
        assert runner.invoke(cli, ["source-stats"]).exit_code == 0
        result = runner.invoke(cli, ["nurture-stats", "--start", "2020-01-01"])
        assert result.exit_code == 0, result.output
