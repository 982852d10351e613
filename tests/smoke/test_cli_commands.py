"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json

import pytest
from loguru import logger
from typer.testing import CliRunner

from teachback.cli.main import app

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def _drop_cli_log_sink():
    """The CLI points loguru at the runner's stderr; detach it afterwards."""
    yield
    logger.remove()


@pytest.fixture
def db_args(tmp_path):
    """Point every command at a throwaway SQLite file."""
    return ["--user", "alice", "--db-url", f"sqlite:///{tmp_path / 'teachback.db'}"]


@pytest.fixture
def session_file(tmp_path, sample_outcome, sample_criteria):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({**sample_outcome, "criteria": sample_criteria}), encoding="utf-8")
    return path


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "apply-session" in result.output
        assert "recommend" in result.output

    @pytest.mark.parametrize("command", ["apply-session", "recommend", "score", "review", "due", "ratings"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


class TestScoreCommand:
    def test_score(self):
        result = runner.invoke(
            app,
            ["score", "--completeness", "5", "--depth", "5", "--clarity", "5", "--structure", "5", "--insight", "1"],
        )
        assert result.exit_code == 0
        assert "FAIL" in result.output
        assert "4.20" in result.output

    def test_out_of_range(self):
        result = runner.invoke(
            app,
            ["score", "--completeness", "7", "--depth", "5", "--clarity", "5", "--structure", "5", "--insight", "5"],
        )
        assert result.exit_code != 0


class TestSessionFlow:
    def test_apply_then_query(self, db_args, session_file):
        result = runner.invoke(app, db_args + ["apply-session", str(session_file), "--topic", "Algorithms"])
        assert result.exit_code == 0, result.output
        assert "2 concepts" in result.output
        assert "overall" in result.output

        result = runner.invoke(app, db_args + ["recommend"])
        assert result.exit_code == 0
        assert "amortized" in result.output

        result = runner.invoke(app, db_args + ["ratings"])
        assert result.exit_code == 0
        assert "Topics: 1" in result.output

        result = runner.invoke(app, db_args + ["ratings", "--topic", "Algorithms"])
        assert result.exit_code == 0
        assert "1240" in result.output

    def test_invalid_outcome(self, db_args, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"id": "s1", "date": "2025-03-01T12:00:00+00:00", "title": "x", "score": 150}))
        result = runner.invoke(app, db_args + ["apply-session", str(path), "--topic", "Algorithms"])
        assert result.exit_code == 1
        assert "score" in result.output

    @pytest.mark.parametrize("content", ["[]", '"session"', "42"])
    def test_outcome_must_be_an_object(self, db_args, tmp_path, content):
        path = tmp_path / "list.json"
        path.write_text(content)
        result = runner.invoke(app, db_args + ["apply-session", str(path), "--topic", "Algorithms"])
        assert result.exit_code == 1
        assert "must be a JSON object" in result.output

    def test_review_and_due(self, db_args):
        result = runner.invoke(app, db_args + ["review", "heaps", "1"])
        assert result.exit_code == 0
        assert "heaps" in result.output

        result = runner.invoke(app, db_args + ["due"])
        assert result.exit_code == 0
        assert "No reviews due" in result.output

    def test_review_bad_quality(self, db_args):
        result = runner.invoke(app, db_args + ["review", "heaps", "9"])
        assert result.exit_code == 1
        assert "quality" in result.output
