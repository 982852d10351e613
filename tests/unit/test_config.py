"""
Unit tests for settings and the config builders.
"""

import pytest
from pydantic import ValidationError

from config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)  # no stray .env
        settings = Settings()
        assert settings.database_url == "sqlite:///teachback.db"
        assert settings.get_rating_config().initial_rating == 1200
        assert settings.get_scoring_config().conjunctive_floor == 2
        assert settings.get_scoring_config().high_grade_floor is None
        assert settings.get_session_config().max_turns == 6
        assert settings.get_session_config().leading_penalty_limit == 0.0
        assert settings.get_sm2_config().minimum_easiness == 1.3
        assert settings.get_mastery_config().gain_cap == 0.4
        assert settings.get_recommender_config().default_limit == 3

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TEACHBACK_SCORING_USE_MODE_WEIGHTS", "true")
        monkeypatch.setenv("teachback_rating_clamp_expected", "false")
        settings = Settings()
        assert settings.get_scoring_config().use_mode_weights is True
        assert settings.get_rating_config().clamp_expected is False

    def test_rejects_invalid_values(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TEACHBACK_SESSION_MAX_TURNS", "1")
        with pytest.raises(ValidationError):
            Settings()
