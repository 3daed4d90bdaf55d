"""Tests for scoring configuration and environment settings."""

import json

import pytest

from practice_growth.config import Settings
from practice_growth.core.config import ScoringConfig, ScoringConfigManager


class TestScoringConfig:

    def test_defaults(self):
        config = ScoringConfig()
        assert config.freshness_hours == 24
        assert config.merge_strategy == "sum"
        assert config.source_score("referral") == 20
        assert config.source_score("billboard") == 5
        assert config.source_multiplier("billboard") == 0.7

    @pytest.mark.parametrize("kwargs", [
        {"merge_strategy": "average"},
        {"freshness_hours": 0},
        {"score_history_limit": 0},
        {"source_quality": {"referral": 25}},
        {"source_multipliers": {"referral": 0}},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            ScoringConfig(**kwargs)


class TestScoringConfigManager:

    def test_missing_file_uses_defaults(self, temp_data_dir):
        manager = ScoringConfigManager(temp_data_dir / "scoring.json")
        assert manager.config.merge_strategy == "sum"

    def test_save_and_reload(self, temp_data_dir):
        path = temp_data_dir / "scoring.json"
        manager = ScoringConfigManager(path)
        manager.set_merge_strategy("max")
        manager.set_source_quality("walk_in", 11)
        manager.set_source_multiplier("other", 0.5)

        reloaded = ScoringConfigManager(path).config
        assert reloaded.merge_strategy == "max"
        assert reloaded.source_score("walk_in") == 11
        assert reloaded.source_multiplier("other") == 0.5
        # Untouched entries keep their defaults
        assert reloaded.source_score("referral") == 20

    def test_rejects_bad_updates(self, temp_data_dir):
        manager = ScoringConfigManager(temp_data_dir / "scoring.json")
        with pytest.raises(ValueError):
            manager.set_merge_strategy("average")
        with pytest.raises(ValueError):
            manager.set_source_quality("walk_in", 21)
        with pytest.raises(ValueError):
            manager.set_source_multiplier("walk_in", -1)

    def test_corrupt_file_falls_back(self, temp_data_dir):
        path = temp_data_dir / "scoring.json"
        path.write_text("{not json")
        assert ScoringConfigManager(path).config.freshness_hours == 24

    def test_partial_file(self, temp_data_dir):
        path = temp_data_dir / "scoring.json"
        path.write_text(json.dumps({"freshness_hours": 6}))
        config = ScoringConfigManager(path).config
        assert config.freshness_hours == 6
        assert config.bulk_score_max == 500


class TestSettings:

    def test_booking_link_from_subdomain(self, monkeypatch):
        monkeypatch.delenv("PG_BOOKING_LINK", raising=False)
        monkeypatch.setenv("PG_BOOKING_SUBDOMAIN", "spine")
        assert Settings().booking_link == "https://booking.spine.com"

    def test_explicit_booking_link(self, monkeypatch):
        monkeypatch.setenv("PG_BOOKING_SUBDOMAIN", "spine")
        monkeypatch.setenv("PG_BOOKING_LINK", "https://book.example.org")
        assert Settings().booking_link == "https://book.example.org"

    def test_paths_and_log_level(self, monkeypatch, temp_data_dir):
        monkeypatch.setenv("PG_DATABASE_PATH", str(temp_data_dir / "x.db"))
        monkeypatch.setenv("PG_LOG_LEVEL", "debug")
        settings = Settings()
        assert settings.db_path == str(temp_data_dir / "x.db")
        assert settings.log_level == "DEBUG"
