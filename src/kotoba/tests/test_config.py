"""Tests for configuration settings."""
import pytest

from kotoba.config import (
    REVIEW_INTERVALS,
    ConcurrencySettings,
    MasterySettings,
    ReviewSettings,
    ScoringSettings,
    Settings,
    settings,
)


def test_settings_defaults():
    """Test default settings values."""
    assert settings.mastery.learning_streak == 1
    assert settings.mastery.familiar_streak == 3
    assert settings.mastery.mastered_streak == 6
    assert settings.mastery.demotion_policy == "one_level"
    assert settings.review.interval_minutes == REVIEW_INTERVALS
    assert settings.scoring.fill_in_threshold == 0.85
    assert settings.scoring.pass_score == 85.0
    assert settings.concurrency.max_update_retries == 3


def test_review_intervals_from_env(monkeypatch):
    """Test that the review table can be overridden with JSON."""
    monkeypatch.setenv("REVIEW_INTERVALS", '{"familiar": 720}')
    test_settings = Settings()
    assert test_settings.review.interval_minutes["FAMILIAR"] == 720
    assert test_settings.review.interval_minutes["MASTERED"] == REVIEW_INTERVALS["MASTERED"]
    test_settings.validate()


@pytest.mark.parametrize("overrides", [
    {"mastery": MasterySettings(learning_streak=2, familiar_streak=2, mastered_streak=6)},
    {"mastery": MasterySettings(demotion_policy="reset")},
    {"review": ReviewSettings(interval_minutes={"NEW": 1, "LEARNING": 10, "FAMILIAR": 5, "MASTERED": 100})},
    {"review": ReviewSettings(interval_minutes={"NEW": 1, "LEARNING": 10})},
    {"scoring": ScoringSettings(fill_in_threshold=1.5)},
    {"scoring": ScoringSettings(pass_score=120)},
    {"concurrency": ConcurrencySettings(max_update_retries=0)},
])
def test_invalid_settings(overrides):
    """Test that validate rejects inconsistent settings."""
    with pytest.raises(ValueError):
        Settings(**overrides).validate()
