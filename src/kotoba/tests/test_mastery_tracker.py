"""Tests for the mastery state machine."""
from datetime import UTC, datetime, timedelta

import pytest

from kotoba.models.progress_models import ItemProgress, MasteryLevel
from kotoba.services.mastery_tracker import MasteryTracker

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def tracker() -> MasteryTracker:
    return MasteryTracker(learning_streak=1, familiar_streak=3, mastered_streak=6, demotion_policy="one_level")


def answer(tracker: MasteryTracker, progress: ItemProgress, results) -> ItemProgress:
    for i, is_correct in enumerate(results):
        progress = tracker.record_attempt(progress, is_correct, NOW + timedelta(minutes=i))
    return progress


def test_first_correct_answer_leaves_new(tracker):
    """Test a NEW item is promoted by one correct answer."""
    progress = tracker.record_attempt(ItemProgress(0, 0), True, NOW)
    assert progress.mastery_level > MasteryLevel.NEW
    assert progress.mastery_level is MasteryLevel.LEARNING
    assert progress.streak_count == 1
    assert progress.last_correct_at == NOW


@pytest.mark.parametrize("correct_answers, level", [
    (1, MasteryLevel.LEARNING),
    (2, MasteryLevel.LEARNING),
    (3, MasteryLevel.FAMILIAR),
    (5, MasteryLevel.FAMILIAR),
    (6, MasteryLevel.MASTERED),
    (10, MasteryLevel.MASTERED),
])
def test_promotion_thresholds(tracker, correct_answers, level):
    """Test levels reached by consecutive correct answers."""
    progress = answer(tracker, ItemProgress(0, 0), [True] * correct_answers)
    assert progress.mastery_level is level
    assert progress.best_streak == correct_answers


def test_counters_stay_consistent(tracker):
    """Test total = correct + incorrect after mixed answers."""
    progress = answer(tracker, ItemProgress(1, 2), [True, False, True, True, False])
    assert progress.correct_attempts == 3
    assert progress.incorrect_attempts == 2
    assert progress.total_attempts == 5
    assert progress.streak_count == 0
    assert progress.best_streak == 2
    assert progress.get_accuracy_percentage() == pytest.approx(60.0)


def test_incorrect_answer_demotes_one_level(tracker):
    """Test one_level demotion from MASTERED."""
    mastered = answer(tracker, ItemProgress(0, 0), [True] * 6)
    demoted = tracker.record_attempt(mastered, False, NOW)
    assert demoted.mastery_level is MasteryLevel.FAMILIAR
    assert demoted.streak_count == 0


@pytest.mark.parametrize("start", list(MasteryLevel))
def test_incorrect_answers_never_promote(tracker, start):
    """Test five misses leave the level at or below where it started."""
    progress = answer(tracker, ItemProgress(0, 0, mastery_level=start), [False] * 5)
    assert progress.mastery_level <= start
    if start is not MasteryLevel.NEW:
        assert progress.mastery_level >= MasteryLevel.LEARNING


def test_new_item_stays_new_on_miss(tracker):
    """Test a NEW item is not moved by a wrong answer."""
    progress = tracker.record_attempt(ItemProgress(0, 0), False, NOW)
    assert progress.mastery_level is MasteryLevel.NEW
    assert progress.last_correct_at is None


def test_no_demotion_policy():
    """Test the none policy keeps the level."""
    tracker = MasteryTracker(demotion_policy="none")
    progress = tracker.record_attempt(ItemProgress(0, 0, mastery_level=MasteryLevel.MASTERED, streak_count=9),
                                      False, NOW)
    assert progress.mastery_level is MasteryLevel.MASTERED
    assert progress.streak_count == 0


def test_record_attempt_leaves_schedule_alone(tracker):
    """Test next_review_at is not set by the tracker."""
    progress = tracker.record_attempt(ItemProgress(0, 0), True, NOW)
    assert progress.next_review_at is None


def test_invalid_configuration():
    """Test threshold and policy validation."""
    with pytest.raises(ValueError):
        MasteryTracker(learning_streak=3, familiar_streak=2, mastered_streak=6)
    with pytest.raises(ValueError):
        MasteryTracker(demotion_policy="reset")


@pytest.mark.parametrize("overrides", [
    dict(learning_streak=0),
    dict(learning_streak=0, familiar_streak=3, mastered_streak=6),
    dict(demotion_policy=""),
])
def test_explicit_falsy_settings_are_validated(overrides):
    """Test zero thresholds and empty policies are rejected instead of replaced by defaults."""
    with pytest.raises(ValueError):
        MasteryTracker(**overrides)
