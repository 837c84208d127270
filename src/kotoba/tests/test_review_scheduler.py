"""Tests for review scheduling and study streaks."""
from datetime import UTC, datetime, timedelta

import pytest

from kotoba.models.progress_models import DeckProgress, ItemKey, ItemProgress, MasteryLevel
from kotoba.services.review_scheduler import (
    ReviewScheduler,
    current_study_streak,
    update_study_streak,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def scheduler() -> ReviewScheduler:
    return ReviewScheduler({"NEW": 1, "LEARNING": 10, "FAMILIAR": 1440, "MASTERED": 10080})


def test_intervals_grow_with_mastery(scheduler):
    """Test correct answers schedule further out at higher levels."""
    levels = list(MasteryLevel)
    intervals = [scheduler.interval_for(level, True) for level in levels]
    assert intervals == sorted(intervals)
    assert scheduler.compute_next_review(MasteryLevel.LEARNING, True, NOW) == NOW + timedelta(minutes=10)
    assert scheduler.compute_next_review(MasteryLevel.MASTERED, True, NOW) == NOW + timedelta(days=7)


def test_failure_uses_shortest_interval(scheduler):
    """Test an incorrect answer from MASTERED comes back sooner."""
    failed = scheduler.compute_next_review(MasteryLevel.MASTERED, False, NOW)
    passed = scheduler.compute_next_review(MasteryLevel.MASTERED, True, NOW)
    assert failed < passed
    assert failed == NOW + timedelta(minutes=1)


def test_intervals_must_increase():
    """Test a flat table is rejected."""
    with pytest.raises(ValueError):
        ReviewScheduler({"NEW": 1, "LEARNING": 10, "FAMILIAR": 10, "MASTERED": 100})


def _progress(due_offsets) -> DeckProgress:
    items = {}
    for index, offset in enumerate(due_offsets):
        due = None if offset is None else NOW + timedelta(minutes=offset)
        items[ItemKey(0, index)] = ItemProgress(0, index, total_attempts=1, next_review_at=due)
    return DeckProgress(user_id="u", deck_id="d", items=items)


def test_items_needing_review_sorted_by_due_time(scheduler):
    """Test due items come earliest first; future and unscheduled are skipped."""
    progress = _progress([-5, 30, None, -60, 0])
    assert scheduler.get_items_needing_review(progress, NOW) == [ItemKey(0, 3), ItemKey(0, 0), ItemKey(0, 4)]


def test_next_reviews_limit(scheduler):
    """Test the limit keeps the earliest due items."""
    progress = _progress([-1, -2, -3, -4])
    assert scheduler.get_next_reviews(progress, NOW, 2) == [ItemKey(0, 3), ItemKey(0, 2)]
    assert scheduler.get_next_reviews(progress, NOW, 0) == []


@pytest.mark.parametrize("streak, last, expected_streak", [
    (0, None, 1),
    (4, NOW - timedelta(hours=2), 4),
    (4, NOW - timedelta(days=1), 5),
    (4, NOW - timedelta(days=3), 1),
])
def test_update_study_streak(streak, last, expected_streak):
    """Test the calendar-day streak rules."""
    new_streak, _ = update_study_streak(streak, last, NOW)
    assert new_streak == expected_streak


def test_same_day_keeps_streak_date():
    """Test studying twice a day does not move the streak date."""
    earlier = NOW - timedelta(hours=1)
    assert update_study_streak(2, earlier, NOW) == (2, earlier)


def test_current_study_streak():
    """Test a streak lapses after a skipped day."""
    assert current_study_streak(3, NOW - timedelta(days=1), NOW) == 3
    assert current_study_streak(3, NOW - timedelta(days=2), NOW) == 0
    assert current_study_streak(0, None, NOW) == 0
