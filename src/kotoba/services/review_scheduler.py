"""Spaced repetition scheduling and study streaks."""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from kotoba.config import settings
from kotoba.models.progress_models import DeckProgress, ItemKey, MasteryLevel

logger = logging.getLogger(__name__)


class ReviewScheduler:
    """Maps mastery levels to review intervals.

    A correct answer schedules the next review after the interval of the
    level the item reached. An incorrect answer always schedules it after
    the shortest interval in the table.
    """

    def __init__(self, interval_minutes: Optional[Dict[str, int]] = None):
        table = interval_minutes if interval_minutes is not None else settings.review.interval_minutes
        self.intervals: Dict[MasteryLevel, timedelta] = {
            level: timedelta(minutes=table[level.name]) for level in MasteryLevel
        }
        ordered = [self.intervals[level] for level in MasteryLevel]
        if any(a >= b for a, b in zip(ordered, ordered[1:])):
            raise ValueError("Review intervals must be strictly increasing with mastery")

    @property
    def shortest_interval(self) -> timedelta:
        """Smallest configured interval."""
        return min(self.intervals.values())

    def interval_for(self, mastery_level: MasteryLevel, was_correct: bool) -> timedelta:
        """Interval until the next review: the shortest one after a miss, otherwise the level's interval."""
        if not was_correct:
            return self.shortest_interval
        return self.intervals[mastery_level]

    def compute_next_review(self, mastery_level: MasteryLevel, was_correct: bool, now: datetime) -> datetime:
        """When an item at this level should next be reviewed."""
        return now + self.interval_for(mastery_level, was_correct)

    @staticmethod
    def get_items_needing_review(progress: DeckProgress, now: datetime) -> List[ItemKey]:
        """Keys of items due at or before ``now``, earliest due first."""
        due = [
            (item.next_review_at, key)
            for key, item in progress.items.items()
            if item.next_review_at is not None and item.next_review_at <= now
        ]
        due.sort()
        return [key for _, key in due]

    def get_next_reviews(self, progress: DeckProgress, now: datetime, limit: int) -> List[ItemKey]:
        """Keys of the earliest due items, at most limit of them."""
        return self.get_items_needing_review(progress, now)[:max(limit, 0)]


def update_study_streak(
    study_streak: int,
    last_streak_date: Optional[datetime],
    now: datetime,
) -> Tuple[int, datetime]:
    """Advance the calendar-day study streak for a study event at ``now``.

    Same day keeps the streak and its date; the following day extends it;
    any longer gap starts over at 1.
    """
    if last_streak_date is None:
        return 1, now

    today = now.date()
    last_day = last_streak_date.date()
    if last_day == today:
        return study_streak, last_streak_date
    if last_day == today - timedelta(days=1):
        return study_streak + 1, now

    logger.debug(f"Study streak of {study_streak} broken (last studied {last_day})")
    return 1, now


def current_study_streak(study_streak: int, last_streak_date: Optional[datetime], now: datetime) -> int:
    """The streak as it stands at ``now``; 0 once a whole day was skipped."""
    if last_streak_date is None:
        return 0
    if last_streak_date.date() < now.date() - timedelta(days=1):
        return 0
    return study_streak
