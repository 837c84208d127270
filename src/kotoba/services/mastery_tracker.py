"""Per-item mastery state machine.

Promotion moves an item up one level when its consecutive-correct streak
reaches the next level's threshold:

    NEW -> LEARNING   after ``learning_streak`` correct in a row (default 1)
    LEARNING -> FAMILIAR after ``familiar_streak`` (default 3)
    FAMILIAR -> MASTERED after ``mastered_streak`` (default 6)

An incorrect answer resets the streak and never promotes. What happens to
the level depends on the demotion policy:

    ``none``       the level is kept
    ``one_level``  the level drops by one, never below LEARNING

A NEW item stays NEW until it is answered correctly.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from kotoba.config import DEMOTION_POLICIES, settings
from kotoba.models.progress_models import ItemProgress, MasteryLevel
from kotoba.monitoring import mastery_demotions, mastery_promotions

logger = logging.getLogger(__name__)


class MasteryTracker:
    """Pure state machine over ItemProgress; callers persist the result."""

    def __init__(
        self,
        learning_streak: Optional[int] = None,
        familiar_streak: Optional[int] = None,
        mastered_streak: Optional[int] = None,
        demotion_policy: Optional[str] = None,
    ):
        config = settings.mastery
        self.thresholds: Dict[MasteryLevel, int] = {
            MasteryLevel.LEARNING: config.learning_streak if learning_streak is None else learning_streak,
            MasteryLevel.FAMILIAR: config.familiar_streak if familiar_streak is None else familiar_streak,
            MasteryLevel.MASTERED: config.mastered_streak if mastered_streak is None else mastered_streak,
        }
        self.demotion_policy = (config.demotion_policy if demotion_policy is None else demotion_policy).lower()

        ordered = list(self.thresholds.values())
        if not 0 < ordered[0] < ordered[1] < ordered[2]:
            raise ValueError("Mastery streak thresholds must be positive and strictly increasing")
        if self.demotion_policy not in DEMOTION_POLICIES:
            raise ValueError(f"Unknown demotion policy: {self.demotion_policy}")

    def _promote(self, level: MasteryLevel, streak: int) -> MasteryLevel:
        if level is MasteryLevel.MASTERED:
            return level
        following = MasteryLevel(level + 1)
        if streak >= self.thresholds[following]:
            return following
        return level

    def _demote(self, level: MasteryLevel) -> MasteryLevel:
        if self.demotion_policy == "none" or level <= MasteryLevel.LEARNING:
            return level
        return MasteryLevel(level - 1)

    def record_attempt(self, progress: ItemProgress, is_correct: bool, now: datetime) -> ItemProgress:
        """Return a new ItemProgress with this attempt applied.

        ``next_review_at`` is left untouched; scheduling is the review
        scheduler's job.
        """
        if is_correct:
            streak = progress.streak_count + 1
            level = self._promote(progress.mastery_level, streak)
            if level is not progress.mastery_level:
                mastery_promotions.labels(level=level.name).inc()
                logger.debug(f"Item {progress.key} promoted to {level.name}")
            return replace(
                progress,
                correct_attempts=progress.correct_attempts + 1,
                total_attempts=progress.total_attempts + 1,
                streak_count=streak,
                best_streak=max(progress.best_streak, streak),
                mastery_level=level,
                last_attempt_at=now,
                last_correct_at=now,
            )

        level = self._demote(progress.mastery_level)
        if level is not progress.mastery_level:
            mastery_demotions.labels(level=level.name).inc()
            logger.debug(f"Item {progress.key} demoted to {level.name}")
        return replace(
            progress,
            incorrect_attempts=progress.incorrect_attempts + 1,
            total_attempts=progress.total_attempts + 1,
            streak_count=0,
            mastery_level=level,
            last_attempt_at=now,
        )
