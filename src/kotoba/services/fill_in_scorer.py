"""Fill-in scoring for vocabulary answers."""
import logging

from kotoba.config import settings
from kotoba.models.practice_models import FillInEvaluation, FillInQuestionType
from kotoba.models.progress_models import VocabularyItem
from kotoba.services.text_similarity import similarity_ratio

logger = logging.getLogger(__name__)

PERFECT_SIMILARITY = 0.98
ALMOST_SIMILARITY = 0.70
CLOSE_SIMILARITY = 0.50

PERFECT_POINTS = 15
CORRECT_POINTS = 10
ALMOST_POINTS = 5
MIN_POINTS = 2


def normalize_answer(text: str) -> str:
    """Trim surrounding whitespace and case-fold."""
    return text.strip().casefold()


def expected_answer(item: VocabularyItem, question_type: FillInQuestionType) -> str:
    """Pick the item field the question asks for."""
    return getattr(item, question_type.answer_field)


class FillInScorer:
    """Scores free-text vocabulary answers against the expected field."""

    def __init__(self, threshold: float | None = None, streak_bonus_after: int | None = None,
                 streak_bonus_points: int | None = None):
        self.threshold = settings.scoring.fill_in_threshold if threshold is None else threshold
        self.streak_bonus_after = (
            settings.scoring.streak_bonus_after if streak_bonus_after is None else streak_bonus_after
        )
        self.streak_bonus_points = (
            settings.scoring.streak_bonus_points if streak_bonus_points is None else streak_bonus_points
        )

    def is_correct(self, similarity: float) -> bool:
        """Whether a similarity reaches the acceptance threshold."""
        return similarity >= self.threshold

    def feedback(self, similarity: float, correct_answer: str) -> str:
        """Banded feedback; below the threshold the correct answer is revealed."""
        if self.is_correct(similarity) and similarity >= PERFECT_SIMILARITY:
            return "Perfect! Exactly right!"
        if self.is_correct(similarity):
            return "Correct! Great job!"
        if similarity >= ALMOST_SIMILARITY:
            return f"Almost! The correct answer is: {correct_answer}"
        if similarity >= CLOSE_SIMILARITY:
            return f"Close, but not quite. The answer is: {correct_answer}"
        return f"Not quite right. The correct answer is: {correct_answer}"

    def base_points(self, similarity: float) -> int:
        """Points before any streak bonus."""
        if self.is_correct(similarity) and similarity >= PERFECT_SIMILARITY:
            return PERFECT_POINTS
        if self.is_correct(similarity):
            return CORRECT_POINTS
        if similarity >= ALMOST_SIMILARITY:
            return ALMOST_POINTS
        return MIN_POINTS

    def streak_bonus(self, streak_before: int) -> int:
        """Bonus keyed to the item's streak before this attempt is recorded."""
        return self.streak_bonus_points if streak_before > self.streak_bonus_after else 0

    def evaluate_answer(self, user_answer: str, correct_answer: str) -> FillInEvaluation:
        """Score an answer against the expected text."""
        similarity = similarity_ratio(normalize_answer(user_answer), normalize_answer(correct_answer))
        is_correct = self.is_correct(similarity)
        logger.debug(f"Fill-in answer similarity {similarity:.3f} (correct={is_correct})")
        return FillInEvaluation(
            is_correct=is_correct,
            similarity=similarity,
            user_answer=user_answer,
            correct_answer=correct_answer,
            feedback=self.feedback(similarity, correct_answer),
            base_points=self.base_points(similarity),
        )

    def evaluate(self, item: VocabularyItem, question_type: FillInQuestionType,
                 user_answer: str) -> FillInEvaluation:
        """Score an answer to a question about item."""
        return self.evaluate_answer(user_answer, expected_answer(item, question_type))
