"""Tests for flashcard self-assessment."""
import pytest

from kotoba.models.practice_models import FlashcardAssessment
from kotoba.services.flashcard_scorer import evaluate_flashcard


@pytest.mark.parametrize("assessment, correct, score, points", [
    (FlashcardAssessment.EASY, True, 100.0, 15),
    (FlashcardAssessment.GOOD, True, 80.0, 10),
    (FlashcardAssessment.HARD, False, 50.0, 5),
    (FlashcardAssessment.FORGOT, False, 20.0, 2),
])
def test_evaluate_flashcard(assessment, correct, score, points):
    """Test scores and points for every assessment."""
    evaluation = evaluate_flashcard(assessment)
    assert evaluation.is_correct is correct
    assert evaluation.overall_score == score
    assert evaluation.base_points == points
