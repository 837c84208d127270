"""Flashcard self-assessment scoring."""
from kotoba.models.practice_models import FlashcardAssessment, FlashcardEvaluation

FLASHCARD_POINTS = {
    FlashcardAssessment.EASY: 15,
    FlashcardAssessment.GOOD: 10,
    FlashcardAssessment.HARD: 5,
    FlashcardAssessment.FORGOT: 2,
}

FLASHCARD_SCORES = {
    FlashcardAssessment.EASY: 100.0,
    FlashcardAssessment.GOOD: 80.0,
    FlashcardAssessment.HARD: 50.0,
    FlashcardAssessment.FORGOT: 20.0,
}


def evaluate_flashcard(assessment: FlashcardAssessment) -> FlashcardEvaluation:
    """EASY and GOOD count as correct answers."""
    return FlashcardEvaluation(
        assessment=assessment,
        is_correct=assessment.is_correct,
        overall_score=FLASHCARD_SCORES[assessment],
        base_points=FLASHCARD_POINTS[assessment],
    )
