"""Dictation scoring: compares a typed transcription against its reference."""
import logging
import re
from typing import List

from kotoba.models.practice_models import (
    DetailedDictationFeedback,
    DictationEvaluation,
    DictationMistake,
    MistakeType,
)
from kotoba.services.grading import clamp_score, grade_for
from kotoba.services.text_similarity import (
    character_overlap,
    positional_matches,
    similarity_ratio,
)

logger = logging.getLogger(__name__)

MAX_MISTAKES = 10  # Keeps feedback payloads small
MAX_SEGMENTS = 5
MISSING_MARK = "⬜"

CHARACTER_WEIGHT = 0.4
WORD_WEIGHT = 0.3
SIMILARITY_WEIGHT = 0.3

_WHITESPACE = re.compile(r"\s+")

_GRADE_MESSAGES = {
    "A": "Perfect! You heard and wrote everything correctly.",
    "B": "Great work! Just a few minor mistakes.",
    "C": "Good effort! You got most of it right. Review the highlighted mistakes.",
    "D": "Keep practicing! Focus on listening to each syllable carefully.",
    "F": "Don't give up! Try listening multiple times and writing slowly.",
}


def normalize_dictation_text(text: str) -> str:
    """Drop all whitespace (full-width included) and lowercase."""
    return _WHITESPACE.sub("", text).replace("　", "").lower()


def character_accuracy(user_input: str, reference: str) -> float:
    """Position-aligned matches over the reference length, as a percentage."""
    if not reference:
        return 100.0 if not user_input else 0.0
    return positional_matches(user_input, reference) / len(reference) * 100


def word_accuracy(user_input: str, reference: str) -> float:
    """Distinct reference characters present in the input, as a percentage.

    Japanese text has no whitespace tokenization, so the distinct character
    set stands in for the word set.
    """
    return character_overlap(user_input, reference) * 100


def find_mistakes(user_input: str, reference: str) -> List[DictationMistake]:
    """Walk both strings position by position, capped at MAX_MISTAKES positions."""
    mistakes = []
    for i in range(min(MAX_MISTAKES, max(len(user_input), len(reference)))):
        if i >= len(user_input):
            mistakes.append(DictationMistake(i, reference[i], "", MistakeType.MISSING))
        elif i >= len(reference):
            mistakes.append(DictationMistake(i, "", user_input[i], MistakeType.EXTRA))
        elif user_input[i] != reference[i]:
            mistakes.append(DictationMistake(i, reference[i], user_input[i], MistakeType.SUBSTITUTION))
    return mistakes


def dictation_feedback(score: float, mistake_count: int) -> str:
    """Graded message with a mistake-count suffix."""
    message = _GRADE_MESSAGES[grade_for(score)]
    if mistake_count > 0:
        message += f" ({mistake_count} mistake{'s' if mistake_count > 1 else ''} found)"
    return message


def _split_segments(user_input: str, reference: str) -> tuple[List[str], List[str]]:
    """Group consecutive matching and non-matching reference positions."""
    correct_segments: List[str] = []
    incorrect_segments: List[str] = []
    if not user_input or not reference:
        return correct_segments, incorrect_segments

    current_correct = ""
    current_incorrect = ""
    for i, expected in enumerate(reference):
        if i < len(user_input) and user_input[i] == expected:
            if current_incorrect:
                incorrect_segments.append(current_incorrect)
                current_incorrect = ""
            current_correct += expected
        else:
            if current_correct:
                correct_segments.append(current_correct)
                current_correct = ""
            current_incorrect += user_input[i] if i < len(user_input) else MISSING_MARK

    if current_correct:
        correct_segments.append(current_correct)
    if current_incorrect:
        incorrect_segments.append(current_incorrect)
    return correct_segments, incorrect_segments


def detailed_dictation_feedback(
    user_input: str,
    reference: str,
    score: float,
    mistakes: List[DictationMistake],
) -> DetailedDictationFeedback:
    strengths = []
    improvements = []
    tips = []

    if score >= 90:
        strengths.append("Excellent listening comprehension")
    if score >= 80:
        strengths.append("Good character recognition")
    if not mistakes:
        strengths.append("Perfect accuracy!")

    missing = sum(1 for m in mistakes if m.type is MistakeType.MISSING)
    extra = sum(1 for m in mistakes if m.type is MistakeType.EXTRA)
    substituted = sum(1 for m in mistakes if m.type is MistakeType.SUBSTITUTION)
    if missing:
        improvements.append(f"Listen for all syllables - {missing} characters were missed")
    if extra:
        improvements.append("Be careful not to add extra characters")
    if substituted:
        improvements.append("Pay attention to similar-sounding characters")

    tips.append("Listen to the segment at a slower speed if available")
    tips.append("Break down long sentences into smaller parts")
    if score < 70:
        tips.append("Try writing the romaji first, then convert to Japanese")

    correct_segments, incorrect_segments = _split_segments(user_input, reference)

    return DetailedDictationFeedback(
        strengths=tuple(strengths or ["Good attempt!"]),
        improvements=tuple(improvements),
        specific_tips=tuple(tips),
        correct_segments=tuple(correct_segments[:MAX_SEGMENTS]),
        incorrect_segments=tuple(incorrect_segments[:MAX_SEGMENTS]),
        similarity_percentage=similarity_ratio(user_input, reference) * 100,
    )


class DictationScorer:
    """Scores typed transcriptions. Stateless and safe to share across threads."""

    def evaluate(self, user_input: str, reference: str) -> DictationEvaluation:
        """Evaluate a transcription. Total over all strings, empty ones included."""
        normalized_input = normalize_dictation_text(user_input)
        normalized_reference = normalize_dictation_text(reference)

        char_score = character_accuracy(normalized_input, normalized_reference)
        word_score = word_accuracy(normalized_input, normalized_reference)
        similarity_score = similarity_ratio(normalized_input, normalized_reference) * 100

        overall = clamp_score(
            char_score * CHARACTER_WEIGHT
            + word_score * WORD_WEIGHT
            + similarity_score * SIMILARITY_WEIGHT
        )

        mistakes = find_mistakes(normalized_input, normalized_reference)
        logger.debug(
            f"Dictation scored {overall:.1f} (char={char_score:.1f}, word={word_score:.1f}, "
            f"similarity={similarity_score:.1f}, mistakes={len(mistakes)})"
        )

        return DictationEvaluation(
            accuracy_score=similarity_score,
            character_accuracy=char_score,
            word_accuracy=word_score,
            overall_score=overall,
            feedback_text=dictation_feedback(overall, len(mistakes)),
            mistakes=tuple(mistakes),
            detailed_feedback=detailed_dictation_feedback(
                normalized_input, normalized_reference, overall, mistakes
            ),
        )
