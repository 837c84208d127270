"""Shadowing evaluation.

No audio signal reaches this code, so pronunciation, speed and intonation
are simulated. The production scorer draws them from an injectable random
source; the fixed scorer returns preset values for tests and demos.
"""
import logging
import random
from abc import ABC, abstractmethod
from typing import List, Optional

from kotoba.models.practice_models import (
    DetailedShadowingFeedback,
    PhonemeScore,
    ShadowingEvaluation,
)
from kotoba.services.grading import clamp_score, grade_for

logger = logging.getLogger(__name__)

PRONUNCIATION_WEIGHT = 0.45
SPEED_WEIGHT = 0.25
INTONATION_WEIGHT = 0.30

BASE_SCORE_MIN = 70.0
BASE_SCORE_SPAN = 20.0
SCORE_NOISE = 10.0
TIP_THRESHOLD = 75.0
STRENGTH_THRESHOLD = 80.0

TRACKED_PHONEMES = ("あ", "い", "う", "え", "お", "か", "さ", "た", "な", "は")
MAX_PHONEMES = 5

_GRADE_MESSAGES = {
    "A": "Excellent work! Your shadowing was very accurate.",
    "B": "Great job! Your pronunciation is quite good.",
    "C": "Good effort! Keep practicing to improve.",
    "D": "You're making progress. Focus on the areas below.",
    "F": "Keep practicing! Here are some tips to help.",
}


def overall_shadowing_score(pronunciation: float, speed: float, intonation: float) -> float:
    """Weighted combination of the three sub-scores."""
    return clamp_score(
        pronunciation * PRONUNCIATION_WEIGHT
        + speed * SPEED_WEIGHT
        + intonation * INTONATION_WEIGHT
    )


def shadowing_feedback(pronunciation: float, speed: float, intonation: float, overall: float) -> str:
    """Grade message plus a tip for the weakest sub-score when it is below 75."""
    parts = [_GRADE_MESSAGES[grade_for(overall)]]
    lowest = min(pronunciation, speed, intonation)
    if lowest < TIP_THRESHOLD:
        if lowest == pronunciation:
            parts.append("Pay attention to individual sound pronunciation.")
        elif lowest == speed:
            parts.append("Try to match the natural speaking pace.")
        else:
            parts.append("Focus on the pitch and rhythm patterns.")
    return " ".join(parts)


def _detailed_feedback(
    pronunciation: float,
    speed: float,
    intonation: float,
    transcription: str,
    phonemes: List[PhonemeScore],
) -> DetailedShadowingFeedback:
    strengths = []
    if pronunciation >= STRENGTH_THRESHOLD:
        strengths.append("Clear pronunciation of most sounds")
    if speed >= STRENGTH_THRESHOLD:
        strengths.append("Good speaking pace")
    if intonation >= STRENGTH_THRESHOLD:
        strengths.append("Natural intonation pattern")
    if not strengths:
        strengths.append("Showing effort and consistency")

    improvements = []
    if pronunciation < STRENGTH_THRESHOLD:
        improvements.append("Practice difficult sounds (e.g., っ, ん, long vowels)")
    if speed < STRENGTH_THRESHOLD:
        improvements.append("Work on matching the natural speaking rhythm")
    if intonation < STRENGTH_THRESHOLD:
        improvements.append("Pay attention to pitch accent patterns")

    tips = [
        "Listen to the segment multiple times before recording",
        "Record yourself and compare with the original",
    ]
    if pronunciation < TIP_THRESHOLD:
        tips.append("Break down difficult words into syllables")
    if speed < TIP_THRESHOLD:
        tips.append("Start slow and gradually increase speed")

    return DetailedShadowingFeedback(
        strengths=tuple(strengths),
        improvements=tuple(improvements),
        specific_tips=tuple(tips),
        transcribed_text=transcription,
        phoneme_analysis=tuple(phonemes),
    )


def build_shadowing_evaluation(
    pronunciation: float,
    speed: float,
    intonation: float,
    transcription: str,
    phonemes: List[PhonemeScore],
) -> ShadowingEvaluation:
    """Assemble an evaluation from three sub-scores, clamping each into [0, 100]."""
    pronunciation = clamp_score(pronunciation)
    speed = clamp_score(speed)
    intonation = clamp_score(intonation)
    overall = overall_shadowing_score(pronunciation, speed, intonation)
    return ShadowingEvaluation(
        pronunciation_score=pronunciation,
        speed_score=speed,
        intonation_score=intonation,
        overall_score=overall,
        feedback_text=shadowing_feedback(pronunciation, speed, intonation, overall),
        detailed_feedback=_detailed_feedback(pronunciation, speed, intonation, transcription, phonemes),
    )


class ShadowingEvaluator(ABC):
    """Strategy interface for shadowing evaluation."""

    @abstractmethod
    def evaluate(self, audio_reference: str, reference_text: str) -> ShadowingEvaluation:
        raise NotImplementedError("Subclasses must implement this method")


class RandomShadowingScorer(ShadowingEvaluator):
    """Simulates an evaluation around a shared base score in [70, 90] with ±10 noise."""

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def _noise(self) -> float:
        return (self.rng.random() - 0.5) * 2 * SCORE_NOISE

    def _simulate_transcription(self, reference_text: str) -> str:
        if self.rng.random() > 0.3:
            return reference_text
        return reference_text.replace("です", "でした").replace("ます", "ました")

    def _phoneme_analysis(self, reference_text: str) -> List[PhonemeScore]:
        found = [p for p in TRACKED_PHONEMES if p in reference_text][:MAX_PHONEMES]
        return [PhonemeScore(p, p, p, 75 + self.rng.random() * 25) for p in found]

    def evaluate(self, audio_reference: str, reference_text: str) -> ShadowingEvaluation:
        base = BASE_SCORE_MIN + self.rng.random() * BASE_SCORE_SPAN
        pronunciation = base + self._noise()
        speed = base + self._noise()
        intonation = base + self._noise()
        evaluation = build_shadowing_evaluation(
            pronunciation,
            speed,
            intonation,
            self._simulate_transcription(reference_text),
            self._phoneme_analysis(reference_text),
        )
        logger.debug(f"Shadowing {audio_reference} scored {evaluation.overall_score:.1f}")
        return evaluation


class FixedShadowingScorer(ShadowingEvaluator):
    """Deterministic scorer returning preset sub-scores."""

    def __init__(self, pronunciation: float = 80.0, speed: float = 80.0, intonation: float = 80.0):
        self.pronunciation = pronunciation
        self.speed = speed
        self.intonation = intonation

    def evaluate(self, audio_reference: str, reference_text: str) -> ShadowingEvaluation:
        found = [p for p in TRACKED_PHONEMES if p in reference_text][:MAX_PHONEMES]
        phonemes = [PhonemeScore(p, p, p, clamp_score(self.pronunciation)) for p in found]
        return build_shadowing_evaluation(
            self.pronunciation, self.speed, self.intonation, reference_text, phonemes
        )
