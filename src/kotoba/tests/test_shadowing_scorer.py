"""Tests for shadowing evaluation."""
import random

import pytest

from kotoba.services.shadowing_scorer import (
    INTONATION_WEIGHT,
    PRONUNCIATION_WEIGHT,
    SPEED_WEIGHT,
    FixedShadowingScorer,
    RandomShadowingScorer,
    build_shadowing_evaluation,
    shadowing_feedback,
)

REFERENCE = "散歩に行きます"


def test_random_scorer_respects_ranges_and_weights():
    """Test sub-scores and the weighted overall stay within [0, 100]."""
    scorer = RandomShadowingScorer(seed=7)
    for _ in range(200):
        evaluation = scorer.evaluate("audio-ref", REFERENCE)
        for score in (evaluation.pronunciation_score, evaluation.speed_score,
                      evaluation.intonation_score, evaluation.overall_score):
            assert 0.0 <= score <= 100.0
        expected = (
            evaluation.pronunciation_score * PRONUNCIATION_WEIGHT
            + evaluation.speed_score * SPEED_WEIGHT
            + evaluation.intonation_score * INTONATION_WEIGHT
        )
        assert evaluation.overall_score == pytest.approx(expected)


def test_random_scorer_is_reproducible_with_seed():
    """Test that equal seeds give equal evaluations."""
    first = RandomShadowingScorer(seed=42).evaluate("a", REFERENCE)
    second = RandomShadowingScorer(rng=random.Random(42)).evaluate("a", REFERENCE)
    assert first == second


def test_random_scorer_sub_scores_near_base():
    """Test sub-scores fall within base range plus noise."""
    scorer = RandomShadowingScorer(seed=1)
    for _ in range(100):
        evaluation = scorer.evaluate("a", REFERENCE)
        assert 60.0 <= evaluation.pronunciation_score <= 100.0
        assert 60.0 <= evaluation.speed_score <= 100.0


def test_transcription_is_reference_or_past_tense():
    """Test the simulated transcription."""
    scorer = RandomShadowingScorer(seed=3)
    seen = {scorer.evaluate("a", REFERENCE).detailed_feedback.transcribed_text for _ in range(100)}
    assert seen <= {REFERENCE, "散歩に行きました"}


def test_fixed_scorer():
    """Test deterministic scores and phoneme analysis."""
    evaluation = FixedShadowingScorer(90, 80, 70).evaluate("a", "ありがとうございます")
    assert evaluation.overall_score == pytest.approx(90 * 0.45 + 80 * 0.25 + 70 * 0.30)
    assert evaluation.detailed_feedback.transcribed_text == "ありがとうございます"
    phonemes = [p.phoneme for p in evaluation.detailed_feedback.phoneme_analysis]
    assert phonemes == ["あ", "い", "う"]


def test_sub_scores_are_clamped():
    """Test out of range sub-scores are clamped."""
    evaluation = build_shadowing_evaluation(130, -5, 50, "x", [])
    assert evaluation.pronunciation_score == 100.0
    assert evaluation.speed_score == 0.0
    assert 0.0 <= evaluation.overall_score <= 100.0


@pytest.mark.parametrize("scores, tip", [
    ((60, 80, 80), "Pay attention to individual sound pronunciation."),
    ((80, 60, 80), "Try to match the natural speaking pace."),
    ((80, 80, 60), "Focus on the pitch and rhythm patterns."),
])
def test_tip_targets_lowest_sub_score(scores, tip):
    """Test the targeted tip for the weakest area."""
    feedback = shadowing_feedback(*scores, overall=75)
    assert feedback.startswith("Good effort!")
    assert feedback.endswith(tip)


def test_no_tip_when_all_above_threshold():
    """Test feedback without a tip."""
    assert shadowing_feedback(80, 80, 80, overall=80) == "Great job! Your pronunciation is quite good."
