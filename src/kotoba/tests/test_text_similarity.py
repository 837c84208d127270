"""Tests for edit-distance primitives."""
import pytest
from faker import Faker

from kotoba.services.text_similarity import (
    character_overlap,
    levenshtein_distance,
    positional_matches,
    similarity_ratio,
)

fake = Faker()


@pytest.mark.parametrize("a, b, expected", [
    ("", "", 0),
    ("", "abc", 3),
    ("kitten", "sitting", 3),
    ("食べる", "食ベる", 1),
    ("おはよう", "おはようございます", 5),
])
def test_levenshtein_distance(a, b, expected):
    """Test known edit distances."""
    assert levenshtein_distance(a, b) == expected


def test_levenshtein_is_symmetric_and_zero_on_itself():
    """Test distance symmetry and identity on random text."""
    for _ in range(20):
        a, b = fake.pystr(max_chars=12), fake.pystr(max_chars=12)
        assert levenshtein_distance(a, b) == levenshtein_distance(b, a)
        assert levenshtein_distance(a, a) == 0


def test_similarity_ratio_fixed_points():
    """Test the empty string rules."""
    assert similarity_ratio("", "") == 1.0
    assert similarity_ratio("", "x") == 0.0
    assert similarity_ratio("x", "") == 0.0
    assert similarity_ratio("ことば", "ことば") == 1.0


def test_similarity_ratio_uses_longer_length():
    """Test ratio normalization by the longer string."""
    assert similarity_ratio("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert 0.0 <= similarity_ratio(fake.word(), fake.word()) <= 1.0


def test_character_overlap():
    """Test distinct character overlap against the second argument."""
    assert character_overlap("おはよう", "おはようございます") == pytest.approx(4 / 9)
    assert character_overlap("", "") == 1.0
    assert character_overlap("a", "") == 0.0
    assert character_overlap("", "a") == 0.0


def test_positional_matches():
    """Test aligned matches only count within the shorter string."""
    assert positional_matches("abcd", "abxdef") == 3
    assert positional_matches("", "abc") == 0
