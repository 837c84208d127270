"""Edit-distance primitives shared by the scorers.

Callers are responsible for normalization (case folding, whitespace
stripping); these functions compare the strings exactly as given.
"""
from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of unit-cost inserts, deletes and substitutions turning a into b."""
    return Levenshtein.distance(a, b)


def similarity_ratio(a: str, b: str) -> float:
    """Normalized inverse edit distance in [0, 1].

    Two empty strings are identical (1.0); exactly one empty string shares
    nothing with the other (0.0).
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def character_overlap(a: str, b: str) -> float:
    """Share of distinct characters of b that also appear in a, in [0, 1]."""
    reference = set(b)
    if not reference:
        return 1.0 if not a else 0.0
    return len(reference & set(a)) / len(reference)


def positional_matches(a: str, b: str) -> int:
    """Number of positions in the common prefix length where a and b agree."""
    return sum(1 for x, y in zip(a, b) if x == y)
