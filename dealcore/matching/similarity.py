"""
Edit-distance string similarity shared by facility matching and COA matching.
"""
from typing import Iterable

from rapidfuzz.distance import Levenshtein


def similarity(a: str, b: str) -> float:
    """
    1 - levenshtein(a, b) / max(len(a), len(b)).

    Returns 0.0 when both strings are empty (no evidence either way) and 1.0
    for identical non-empty strings. Symmetric.
    """
    a = a or ""
    b = b or ""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    if a == b:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def word_overlap(
    words: Iterable[str],
    other_words: Iterable[str],
    min_length: int = 3,
) -> list[str]:
    """Significant words present in both sequences, in order of the first."""
    other = set(other_words)
    return [w for w in words if len(w) >= min_length and w in other]
