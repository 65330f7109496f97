"""Edit-distance similarity between source segments.

Scores are integer percentages: ``100 * (1 - distance / longest)``, rounded,
computed on whitespace-normalized, lowercased text. Display text passed in is
never modified.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from tm_core.tm.normalize import normalize_text


def edit_distance(left: str, right: str) -> int:
    return Levenshtein.distance(left, right)


def _comparable(text: str | None) -> str:
    return normalize_text(text).lower()


def max_possible_percent(left_length: int, right_length: int) -> int:
    """Best score two strings of these lengths can reach.

    The distance is never below the length difference, which caps the score
    at ``shorter / longer``.
    """
    longest = max(left_length, right_length)
    if longest == 0:
        return 100
    return round(100 * min(left_length, right_length) / longest)


def similarity_percent(left: str | None, right: str | None) -> int:
    a = _comparable(left)
    b = _comparable(right)
    if not a and not b:
        return 100
    if not a or not b:
        return 0
    if a == b:
        return 100

    distance = edit_distance(a, b)
    return round(100 * (1 - distance / max(len(a), len(b))))
