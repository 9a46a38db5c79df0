"""
Process Mapping Studio
Similarity scoring for artifact identity resolution and step matching.

Scores live in [0, 1]:
    - identical (after lowercasing and trimming)  → 1.0
    - one string contains the other               → CONTAINMENT_SCORE
    - otherwise                                   → 1 - edit_distance / max_len

Thresholds are exclusive: ``best_match`` accepts a candidate only when its
score is strictly greater than the threshold.
"""

from collections.abc import Callable, Iterable
from typing import TypeVar

from rapidfuzz.distance import Levenshtein

T = TypeVar("T")

CONTAINMENT_SCORE = 0.8

Scorer = Callable[[str, str], float]


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def similarity(a: str | None, b: str | None) -> float:
    """Case- and whitespace-insensitive similarity of two labels."""
    s1, s2 = _normalize(a), _normalize(b)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE
    return Levenshtein.normalized_similarity(s1, s2)


def best_match(
    query: str | None,
    candidates: Iterable[T],
    key: Callable[[T], str],
    threshold: float,
    scorer: Scorer = similarity,
) -> tuple[T, float] | None:
    """Return ``(candidate, score)`` for the best candidate scoring above *threshold*.

    Ties keep the earliest candidate, so callers control precedence through
    ordering (e.g. most recent first).
    """
    best: tuple[T, float] | None = None
    for candidate in candidates:
        score = scorer(query, key(candidate))
        if best is None or score > best[1]:
            best = (candidate, score)
    if best is not None and best[1] > threshold:
        return best
    return None
