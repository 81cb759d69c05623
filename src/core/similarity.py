"""Normalized edit-distance similarity (core domain)."""

from __future__ import annotations

import Levenshtein


def levenshtein_distance(first: str, second: str) -> int:
    """Return the unit-cost insertion/deletion/substitution distance."""

    return Levenshtein.distance(first, second)


def similarity(first: str, second: str) -> float:
    """Return a similarity in [0.0, 1.0] relative to the longer string.

    Two empty strings are identical, so they score 1.0.
    """

    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(first, second)) / float(longest)
