"""
Edit-distance similarity between normalized names.
"""

import math
import sys

from rapidfuzz.distance import Levenshtein


def edit_distance(a: str, b: str) -> int:
    """Unit-cost insertion/deletion/substitution distance."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """
    Similarity percentage in [0, 100].

    100 * (max_len - distance) / max_len. Two empty strings are identical
    and score 100.
    """
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 100.0
    return 100.0 * (max_length - edit_distance(a, b)) / max_length


def length_window(length: int, threshold: float) -> tuple[int, int]:
    """
    Candidate lengths that could score above `threshold` against a name of `length`.

    A score above t needs the shorter string to exceed t/100 of the longer one,
    so anything outside [floor(length * r), ceil(length / r)] cannot match.
    """
    ratio = threshold / 100.0
    if ratio <= 0:
        return 0, sys.maxsize
    return math.floor(length * ratio), math.ceil(length / ratio)
