"""Utility helpers."""

from .string_similarity import (
    calculate_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    normalize,
)

__all__ = [
    "calculate_similarity",
    "levenshtein_distance",
    "levenshtein_similarity",
    "normalize",
]
