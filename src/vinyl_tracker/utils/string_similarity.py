"""String normalization and Levenshtein similarity for metadata matching."""

from __future__ import annotations

import re
import unicodedata

# Unicode word characters: letters without a decomposition ("ß", CJK) are kept
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Normalize a metadata string for comparison.

    Lowercases, strips diacritics, turns punctuation into spaces and
    collapses whitespace. ``"Sigur Rós!"`` becomes ``"sigur ros"``.
    """
    text = unicodedata.normalize("NFD", text.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance between two strings.

    Returns the minimum number of single-character edits (insertions,
    deletions, or substitutions) required to change one string into another.
    """
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    previous = list(range(len(s2) + 1))
    current = [0] * (len(s2) + 1)

    for i, c1 in enumerate(s1):
        current[0] = i + 1
        for j, c2 in enumerate(s2):
            cost = 0 if c1 == c2 else 1
            current[j + 1] = min(current[j] + 1, previous[j + 1] + 1, previous[j] + cost)
        previous, current = current, previous

    return previous[len(s2)]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """Normalized Levenshtein similarity of two raw strings (0.0 to 1.0)."""
    if s1 == s2:
        return 1.0
    max_len = max(len(s1), len(s2))
    distance = levenshtein_distance(s1, s2)
    return 1.0 - (distance / max_len)


def calculate_similarity(a: str, b: str) -> float:
    """Similarity of two metadata strings after normalization.

    Two empty strings are identical (1.0); one empty string never matches
    anything (0.0).
    """
    norm_a = normalize(a or "")
    norm_b = normalize(b or "")

    if not norm_a and not norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    return levenshtein_similarity(norm_a, norm_b)
