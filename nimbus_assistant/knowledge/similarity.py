"""
String similarity for knowledge-base matching.

Every matcher uses the same policy: case-insensitive Levenshtein similarity,
`(longest - distance) / longest`, so 1.0 means identical and 0.0 means
nothing in common. Distances come from RapidFuzz.
"""

import re
from typing import Iterable, List

from rapidfuzz.distance import Levenshtein

_WORD_RE = re.compile(r"[a-z0-9']+")


def normalize(text) -> str:
    """Lowercase and trim text before comparison; non-text becomes empty."""
    if not isinstance(text, str):
        return ""
    return text.strip().lower()


def score(a: str, b: str) -> float:
    """
    Similarity of two strings in [0, 1].

    Two empty strings are identical (1.0); an empty string against anything
    else scores 0.0.
    """
    a, b = normalize(a), normalize(b)
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    distance = Levenshtein.distance(a, b)
    return (longest - distance) / longest


def contains(haystack: str, needle: str) -> bool:
    """Case-insensitive substring test; an empty needle never matches."""
    needle = normalize(needle)
    return bool(needle) and needle in normalize(haystack)


def words(text: str) -> List[str]:
    """Lowercase word tokens of `text`."""
    return _WORD_RE.findall(normalize(text))


def has_any_word(text: str, candidates: Iterable[str]) -> bool:
    """True when any of `candidates` appears in `text` as a whole word."""
    tokens = set(words(text))
    return any(word in tokens for word in candidates)
