"""Completion suggestions for the transaction form.

Each function returns the stored value closest to what was typed, or an empty
string when there is nothing to suggest or the input already matches exactly.
"""
from __future__ import annotations

from typing import Sequence

from rapidfuzz.distance import Levenshtein


def best_match(value: str, candidates: Sequence[str]) -> str:
    """Candidate with the highest normalized Levenshtein similarity.

    Comparison ignores case. Ties keep the earliest candidate.
    """
    needle = value.lower()
    best, best_score = candidates[0], -1.0
    for candidate in candidates:
        score = Levenshtein.normalized_similarity(candidate.lower(), needle)
        if score > best_score:
            best, best_score = candidate, score
    return best


def _complete(value: str, candidates: Sequence[str]) -> str:
    trimmed = value.strip()
    if not trimmed or not candidates:
        return ""
    match = best_match(trimmed, candidates)
    return "" if match == trimmed else match


def autofill_method(value: str, methods: Sequence[str]) -> str:
    return _complete(value, methods)


def autofill_details(value: str, details: Sequence[str]) -> str:
    return _complete(value, details)


def autofill_tags(value: str, tags: Sequence[str]) -> str:
    """Suggestion for the tag being typed, the one after the last comma."""
    if not value.strip():
        return ""
    return _complete(value.split(",")[-1], tags)


def apply_tag_completion(value: str, suggestion: str) -> str:
    """Replace the tag being typed with ``suggestion``."""
    if not suggestion:
        return value
    done = [t.strip() for t in value.split(",")[:-1]]
    return ", ".join(done + [suggestion])
