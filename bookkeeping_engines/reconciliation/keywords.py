"""Keyword extraction and overlap scoring for description-based matching."""

from __future__ import annotations

import re

STOP_WORDS: frozenset[str] = frozenset(
    {"the", "a", "an", "to", "from", "for", "of", "in", "on"}
)

MIN_KEYWORD_LENGTH = 3

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def extract_keywords(description: str | None) -> tuple[str, ...]:
    """
    Meaningful words of a bank description, in first-seen order.

    Lowercases, drops punctuation (``"ABC-Traders"`` becomes
    ``"abctraders"``), keeps words of 3+ characters that are not stop
    words, and removes duplicates.
    """
    if not description:
        return ()
    words = _NON_WORD.sub("", description.lower()).split()
    seen: dict[str, None] = {}
    for word in words:
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return tuple(seen)


def keyword_overlap(keywords: tuple[str, ...], text: str | None) -> int:
    """How many of ``keywords`` occur (as substrings) in ``text``."""
    haystack = (text or "").lower()
    return sum(1 for kw in keywords if kw in haystack)
