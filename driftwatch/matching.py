"""Whole-word keyword matching and the context checks run around each hit."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Iterator


@lru_cache(maxsize=4096)
def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Case-insensitive whole-word pattern for *keyword*.

    Lookarounds rather than ``\\b`` so keywords that start or end with
    punctuation ("u.s.", "sec. 702") still need a non-word neighbour.
    """
    return re.compile(rf"(?<!\w){re.escape(keyword.strip())}(?!\w)", re.IGNORECASE)


def contains_phrase(text: str, phrase: str) -> bool:
    if not text or not phrase:
        return False
    return keyword_pattern(phrase).search(text) is not None


def find_phrase(text: str, phrases: list[str]) -> str | None:
    """First phrase from *phrases* present in *text*, or None."""
    for phrase in phrases:
        if contains_phrase(text, phrase):
            return phrase
    return None


def find_term(text: str, terms: list[str]) -> str | None:
    """First term occurring anywhere in *text*, case-insensitive substring.

    Co-occurring context terms ("drill", "flood") also cover their inflections.
    """
    lowered = text.lower()
    for term in terms:
        if term and term.lower() in lowered:
            return term
    return None


def iter_hits(text: str, keyword: str) -> Iterator[re.Match[str]]:
    return keyword_pattern(keyword).finditer(text)


def context_snippet(text: str, start: int, end: int, radius: int = 50) -> str:
    lo = max(0, start - radius)
    hi = min(len(text), end + radius)
    snippet = text[lo:hi].strip()
    if lo > 0:
        snippet = "..." + snippet
    if hi < len(text):
        snippet = snippet + "..."
    return snippet


class HitOutcome(str, Enum):
    KEEP = "keep"
    SUPPRESS = "suppress"
    NEGATED = "negated"
    DOWNWEIGHT = "downweight"


@dataclass(frozen=True)
class HitCheck:
    outcome: HitOutcome
    term: str = ""


def check_hit(
    text: str,
    start: int,
    end: int,
    *,
    suppress_terms: list[str],
    downweight_terms: list[str],
    negation_patterns: list[str],
    before: int = 60,
    after: int = 40,
) -> HitCheck:
    """Inspect the window around one keyword hit.

    Suppression and downweight terms are plain substrings of the whole
    window, keyword included.  Negation phrases are whole words looked for
    only around the keyword, so a keyword containing a negating word is not
    cancelled by itself.
    """
    lo = max(0, start - before)
    hi = min(len(text), end + after)
    window = text[lo:hi]

    term = find_term(window, suppress_terms)
    if term:
        return HitCheck(HitOutcome.SUPPRESS, term)

    surrounding = f"{text[lo:start]} {text[end:hi]}"
    term = find_phrase(surrounding, negation_patterns)
    if term:
        return HitCheck(HitOutcome.NEGATED, term)

    term = find_term(window, downweight_terms)
    if term:
        return HitCheck(HitOutcome.DOWNWEIGHT, term)
    return HitCheck(HitOutcome.KEEP)
