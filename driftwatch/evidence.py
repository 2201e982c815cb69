"""Evidence balance and "how we could be wrong" text for keyword-only results."""
from __future__ import annotations

from pydantic import BaseModel

from driftwatch.schemas import ContentItem, EvidenceItem, KeywordMatch, SeverityTier, StatusLevel

MAX_EVIDENCE = 5

# Plain substring indicators; "cooperat" covers cooperate/cooperation
CONCERNING_INDICATORS = [
    "violated", "illegal", "unlawful", "defied", "refused", "contempt",
    "fired", "removed", "terminated", "blocked", "obstructed", "suppressed",
    "override", "bypass", "circumvent", "undermine", "erode", "weaken",
    "unprecedented", "systematic", "pattern of", "mass",
]

REASSURING_INDICATORS = [
    "upheld", "protected", "restored", "compliance", "cooperat",
    "bipartisan", "transparency", "accountability", "oversight",
    "independent", "safeguard", "reform", "strengthen",
    "court ordered", "injunction granted", "investigation opened",
]

COUNTER_EVIDENCE: dict[StatusLevel, list[str]] = {
    StatusLevel.CAPTURE: [
        "Keyword matching may trigger on document titles that discuss violations without indicating current violations",
        "Court-related keywords may reflect ongoing litigation rather than actual defiance",
        "High-authority source matches may be from historical or analytical reports rather than new findings",
    ],
    StatusLevel.DRIFT: [
        "Multiple keyword matches may reflect increased reporting rather than increased violations",
        "Regulatory activity patterns may be within normal variation for this time period",
    ],
    StatusLevel.WARNING: [
        "Warning-level keywords often appear in routine government documents",
        "A single drift keyword match may be coincidental rather than indicative of a pattern",
    ],
    StatusLevel.STABLE: [
        "Absence of keyword matches does not guarantee absence of concerning activity",
        "Some forms of power consolidation may not generate detectable keywords",
    ],
}


def categorize_evidence(
    items: list[ContentItem], status: StatusLevel,
) -> tuple[list[EvidenceItem], list[EvidenceItem]]:
    """Split items into (evidence_for, evidence_against) the given status.

    For Stable the reassuring items are the supporting evidence.
    """
    concerning: list[EvidenceItem] = []
    reassuring: list[EvidenceItem] = []
    for item in items:
        if not item.is_valid:
            continue
        text = f"{item.title} {item.summary}".lower()
        bad = sum(1 for w in CONCERNING_INDICATORS if w in text)
        good = sum(1 for w in REASSURING_INDICATORS if w in text)
        title = item.title or "(untitled)"
        source = item.agency or None
        if bad > good and bad > 0:
            concerning.append(EvidenceItem(text=title, direction="concerning", source=source))
        elif good > 0:
            reassuring.append(EvidenceItem(text=title, direction="reassuring", source=source))

    if status == StatusLevel.STABLE:
        return reassuring[:MAX_EVIDENCE], concerning[:MAX_EVIDENCE]
    return concerning[:MAX_EVIDENCE], reassuring[:MAX_EVIDENCE]


def keyword_counter_evidence(status: StatusLevel) -> list[str]:
    return list(COUNTER_EVIDENCE[StatusLevel(status)])


class MatchContext(BaseModel):
    keyword: str
    label: str
    tier: SeverityTier
    matched_in: str


def build_match_contexts(matches: list[KeywordMatch], items: list[ContentItem]) -> list[MatchContext]:
    """Tier and source title for each match, for display next to the status."""
    contexts = []
    for m in matches:
        source = m.source or _find_source(m.keyword, items)
        contexts.append(MatchContext(keyword=m.keyword, label=m.label, tier=m.tier, matched_in=source))
    return contexts


def _find_source(keyword: str, items: list[ContentItem]) -> str:
    needle = keyword.lower()
    for item in items:
        if needle in f"{item.title} {item.summary}".lower():
            return item.title or "(untitled)"
    return "(source not identified)"
