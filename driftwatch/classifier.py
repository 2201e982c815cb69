from __future__ import annotations

from driftwatch.schemas import ContentItem, DocumentClass

# Structural document types (Federal Register and friends)
TYPE_CLASS_MAP: dict[str, DocumentClass] = {
    "presidential document": DocumentClass.EXECUTIVE_ORDER,
    "executive order": DocumentClass.EXECUTIVE_ORDER,
    "presidential memorandum": DocumentClass.PRESIDENTIAL_MEMORANDUM,
    "rule": DocumentClass.FINAL_RULE,
    "final rule": DocumentClass.FINAL_RULE,
    "proposed rule": DocumentClass.PROPOSED_RULE,
    "notice": DocumentClass.NOTICE,
}

# Matched against agency or link, first hit wins
SOURCE_CLASS_PATTERNS: list[tuple[str, DocumentClass]] = [
    ("supreme court", DocumentClass.COURT_OPINION),
    ("scotus", DocumentClass.COURT_OPINION),
    ("uscourts", DocumentClass.COURT_OPINION),
    ("gao", DocumentClass.REPORT),
    ("government accountability", DocumentClass.REPORT),
    ("inspector general", DocumentClass.REPORT),
    ("cbo", DocumentClass.REPORT),
    ("congressional research", DocumentClass.REPORT),
    ("department of defense", DocumentClass.PRESS_RELEASE),
    ("dod", DocumentClass.PRESS_RELEASE),
    ("white house", DocumentClass.PRESS_RELEASE),
    ("whitehouse", DocumentClass.PRESS_RELEASE),
]

TITLE_CLASS_PATTERNS: list[tuple[str, DocumentClass]] = [
    ("executive order", DocumentClass.EXECUTIVE_ORDER),
    ("presidential memorandum", DocumentClass.PRESIDENTIAL_MEMORANDUM),
]


def classify_document(item: ContentItem) -> DocumentClass:
    """Map an item to its instrument type.

    Precedence is structural type, then agency/link, then title.  A "Notice"
    whose title mentions an executive order is still a notice.
    """
    declared = (item.type or "").strip().lower()
    if declared in TYPE_CLASS_MAP:
        return TYPE_CLASS_MAP[declared]

    agency = item.agency.lower()
    link = item.link.lower()
    for pattern, cls in SOURCE_CLASS_PATTERNS:
        if pattern in agency or pattern in link:
            return cls

    title = item.title.lower()
    for pattern, cls in TITLE_CLASS_PATTERNS:
        if pattern in title:
            return cls

    return DocumentClass.UNKNOWN
