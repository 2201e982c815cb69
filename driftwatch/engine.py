"""Keyword tier & suppression engine.

``scan_items`` turns a batch of items into surviving keyword matches per tier;
``analyze_content`` derives a status from those counts under the
corroboration policy; ``score_document`` produces the per-document audit row
the weekly aggregator consumes.

Corroboration policy
--------------------
- two or more distinct capture-tier matches: Capture
- one capture-tier match from an authoritative agency: Capture
- one capture-tier match otherwise: Drift, needs corroboration
- two or more distinct drift-tier matches: Drift
- ``warning_escalation_count`` distinct warning matches: Drift
- one drift-tier match, or any warnings: Warning
- nothing: volume gates, then Stable

A drift keyword that recurs across items, or sits next to pattern language
("systematic", "pattern of" ...), is promoted to the capture tier and counts
as one capture match.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from driftwatch.aggregator import parse_date, week_of
from driftwatch.classifier import classify_document
from driftwatch.config import Settings, get_settings
from driftwatch.matching import (
    HitOutcome,
    check_hit,
    context_snippet,
    find_phrase,
    iter_hits,
)
from driftwatch.rules import CategoryRules, RuleBook, get_rulebook
from driftwatch.schemas import (
    TIERS_DESCENDING,
    AssessmentDetail,
    AssessmentResult,
    ContentItem,
    DocumentScore,
    KeywordMatch,
    MatchProvenance,
    SeverityTier,
    StatusLevel,
    SuppressedMatch,
)
from driftwatch.scoring import compute_final_score, compute_severity_score

log = logging.getLogger(__name__)


@dataclass
class TierScan:
    matches: list[KeywordMatch] = field(default_factory=list)
    suppressed: list[SuppressedMatch] = field(default_factory=list)
    items_reviewed: int = 0

    def by_tier(self, tier: SeverityTier) -> list[KeywordMatch]:
        return [m for m in self.matches if m.tier == tier]

    def count(self, tier: SeverityTier) -> int:
        return len(self.by_tier(tier))

    @property
    def has_authoritative(self) -> bool:
        return any(m.provenance == MatchProvenance.AUTHORITATIVE for m in self.matches)

    @property
    def dominant_tier(self) -> SeverityTier | None:
        for tier in TIERS_DESCENDING:
            if self.count(tier):
                return tier
        return None


@dataclass
class _Hit:
    keyword: str
    tier: SeverityTier
    base_tier: SeverityTier
    authoritative: bool
    source: str
    context: str
    items: set[int] = field(default_factory=set)
    pattern_language: bool = False

    def outranks(self, other: _Hit) -> bool:
        if self.authoritative != other.authoritative:
            return self.authoritative
        return self.tier.rank > other.tier.rank


def scan_items(
    category: str,
    items: list[ContentItem],
    rules: RuleBook | None = None,
    settings: Settings | None = None,
) -> TierScan:
    book = rules or get_rulebook()
    s = settings or get_settings()
    valid = [i for i in items if i.is_valid]
    cat_rules = book.category(category)
    scan = TierScan(items_reviewed=len(valid))
    if cat_rules is None:
        return scan

    hits: dict[str, _Hit] = {}
    for idx, item in enumerate(valid):
        text = item.text
        authoritative = book.is_high_authority(item.agency)
        pattern_language = find_phrase(text, book.pattern_terms) is not None
        for tier in TIERS_DESCENDING:
            for keyword in cat_rules.keywords.for_tier(tier):
                hit = _first_surviving_hit(
                    scan, book, s, category, keyword, tier, item, text,
                )
                if hit is None:
                    continue
                effective, context = hit
                candidate = _Hit(
                    keyword=keyword,
                    tier=effective,
                    base_tier=tier,
                    authoritative=authoritative,
                    source=item.title,
                    context=context,
                )
                existing = hits.get(keyword)
                if existing is None:
                    hits[keyword] = existing = candidate
                elif candidate.outranks(existing):
                    candidate.items = existing.items
                    candidate.pattern_language = existing.pattern_language
                    hits[keyword] = existing = candidate
                existing.items.add(idx)
                existing.pattern_language = existing.pattern_language or pattern_language

    for hit in hits.values():
        scan.matches.append(_to_match(hit, s))
    scan.matches.sort(key=lambda m: -m.tier.rank)
    return scan


def _first_surviving_hit(
    scan: TierScan,
    book: RuleBook,
    s: Settings,
    category: str,
    keyword: str,
    tier: SeverityTier,
    item: ContentItem,
    text: str,
) -> tuple[SeverityTier, str] | None:
    """Effective tier and context of the first occurrence that survives checks.

    Records a SuppressedMatch when every occurrence in the item is dropped.
    """
    rule = book.suppression_for(category, keyword)
    dropped = None
    for m in iter_hits(text, keyword):
        check = check_hit(
            text, m.start(), m.end(),
            suppress_terms=rule.suppress_if_any if rule else [],
            downweight_terms=rule.downweight_if_any if rule else [],
            negation_patterns=book.negation_patterns,
            before=s.negation_window_before,
            after=s.negation_window_after,
        )
        if check.outcome in (HitOutcome.SUPPRESS, HitOutcome.NEGATED):
            dropped = dropped or check
            continue
        effective = tier.demote() if check.outcome == HitOutcome.DOWNWEIGHT else tier
        return effective, context_snippet(text, m.start(), m.end(), s.context_radius)

    if dropped is not None:
        if dropped.outcome == HitOutcome.SUPPRESS:
            rule_name = f"{category}:{keyword}"
            reason = f'suppressed by co-occurring term "{dropped.term}"'
        else:
            rule_name = "negation"
            reason = f'negated by "{dropped.term}"'
        scan.suppressed.append(SuppressedMatch(
            keyword=keyword, tier=tier, rule=rule_name, reason=reason, source=item.title,
        ))
    return None


def _to_match(hit: _Hit, s: Settings) -> KeywordMatch:
    tier = hit.tier
    provenance = MatchProvenance.AUTHORITATIVE if hit.authoritative else MatchProvenance.PLAIN
    repeated = len(hit.items) >= s.pattern_min_items or hit.pattern_language
    # Only configured drift keywords are promoted; a demoted capture stays demoted
    if tier == hit.base_tier == SeverityTier.DRIFT and repeated:
        tier = SeverityTier.CAPTURE
        if provenance == MatchProvenance.PLAIN:
            provenance = MatchProvenance.REPEATED_PATTERN
    return KeywordMatch(
        keyword=hit.keyword,
        tier=tier,
        provenance=provenance,
        weight=s.tier_weight(tier),
        source=hit.source,
        context=hit.context,
    )


# ---------------------------------------------------------------------------
# Status derivation
# ---------------------------------------------------------------------------


def analyze_content(
    items: list[ContentItem],
    category: str,
    rules: RuleBook | None = None,
    settings: Settings | None = None,
) -> AssessmentResult:
    book = rules or get_rulebook()
    s = settings or get_settings()

    cat_rules = book.category(category)
    if cat_rules is None:
        log.warning("No assessment rules configured for category %s", category)
        return AssessmentResult(
            status=StatusLevel.WARNING,
            reason=f"No assessment rules configured for category {category}",
        )

    special = _special_case(items, cat_rules)
    if special is not None:
        return special

    valid = [i for i in items if i.is_valid]
    if not valid:
        return AssessmentResult(
            status=StatusLevel.STABLE,
            reason="Not enough information to assess: no valid items were available",
            detail=AssessmentDetail(items_reviewed=0),
        )

    scan = scan_items(category, valid, book, s)
    status, reason = _derive_status(scan, cat_rules, s)
    detail = AssessmentDetail(
        capture_count=scan.count(SeverityTier.CAPTURE),
        drift_count=scan.count(SeverityTier.DRIFT),
        warning_count=scan.count(SeverityTier.WARNING),
        suppressed_count=len(scan.suppressed),
        items_reviewed=scan.items_reviewed,
        has_authoritative=scan.has_authoritative,
        dominant_tier=scan.dominant_tier,
        keyword_matches=scan.matches,
    )
    return AssessmentResult(
        status=status,
        reason=reason,
        matches=[m.label for m in scan.matches],
        detail=detail,
    )


def _special_case(items: list[ContentItem], cat_rules: CategoryRules) -> AssessmentResult | None:
    for case in cat_rules.special_cases:
        for item in items:
            if case.triggered_by(item.title, item.note):
                return AssessmentResult(status=case.status, reason=case.reason, matches=[case.match])
    return None


def _join(matches: list[KeywordMatch], limit: int = 3) -> str:
    shown = ", ".join(m.label for m in matches[:limit])
    if len(matches) > limit:
        shown += f" and {len(matches) - limit} more"
    return shown


def _derive_status(
    scan: TierScan, cat_rules: CategoryRules, s: Settings,
) -> tuple[StatusLevel, str]:
    captures = scan.by_tier(SeverityTier.CAPTURE)
    drifts = scan.by_tier(SeverityTier.DRIFT)
    warnings = scan.by_tier(SeverityTier.WARNING)

    if len(captures) >= 2:
        return StatusLevel.CAPTURE, (
            f"Multiple serious warning signs corroborate each other ({len(captures)}): {_join(captures)}"
        )
    if len(captures) == 1:
        only = captures[0]
        if only.provenance == MatchProvenance.AUTHORITATIVE:
            return StatusLevel.CAPTURE, (
                f"Serious warning sign reported by an authoritative source: {only.keyword}"
            )
        return StatusLevel.DRIFT, (
            f"Single serious warning sign ({only.label}) needs corroboration from additional sources"
        )
    if len(drifts) >= 2:
        return StatusLevel.DRIFT, f"Multiple concerning patterns detected ({len(drifts)}): {_join(drifts)}"
    if len(warnings) >= s.warning_escalation_count:
        return StatusLevel.DRIFT, (
            f"Accumulating warning signs ({len(warnings)}) suggest sustained pressure: {_join(warnings)}"
        )
    if len(drifts) == 1:
        return StatusLevel.WARNING, f"One concerning pattern detected: {drifts[0].keyword}"
    if warnings:
        return StatusLevel.WARNING, f"Early warning signs detected ({len(warnings)}): {_join(warnings)}"

    volume = cat_rules.volume_threshold
    if volume is not None:
        if scan.items_reviewed >= volume.capture:
            return StatusLevel.DRIFT, f"Unusually high volume of activity ({scan.items_reviewed} items)"
        if scan.items_reviewed >= volume.drift:
            return StatusLevel.WARNING, f"Elevated volume of activity ({scan.items_reviewed} items)"

    return StatusLevel.STABLE, f"No warning signs detected across {scan.items_reviewed} items reviewed"


# ---------------------------------------------------------------------------
# Per-document scoring
# ---------------------------------------------------------------------------


def score_document(
    item: ContentItem,
    category: str,
    rules: RuleBook | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> DocumentScore:
    s = settings or get_settings()
    now = now or datetime.now(UTC)
    scan = scan_items(category, [item], rules, s)
    capture = scan.count(SeverityTier.CAPTURE)
    drift = scan.count(SeverityTier.DRIFT)
    warning = scan.count(SeverityTier.WARNING)

    severity = compute_severity_score(capture, drift, warning, s)
    doc_class = classify_document(item)
    published = parse_date(item.pub_date)
    if item.pub_date and published is None:
        log.warning("Unparseable publication date %r on %s; bucketing by scoring time", item.pub_date, item.link)

    return DocumentScore(
        url=item.link or item.title,
        category=category,
        title=item.title,
        severity_score=severity,
        final_score=compute_final_score(severity, doc_class, s),
        capture_count=capture,
        drift_count=drift,
        warning_count=warning,
        suppressed_count=len(scan.suppressed),
        document_class=doc_class,
        class_multiplier=s.class_multiplier(doc_class),
        is_high_authority=(rules or get_rulebook()).is_high_authority(item.agency),
        matches=scan.matches,
        suppressed=scan.suppressed,
        week_of=week_of(published or now),
        published_at=published.isoformat() if published else None,
        scored_at=now.isoformat(),
    )


def score_document_batch(
    items: list[ContentItem],
    category: str,
    rules: RuleBook | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> list[DocumentScore]:
    return [score_document(i, category, rules, settings, now) for i in items if i.is_valid]
