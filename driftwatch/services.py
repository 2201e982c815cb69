"""Orchestration shared by the API and batch jobs.

Functions taking a ``Session`` never commit; the caller owns the transaction.
Read paths degrade to empty or zeroed output when the store is unavailable.
"""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from driftwatch.aggregator import aggregate_scores, compute_cumulative_from_weeks, week_of
from driftwatch.ai import LLMClient, fetch_ai_opinion, fetch_counter_evidence
from driftwatch.config import Settings, get_settings
from driftwatch.convergence import compute_convergence_series
from driftwatch.engine import analyze_content
from driftwatch.evidence import MAX_EVIDENCE, categorize_evidence, keyword_counter_evidence
from driftwatch.models import AssessmentRow, DocumentScoreRow, WeeklyAggregateRow
from driftwatch.reconcile import resolve_downgrade
from driftwatch.rules import RuleBook, get_rulebook
from driftwatch.schemas import (
    CategorySnapshot,
    ContentItem,
    ConvergencePoint,
    CumulativeScores,
    DocumentScore,
    EnhancedAssessment,
    EvidenceItem,
    KeywordMatch,
    ReviewDecision,
    ReviewItem,
    StatusLevel,
    SuppressedMatch,
    WeekScore,
    WeeklyAggregate,
)
from driftwatch.scoring import calculate_confidence
from driftwatch.trends import calculate_trends, count_keywords_in_items, detect_anomalies
from driftwatch.utils import dump_models, json_parse

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enhanced assessment
# ---------------------------------------------------------------------------


def _merge_evidence(existing: list[EvidenceItem], texts: list[str], direction: str) -> list[EvidenceItem]:
    merged = list(existing)
    seen = {e.text for e in merged}
    for text in texts:
        if text and text not in seen:
            merged.append(EvidenceItem(text=text, direction=direction))
            seen.add(text)
    return merged[:MAX_EVIDENCE]


async def enhanced_assessment(
    items: list[ContentItem],
    category: str,
    client: LLMClient | None = None,
    *,
    baseline_counts: dict[str, float] | None = None,
    rules: RuleBook | None = None,
    settings: Settings | None = None,
) -> EnhancedAssessment:
    """Keyword result, optionally tempered by an AI opinion that may only lower it.

    Without a client (or when the provider fails) the result is keyword-only
    and the AI-agreement coverage factor stays at its neutral default.
    """
    book = rules or get_rulebook()
    s = settings or get_settings()

    keyword_result = analyze_content(items, category, book, s)
    evidence_for, evidence_against = categorize_evidence(items, keyword_result.status)

    cat_rules = book.category(category)
    category_title = (cat_rules.title if cat_rules else "") or category
    opinion = None
    if client is not None and cat_rules is not None:
        opinion = await fetch_ai_opinion(
            client, category, category_title, items, keyword_result,
            timeout=s.ai_timeout_seconds, max_items=s.ai_max_items,
        )

    status = keyword_result.status
    reason = keyword_result.reason
    downgrade = None
    review_reasoning = None
    how_we_could_be_wrong: list[str] = []
    consensus_note = None
    ai_result = None

    if opinion is not None:
        ai_result = opinion.result
        downgrade = resolve_downgrade(
            keyword_result.status, ai_result.status, ai_result.confidence,
            s.downgrade_confidence_threshold,
        )
        status = downgrade.final_status
        if downgrade.downgrade_applied:
            reason = ai_result.reasoning or reason
        if downgrade.flagged_for_review:
            review_reasoning = ai_result.reasoning
        how_we_could_be_wrong = list(opinion.response.how_we_could_be_wrong)
        evidence_for = _merge_evidence(evidence_for, opinion.response.evidence_for, "concerning")
        evidence_against = _merge_evidence(evidence_against, opinion.response.evidence_against, "reassuring")
        if ai_result.status == keyword_result.status:
            consensus_note = (
                f"Both keyword analysis and AI ({ai_result.provider}) agree: {keyword_result.status.value}"
            )
        else:
            consensus_note = (
                f"Keyword analysis says {keyword_result.status.value}, AI ({ai_result.provider}) says "
                f"{ai_result.status.value}. {downgrade.reason}."
            )

    if (
        client is not None
        and len(how_we_could_be_wrong) < 2
        and keyword_result.status in (StatusLevel.DRIFT, StatusLevel.CAPTURE)
    ):
        points = await fetch_counter_evidence(
            client, category_title, keyword_result, timeout=s.ai_timeout_seconds,
        )
        how_we_could_be_wrong = points or how_we_could_be_wrong
    if not how_we_could_be_wrong:
        how_we_could_be_wrong = keyword_counter_evidence(keyword_result.status)

    coverage, factors = calculate_confidence(
        items, keyword_result, ai_result.status if ai_result else None, s, book,
    )

    trend_anomalies = None
    if baseline_counts is not None:
        current = count_keywords_in_items(items, category, book)
        trend_anomalies = detect_anomalies(calculate_trends(current, baseline_counts, category, s))

    return EnhancedAssessment(
        category=category,
        status=status,
        reason=reason,
        matches=list(keyword_result.matches),
        keyword_result=keyword_result,
        ai_result=ai_result,
        downgrade=downgrade,
        review_reasoning=review_reasoning,
        data_coverage=coverage,
        data_coverage_factors=factors,
        evidence_for=evidence_for[:MAX_EVIDENCE],
        evidence_against=evidence_against[:MAX_EVIDENCE],
        how_we_could_be_wrong=how_we_could_be_wrong[:MAX_EVIDENCE],
        consensus_note=consensus_note,
        assessed_at=datetime.now(UTC).isoformat(),
        trend_anomalies=trend_anomalies,
    )


def record_assessment(session: Session, assessment: EnhancedAssessment) -> AssessmentRow:
    """Persist an assessment snapshot (caller must commit).

    A snapshot whose downgrade was flagged lands in the review queue.
    """
    ai = assessment.ai_result
    row = AssessmentRow(
        category=assessment.category,
        status=assessment.status.value,
        keyword_status=assessment.keyword_result.status.value,
        reason=assessment.reason,
        data_coverage=assessment.data_coverage,
        flagged_for_review=bool(assessment.downgrade and assessment.downgrade.flagged_for_review),
        ai_provider=ai.provider if ai else "",
        ai_model=ai.model if ai else "",
        ai_status=ai.status.value if ai else None,
        ai_confidence=ai.confidence if ai else None,
        ai_reasoning=ai.reasoning if ai else "",
        week_of=week_of(assessment.assessed_at),
        payload_json=assessment.model_dump_json(),
    )
    session.add(row)
    if row.flagged_for_review:
        log.info(
            "Queued %s for review: keyword %s vs AI %s",
            assessment.category, row.keyword_status, row.ai_status,
        )
    return row


# ---------------------------------------------------------------------------
# Review queue
# ---------------------------------------------------------------------------


def _row_to_review(row: AssessmentRow) -> ReviewItem:
    resolution = None
    if row.resolved_at is not None:
        resolution = ReviewDecision(
            final_status=row.final_status,
            decision=row.review_decision or "approve",
            reason=row.review_reason,
            reviewer=row.reviewer,
        )
    return ReviewItem(
        id=row.id,
        category=row.category,
        status=row.status,
        keyword_status=row.keyword_status,
        ai_status=row.ai_status,
        ai_confidence=row.ai_confidence,
        ai_reasoning=row.ai_reasoning or "",
        reason=row.reason or "",
        week_of=row.week_of,
        assessed_at=row.assessed_at,
        resolved_at=row.resolved_at,
        resolution=resolution,
    )


def _load_reviews(session: Session, resolved: bool) -> list[ReviewItem]:
    stmt = select(AssessmentRow).where(AssessmentRow.flagged_for_review.is_(True))
    if resolved:
        stmt = stmt.where(AssessmentRow.resolved_at.is_not(None)).order_by(
            AssessmentRow.resolved_at.desc(), AssessmentRow.id.desc(),
        )
    else:
        stmt = stmt.where(AssessmentRow.resolved_at.is_(None)).order_by(AssessmentRow.id.desc())
    try:
        return [_row_to_review(r) for r in session.execute(stmt).scalars()]
    except SQLAlchemyError as exc:
        log.error("Could not read review queue: %s", exc)
        return []


def pending_reviews(session: Session) -> list[ReviewItem]:
    """Flagged assessments nobody has resolved yet, newest first."""
    return _load_reviews(session, resolved=False)


def resolved_reviews(session: Session) -> list[ReviewItem]:
    """Resolved reviews, most recently resolved first."""
    return _load_reviews(session, resolved=True)


def resolve_review(session: Session, review_id: int, decision: ReviewDecision) -> ReviewItem | None:
    """Record a reviewer's decision (caller must commit).

    Returns None when *review_id* is not a pending review. The stored
    assessment status is left as assessed; the decision sits beside it.
    """
    row = session.get(AssessmentRow, review_id)
    if row is None or not row.flagged_for_review or row.resolved_at is not None:
        return None
    row.resolved_at = datetime.now(UTC)
    row.final_status = decision.final_status.value
    row.review_decision = decision.decision
    row.review_reason = decision.reason
    row.reviewer = decision.reviewer
    session.flush()
    log.info(
        "Review %d (%s) resolved as %s by %s",
        review_id, row.category, row.final_status, decision.reviewer or "anonymous",
    )
    return _row_to_review(row)


# ---------------------------------------------------------------------------
# Document scores
# ---------------------------------------------------------------------------

_SCORE_COLUMNS = (
    "category", "title", "severity_score", "final_score", "capture_count",
    "drift_count", "warning_count", "suppressed_count", "class_multiplier",
    "is_high_authority", "week_of", "published_at", "scored_at",
)


def store_document_scores(session: Session, scores: list[DocumentScore]) -> int:
    """Upsert scores keyed by url; last write wins (caller must commit)."""
    if not scores:
        return 0
    urls = [s.url for s in scores]
    existing = {
        row.url: row
        for row in session.execute(
            select(DocumentScoreRow).where(DocumentScoreRow.url.in_(urls))
        ).scalars()
    }
    for score in scores:
        row = existing.get(score.url)
        if row is None:
            row = DocumentScoreRow(url=score.url)
            session.add(row)
            existing[score.url] = row
        for col in _SCORE_COLUMNS:
            setattr(row, col, getattr(score, col))
        row.document_class = score.document_class.value
        row.matches_json = dump_models(score.matches)
        row.suppressed_json = dump_models(score.suppressed)
    session.flush()
    return len(scores)


def _row_to_score(row: DocumentScoreRow) -> DocumentScore:
    return DocumentScore(
        url=row.url,
        document_class=row.document_class,
        matches=[KeywordMatch(**m) for m in json_parse(row.matches_json, [])],
        suppressed=[SuppressedMatch(**m) for m in json_parse(row.suppressed_json, [])],
        **{col: getattr(row, col) for col in _SCORE_COLUMNS},
    )


def load_document_scores(session: Session, category: str | None = None) -> list[DocumentScore]:
    stmt = select(DocumentScoreRow).order_by(DocumentScoreRow.week_of, DocumentScoreRow.url)
    if category:
        stmt = stmt.where(DocumentScoreRow.category == category)
    return [_row_to_score(r) for r in session.execute(stmt).scalars()]


# ---------------------------------------------------------------------------
# Weekly aggregates
# ---------------------------------------------------------------------------

_AGGREGATE_COLUMNS = (
    "total_severity", "document_count", "avg_severity_per_doc", "capture_proportion",
    "drift_proportion", "warning_proportion", "severity_mix", "capture_match_count",
    "drift_match_count", "warning_match_count", "suppressed_match_count",
)


def upsert_weekly_aggregate(session: Session, agg: WeeklyAggregate) -> WeeklyAggregateRow:
    row = session.execute(
        select(WeeklyAggregateRow).where(
            WeeklyAggregateRow.category == agg.category,
            WeeklyAggregateRow.week_of == agg.week_of,
        )
    ).scalar_one_or_none()
    if row is None:
        row = WeeklyAggregateRow(category=agg.category, week_of=agg.week_of)
        session.add(row)
    for col in _AGGREGATE_COLUMNS:
        setattr(row, col, getattr(agg, col))
    row.top_keywords_json = json.dumps(agg.top_keywords)
    return row


def recompute_weekly_aggregates(session: Session, category: str | None = None) -> list[WeeklyAggregate]:
    """Rebuild aggregates from stored document scores (caller must commit).

    Idempotent: the same scores always produce the same rows.
    """
    aggregates = aggregate_scores(load_document_scores(session, category))
    for agg in aggregates:
        upsert_weekly_aggregate(session, agg)
    session.flush()
    log.info("Recomputed %d weekly aggregates (category=%s)", len(aggregates), category or "all")
    return aggregates


def _row_to_aggregate(row: WeeklyAggregateRow) -> WeeklyAggregate:
    return WeeklyAggregate(
        category=row.category,
        week_of=row.week_of,
        top_keywords=json_parse(row.top_keywords_json, []),
        **{col: getattr(row, col) for col in _AGGREGATE_COLUMNS},
    )


def load_weekly_series(
    session: Session, category: str, start: str | None = None, end: str | None = None,
) -> list[WeeklyAggregate]:
    """Aggregates for one category ordered oldest first; [] if the store fails."""
    stmt = (
        select(WeeklyAggregateRow)
        .where(WeeklyAggregateRow.category == category)
        .order_by(WeeklyAggregateRow.week_of)
    )
    if start:
        stmt = stmt.where(WeeklyAggregateRow.week_of >= start)
    if end:
        stmt = stmt.where(WeeklyAggregateRow.week_of <= end)
    try:
        return [_row_to_aggregate(r) for r in session.execute(stmt).scalars()]
    except SQLAlchemyError as exc:
        log.error("Could not read weekly series for %s: %s", category, exc)
        return []


def cumulative_scores(
    session: Session, category: str, half_life: float | None = None,
) -> CumulativeScores:
    if half_life is None:
        half_life = get_settings().decay_half_life_weeks
    series = load_weekly_series(session, category)
    weeks = [WeekScore(week_of=a.week_of, total_severity=a.total_severity) for a in series]
    return compute_cumulative_from_weeks(category, weeks, half_life)


def all_cumulative_scores(
    session: Session, half_life: float | None = None, rules: RuleBook | None = None,
) -> dict[str, CumulativeScores]:
    """Cumulative scores for every configured or stored category."""
    book = rules or get_rulebook()
    categories = set(book.categories)
    try:
        categories.update(session.execute(select(WeeklyAggregateRow.category).distinct()).scalars())
    except SQLAlchemyError as exc:
        log.error("Could not list stored categories: %s", exc)
    return {c: cumulative_scores(session, c, half_life) for c in sorted(categories)}


# ---------------------------------------------------------------------------
# Convergence history
# ---------------------------------------------------------------------------


def weekly_convergence(
    session: Session, start: str | None = None, rules: RuleBook | None = None,
) -> list[ConvergencePoint]:
    """Convergence per week from stored assessment snapshots."""
    stmt = select(AssessmentRow).order_by(AssessmentRow.week_of, AssessmentRow.id)
    if start:
        stmt = stmt.where(AssessmentRow.week_of >= start)
    try:
        rows = list(session.execute(stmt).scalars())
    except SQLAlchemyError as exc:
        log.error("Could not read assessment history: %s", exc)
        return []

    week_map: dict[str, dict[str, list[str]]] = defaultdict(lambda: defaultdict(list))
    for row in rows:
        try:
            assessment = EnhancedAssessment.model_validate_json(row.payload_json)
        except ValueError:
            log.warning("Skipping unreadable assessment snapshot %s", row.id)
            continue
        week_map[row.week_of][row.category].extend(CategorySnapshot.from_assessment(assessment).texts())
    return compute_convergence_series(
        {week: dict(cats) for week, cats in week_map.items()}, rules,
    )
