"""Weekly aggregation and cumulative scoring.

Everything here is pure: the store adapters in ``services`` feed in document
scores or weekly totals and persist what comes out.  Aggregates carry no
wall-clock fields, so recomputing from the same scores is byte-identical.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import UTC, date, datetime, timedelta
from email.utils import parsedate_to_datetime

from driftwatch.config import get_settings
from driftwatch.schemas import CumulativeScores, DocumentScore, SeverityTier, WeekScore, WeeklyAggregate

log = logging.getLogger(__name__)


def parse_date(value: str | date | datetime | None) -> datetime | None:
    """Parse ISO-8601 or RFC 2822 dates into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def week_of(value: str | date | datetime) -> str:
    """ISO date of the Monday (UTC) starting the week containing *value*."""
    dt = parse_date(value)
    if dt is None:
        raise ValueError(f"Unparseable date: {value!r}")
    monday = dt.date() - timedelta(days=dt.weekday())
    return monday.isoformat()


# ---------------------------------------------------------------------------
# Weekly aggregates
# ---------------------------------------------------------------------------


def compute_proportions(capture: int, drift: int, warning: int) -> dict[str, float]:
    total = capture + drift + warning
    if total == 0:
        return {"capture": 0.0, "drift": 0.0, "warning": 0.0}
    return {
        "capture": capture / total,
        "drift": drift / total,
        "warning": warning / total,
    }


def compute_severity_mix(capture: int, drift: int, warning: int) -> float:
    """Average tier rank of all matches, 0 (all warning) .. 2 (all capture)."""
    total = capture + drift + warning
    if total == 0:
        return 0.0
    return (
        capture * SeverityTier.CAPTURE.rank
        + drift * SeverityTier.DRIFT.rank
        + warning * SeverityTier.WARNING.rank
    ) / total


def compute_weekly_aggregate(
    category: str,
    week: str,
    scores: list[DocumentScore],
    top_keywords_limit: int | None = None,
) -> WeeklyAggregate:
    if top_keywords_limit is None:
        top_keywords_limit = get_settings().top_keywords_limit
    # Input order must not affect the result
    scores = sorted(scores, key=lambda s: s.url)

    total = sum(s.final_score for s in scores)
    capture = sum(s.capture_count for s in scores)
    drift = sum(s.drift_count for s in scores)
    warning = sum(s.warning_count for s in scores)
    suppressed = sum(s.suppressed_count for s in scores)
    proportions = compute_proportions(capture, drift, warning)

    keyword_counts: Counter[str] = Counter()
    for s in scores:
        keyword_counts.update(m.keyword for m in s.matches)
    top = sorted(keyword_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_keywords_limit]

    return WeeklyAggregate(
        category=category,
        week_of=week,
        total_severity=round(total, 6),
        document_count=len(scores),
        avg_severity_per_doc=round(total / len(scores), 6) if scores else 0.0,
        capture_proportion=round(proportions["capture"], 6),
        drift_proportion=round(proportions["drift"], 6),
        warning_proportion=round(proportions["warning"], 6),
        severity_mix=round(compute_severity_mix(capture, drift, warning), 6),
        capture_match_count=capture,
        drift_match_count=drift,
        warning_match_count=warning,
        suppressed_match_count=suppressed,
        top_keywords=[k for k, _ in top],
    )


def aggregate_scores(scores: list[DocumentScore]) -> list[WeeklyAggregate]:
    """One aggregate per (category, week) present in *scores*, sorted."""
    buckets: dict[tuple[str, str], list[DocumentScore]] = defaultdict(list)
    for s in scores:
        buckets[(s.category, s.week_of)].append(s)
    return [
        compute_weekly_aggregate(category, week, bucket)
        for (category, week), bucket in sorted(buckets.items())
    ]


# ---------------------------------------------------------------------------
# Cumulative scoring
# ---------------------------------------------------------------------------


def compute_cumulative_from_weeks(
    category: str,
    weeks: list[WeekScore],
    half_life: float | None = None,
) -> CumulativeScores:
    """Single pass over a category's weeks, oldest first.

    Week ``i`` contributes ``score * 0.5 ** ((last - i) / half_life)`` to the
    decay-weighted score.  High-water ties keep the earliest week.
    """
    if half_life is None:
        half_life = get_settings().decay_half_life_weeks
    if half_life <= 0:
        raise ValueError("half_life must be positive")
    if not weeks:
        return CumulativeScores(category=category, decay_half_life_weeks=half_life)

    ordered = sorted(weeks, key=lambda w: w.week_of)
    last = len(ordered) - 1
    running = 0.0
    high = ordered[0].total_severity
    high_week = ordered[0].week_of
    decayed = 0.0
    for i, w in enumerate(ordered):
        running += w.total_severity
        if w.total_severity > high:
            high = w.total_severity
            high_week = w.week_of
        decayed += w.total_severity * 0.5 ** ((last - i) / half_life)

    return CumulativeScores(
        category=category,
        as_of=ordered[-1].week_of,
        running_sum=running,
        running_average=running / len(ordered),
        week_count=len(ordered),
        high_water_mark=high,
        high_water_week=high_week,
        current_week_score=ordered[-1].total_severity,
        decay_weighted_score=decayed,
        decay_half_life_weeks=half_life,
    )
