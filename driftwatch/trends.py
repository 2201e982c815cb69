from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

from driftwatch.config import Settings, get_settings
from driftwatch.matching import contains_phrase
from driftwatch.rules import RuleBook, get_rulebook
from driftwatch.schemas import ContentItem, TrendAnomaly


class KeywordTrend(BaseModel):
    keyword: str
    category: str
    current_count: int
    baseline_avg: float
    ratio: float
    is_anomaly: bool
    period_start: str
    period_end: str


def count_keywords_in_items(
    items: list[ContentItem], category: str, rules: RuleBook | None = None,
) -> dict[str, int]:
    """Number of items mentioning each of the category's keywords."""
    book = rules or get_rulebook()
    cat_rules = book.category(category)
    if cat_rules is None:
        return {}
    keywords = cat_rules.keywords.capture + cat_rules.keywords.drift + cat_rules.keywords.warning
    texts = [f"{i.title} {i.summary}" for i in items if i.is_valid]
    counts: dict[str, int] = {}
    for keyword in keywords:
        n = sum(1 for t in texts if contains_phrase(t, keyword))
        if n:
            counts[keyword] = n
    return counts


def calculate_trends(
    current: dict[str, int],
    baseline: dict[str, float],
    category: str,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> list[KeywordTrend]:
    s = settings or get_settings()
    now = now or datetime.now(UTC)
    period_start = (now - timedelta(days=7)).isoformat()
    trends = []
    for keyword, count in current.items():
        base = baseline.get(keyword, 0.0)
        if base > 0:
            ratio = count / base
        else:
            ratio = math.inf if count > 0 else 0.0
        trends.append(KeywordTrend(
            keyword=keyword,
            category=category,
            current_count=count,
            baseline_avg=base,
            ratio=ratio,
            is_anomaly=ratio >= s.trend_anomaly_ratio and count >= s.trend_min_count,
            period_start=period_start,
            period_end=now.isoformat(),
        ))
    return trends


def _anomaly_severity(ratio: float) -> str:
    if ratio >= 5:
        return "high"
    if ratio >= 3:
        return "medium"
    return "low"


def detect_anomalies(trends: list[KeywordTrend]) -> list[TrendAnomaly]:
    anomalies = []
    for t in trends:
        if not t.is_anomaly:
            continue
        if math.isinf(t.ratio):
            message = f'"{t.keyword}" appeared {t.current_count} times with no prior baseline'
        else:
            message = (
                f'"{t.keyword}" appeared {t.current_count} times '
                f"({t.ratio:.1f}x above baseline of {t.baseline_avg:.1f})"
            )
        anomalies.append(TrendAnomaly(
            keyword=t.keyword,
            category=t.category,
            ratio=t.ratio,
            severity=_anomaly_severity(t.ratio),
            message=message,
        ))
    return anomalies


def pearson_r(x: list[float], y: list[float]) -> float:
    """Pearson correlation; 0.0 for fewer than two points or zero variance."""
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    x, y = x[:n], y[:n]
    mx = sum(x) / n
    my = sum(y) / n
    cov = sum((a - mx) * (b - my) for a, b in zip(x, y))
    vx = sum((a - mx) ** 2 for a in x)
    vy = sum((b - my) ** 2 for b in y)
    if vx == 0 or vy == 0:
        return 0.0
    return cov / math.sqrt(vx * vy)
