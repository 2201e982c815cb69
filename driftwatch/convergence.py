"""Cross-category infrastructure convergence.

Each theme scans every category's assessment text.  A theme is active once
its match count reaches its activation threshold; its intensity is that
count.  Simultaneous activation is scored multiplicatively: the convergence
score is the product of active intensities, or 0 with fewer than two active.
"""
from __future__ import annotations

import logging
import math
from datetime import UTC, datetime

from driftwatch.config import get_settings
from driftwatch.matching import contains_phrase, find_term
from driftwatch.rules import RuleBook, ThemeConfig, get_rulebook
from driftwatch.schemas import (
    CategorySnapshot,
    ConvergenceLevel,
    ConvergencePoint,
    InfrastructureAssessment,
    InfrastructureKeywordMatch,
    InfrastructureThemeResult,
)

log = logging.getLogger(__name__)


def scan_theme(
    theme: ThemeConfig, snapshots: dict[str, CategorySnapshot],
) -> InfrastructureThemeResult:
    matches: list[InfrastructureKeywordMatch] = []
    seen: set[tuple[str, str]] = set()
    categories: list[str] = []
    suppressed = 0
    context_dependent = set(theme.context_dependent_keywords)
    keywords = theme.keywords + theme.context_dependent_keywords

    for category, snapshot in snapshots.items():
        for text in snapshot.texts():
            for keyword in keywords:
                if (keyword, category) in seen or not contains_phrase(text, keyword):
                    continue
                if keyword in context_dependent:
                    rule = theme.suppression_for(keyword)
                    if rule and find_term(text, rule.suppress_if_any):
                        suppressed += 1
                        continue
                seen.add((keyword, category))
                matches.append(InfrastructureKeywordMatch(keyword=keyword, source=text, category=category))
                if category not in categories:
                    categories.append(category)

    return InfrastructureThemeResult(
        theme=theme.theme,
        label=theme.label,
        description=theme.description,
        active=len(matches) >= theme.activation_threshold,
        match_count=len(matches),
        matches=matches,
        categories_involved=categories,
        suppressed_count=suppressed,
    )


def compute_convergence_score(intensities: list[int]) -> int:
    """Product of the active themes' intensities; 0 with fewer than two."""
    active = [i for i in intensities if i > 0]
    if len(active) < 2:
        return 0
    return math.prod(active)


def convergence_level(active_count: int, score: int, threshold: int | None = None) -> ConvergenceLevel:
    if threshold is None:
        threshold = get_settings().convergence_entrenched_threshold
    if active_count <= 0:
        return ConvergenceLevel.NONE
    if active_count == 1:
        return ConvergenceLevel.EMERGING
    if score >= threshold:
        return ConvergenceLevel.ENTRENCHED
    return ConvergenceLevel.ACTIVE


def _plural(n: int) -> str:
    return "category" if n == 1 else "categories"


def build_convergence_note(themes: list[InfrastructureThemeResult], level: ConvergenceLevel) -> str:
    active = [t for t in themes if t.active]
    if level == ConvergenceLevel.NONE:
        return "No authoritarian infrastructure patterns detected across monitored categories."
    if level == ConvergenceLevel.EMERGING:
        t = active[0]
        n = len(t.categories_involved)
        return (
            f"Emerging pattern: {t.label} signals detected across {n} {_plural(n)} "
            f"({t.match_count} keyword matches)."
        )
    names = ", ".join(t.label for t in active)
    n = len({c for t in active for c in t.categories_involved})
    if level == ConvergenceLevel.ENTRENCHED:
        return (
            f"Entrenched convergence: {names} are all active across {n} {_plural(n)}. "
            "Multiple infrastructure dimensions are reinforcing each other at high intensity."
        )
    return (
        f"Active convergence: {names} are developing simultaneously across {n} {_plural(n)}."
    )


def analyze_infrastructure(
    snapshots: dict[str, CategorySnapshot],
    rules: RuleBook | None = None,
    threshold: int | None = None,
) -> InfrastructureAssessment:
    book = rules or get_rulebook()
    themes = [scan_theme(t, snapshots) for t in book.themes]
    active = [t for t in themes if t.active]
    score = compute_convergence_score([t.intensity for t in active])
    level = convergence_level(len(active), score, threshold)
    return InfrastructureAssessment(
        themes=themes,
        active_theme_count=len(active),
        convergence=level,
        convergence_score=score,
        convergence_note=build_convergence_note(themes, level),
        scanned_categories=len(snapshots),
        total_items_scanned=sum(len(s.texts()) for s in snapshots.values()),
        assessed_at=datetime.now(UTC).isoformat(),
    )


def analyze_infrastructure_over_time(
    weekly: list[tuple[str, dict[str, CategorySnapshot]]],
    rules: RuleBook | None = None,
    threshold: int | None = None,
) -> list[tuple[str, InfrastructureAssessment]]:
    return [(week, analyze_infrastructure(snaps, rules, threshold)) for week, snaps in weekly]


def compute_convergence_series(
    week_map: dict[str, dict[str, list[str]]],
    rules: RuleBook | None = None,
    threshold: int | None = None,
) -> list[ConvergencePoint]:
    """Convergence per week from raw ``{week: {category: [texts]}}``, oldest first."""
    points = []
    for week in sorted(week_map):
        snapshots = {
            category: CategorySnapshot(matches=list(texts))
            for category, texts in week_map[week].items()
        }
        assessment = analyze_infrastructure(snapshots, rules, threshold)
        points.append(ConvergencePoint(
            week=week,
            active_theme_count=assessment.active_theme_count,
            convergence=assessment.convergence,
            convergence_score=assessment.convergence_score,
        ))
    return points
