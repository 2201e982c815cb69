"""Severity formula and data-coverage confidence.

Severity
--------
Capture-tier matches score logarithmically so that one document repeating
many capture phrases cannot outweigh two independently sourced findings::

    severity = w_capture * log2(capture + 1) + drift * w_drift + warning * w_warning
    final    = severity * class_multiplier

Data coverage
-------------
Weighted sum of five saturating factors, each in [0, 1]: source diversity,
authority weight, evidence coverage, keyword density and AI agreement.
"""
from __future__ import annotations

import math

from driftwatch.config import Settings, get_settings
from driftwatch.reconcile import status_distance
from driftwatch.rules import RuleBook, get_rulebook
from driftwatch.schemas import (
    AssessmentResult,
    ConfidenceFactors,
    ContentItem,
    DocumentClass,
    SeverityTier,
    StatusLevel,
)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_severity_score(
    capture_count: int,
    drift_count: int,
    warning_count: int,
    settings: Settings | None = None,
) -> float:
    s = settings or get_settings()
    return (
        s.tier_weight(SeverityTier.CAPTURE) * math.log2(max(0, capture_count) + 1)
        + max(0, drift_count) * s.tier_weight(SeverityTier.DRIFT)
        + max(0, warning_count) * s.tier_weight(SeverityTier.WARNING)
    )


def compute_final_score(
    severity: float, document_class: DocumentClass, settings: Settings | None = None,
) -> float:
    s = settings or get_settings()
    return severity * s.class_multiplier(document_class)


def ai_agreement_factor(
    keyword_status: StatusLevel, ai_status: StatusLevel | None, settings: Settings | None = None,
) -> float:
    s = settings or get_settings()
    if ai_status is None:
        return s.ai_agreement_default
    distance = status_distance(keyword_status, ai_status)
    return s.ai_agreement_steps[min(distance, len(s.ai_agreement_steps) - 1)]


def calculate_confidence(
    items: list[ContentItem],
    keyword_result: AssessmentResult,
    ai_status: StatusLevel | None = None,
    settings: Settings | None = None,
    rules: RuleBook | None = None,
) -> tuple[float, ConfidenceFactors]:
    """Return ``(data_coverage, factors)``; both always within [0, 1]."""
    s = settings or get_settings()
    book = rules or get_rulebook()
    valid = [i for i in items if i.is_valid]

    agencies = {i.agency.strip().lower() for i in valid if i.agency.strip()}
    authoritative = sum(1 for i in valid if book.is_high_authority(i.agency))
    if valid:
        density_cap = max(s.keyword_density_floor, len(valid) * s.keyword_density_ratio)
        density = len(keyword_result.matches) / density_cap
    else:
        density = 0.0

    factors = ConfidenceFactors(
        source_diversity=_clamp(len(agencies) / s.source_diversity_max),
        authority_weight=_clamp(authoritative / s.authority_count_max),
        evidence_coverage=_clamp(len(valid) / s.evidence_count_max),
        keyword_density=_clamp(density),
        ai_agreement=_clamp(ai_agreement_factor(keyword_result.status, ai_status, s)),
    )
    w = s.coverage_weights
    confidence = (
        factors.source_diversity * w.source_diversity
        + factors.authority_weight * w.authority_weight
        + factors.evidence_coverage * w.evidence_coverage
        + factors.keyword_density * w.keyword_density
        + factors.ai_agreement * w.ai_agreement
    )
    return _clamp(round(confidence, 2)), factors
