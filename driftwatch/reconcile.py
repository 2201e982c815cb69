"""Keyword/AI status reconciliation.

The keyword status is a ceiling: an AI opinion may lower severity, never
raise it.  Large or low-confidence disagreements keep the keyword status and
are flagged for human review instead.
"""
from __future__ import annotations

import logging

from driftwatch.config import get_settings
from driftwatch.schemas import DowngradeDecision, StatusLevel

log = logging.getLogger(__name__)


def status_index(status: StatusLevel) -> int:
    return StatusLevel(status).rank


def status_distance(a: StatusLevel, b: StatusLevel) -> int:
    return abs(status_index(a) - status_index(b))


def is_downgrade(ceiling: StatusLevel, recommended: StatusLevel) -> bool:
    """True if *recommended* is strictly less severe than *ceiling*."""
    return status_index(recommended) < status_index(ceiling)


def clamp_to_ceiling(ceiling: StatusLevel, recommended: StatusLevel) -> StatusLevel:
    if status_index(recommended) > status_index(ceiling):
        return StatusLevel(ceiling)
    return StatusLevel(recommended)


def resolve_downgrade(
    keyword_status: StatusLevel,
    ai_status: StatusLevel,
    ai_confidence: float,
    threshold: float | None = None,
) -> DowngradeDecision:
    keyword_status = StatusLevel(keyword_status)
    if threshold is None:
        threshold = get_settings().downgrade_confidence_threshold
    confidence = max(0.0, min(1.0, ai_confidence))
    clamped = clamp_to_ceiling(keyword_status, ai_status)
    distance = status_distance(keyword_status, clamped)

    if distance == 0:
        return DowngradeDecision(
            final_status=keyword_status,
            downgrade_applied=False,
            flagged_for_review=False,
            reason=f"AI agrees with keyword assessment: {keyword_status.value}",
        )

    if distance == 1 and confidence >= threshold:
        return DowngradeDecision(
            final_status=clamped,
            downgrade_applied=True,
            flagged_for_review=False,
            reason=(
                f"AI recommends {clamped.value} (1 level down, confidence {confidence:.2f}): "
                "auto-accepted"
            ),
        )

    if distance >= 2:
        reason = f"AI recommends {clamped.value} ({distance} levels down): flagged for human review"
    else:
        reason = (
            f"AI recommends {clamped.value} (confidence {confidence:.2f} < {threshold:g}): "
            "flagged for human review"
        )
    log.info("Downgrade %s -> %s flagged for review", keyword_status.value, clamped.value)
    return DowngradeDecision(
        final_status=keyword_status,
        downgrade_applied=False,
        flagged_for_review=True,
        reason=reason,
    )
