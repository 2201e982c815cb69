"""Tests for weekly aggregation and cumulative/decay scoring."""
from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from driftwatch.aggregator import (
    aggregate_scores,
    compute_cumulative_from_weeks,
    compute_proportions,
    compute_weekly_aggregate,
    week_of,
)
from driftwatch.schemas import DocumentClass, DocumentScore, KeywordMatch, SeverityTier, WeekScore


def _score(
    url: str, final: float, *, category: str = "civilService", week: str = "2025-01-20",
    capture: int = 0, drift: int = 0, warning: int = 0, keywords: tuple[str, ...] = (),
) -> DocumentScore:
    return DocumentScore(
        url=url,
        category=category,
        title=url,
        severity_score=final,
        final_score=final,
        capture_count=capture,
        drift_count=drift,
        warning_count=warning,
        suppressed_count=0,
        document_class=DocumentClass.UNKNOWN,
        class_multiplier=1.0,
        is_high_authority=False,
        matches=[KeywordMatch(keyword=k, tier=SeverityTier.WARNING) for k in keywords],
        week_of=week,
        scored_at="2025-01-25T00:00:00+00:00",
    )


class TestWeekOf:
    def test_iso_date(self):
        assert week_of("2025-01-22") == "2025-01-20"
        assert week_of("2025-01-20") == "2025-01-20"

    def test_rfc2822(self):
        assert week_of("Wed, 22 Jan 2025 10:00:00 GMT") == "2025-01-20"

    def test_offset_is_converted_to_utc(self):
        # Sunday evening in New York is Monday in UTC
        assert week_of("2025-01-26T23:00:00-05:00") == "2025-01-27"

    def test_date_and_datetime(self):
        assert week_of(date(2025, 1, 26)) == "2025-01-20"
        assert week_of(datetime(2025, 1, 22, tzinfo=UTC)) == "2025-01-20"

    def test_unparseable(self):
        with pytest.raises(ValueError):
            week_of("not a date")


class TestWeeklyAggregate:
    def test_totals_and_proportions(self):
        scores = [
            _score("a", 6.0, capture=1, keywords=("schedule f",)),
            _score("b", 3.0, drift=1, warning=1, keywords=("schedule f", "hiring freeze")),
        ]
        agg = compute_weekly_aggregate("civilService", "2025-01-20", scores, top_keywords_limit=10)
        assert agg.total_severity == pytest.approx(9.0)
        assert agg.document_count == 2
        assert agg.avg_severity_per_doc == pytest.approx(4.5)
        assert agg.capture_proportion == pytest.approx(1 / 3, abs=1e-6)
        assert agg.drift_proportion == pytest.approx(1 / 3, abs=1e-6)
        assert agg.warning_proportion == pytest.approx(1 / 3, abs=1e-6)
        assert agg.severity_mix == pytest.approx(1.0)
        assert agg.top_keywords == ["schedule f", "hiring freeze"]

    def test_top_keyword_ties_sorted_by_name(self):
        scores = [_score("a", 1.0, keywords=("zeta", "alpha", "mid"))]
        agg = compute_weekly_aggregate("x", "2025-01-20", scores, top_keywords_limit=2)
        assert agg.top_keywords == ["alpha", "mid"]

    def test_recompute_is_identical(self):
        scores = [
            _score("a", 6.0, capture=1, keywords=("schedule f",)),
            _score("b", 3.3, drift=1, keywords=("excepted service",)),
            _score("c", 0.5, warning=1, keywords=("hiring freeze",)),
        ]
        first = compute_weekly_aggregate("civilService", "2025-01-20", scores, 10)
        second = compute_weekly_aggregate("civilService", "2025-01-20", list(reversed(scores)), 10)
        assert first.model_dump_json() == second.model_dump_json()

    def test_empty_week(self):
        agg = compute_weekly_aggregate("x", "2025-01-20", [], 10)
        assert agg.total_severity == 0.0
        assert agg.avg_severity_per_doc == 0.0
        assert agg.top_keywords == []

    def test_proportions_without_matches(self):
        assert compute_proportions(0, 0, 0) == {"capture": 0.0, "drift": 0.0, "warning": 0.0}

    def test_aggregate_scores_groups_by_category_and_week(self):
        scores = [
            _score("a", 1.0, week="2025-01-27"),
            _score("b", 2.0, week="2025-01-20"),
            _score("c", 4.0, week="2025-01-20"),
            _score("d", 8.0, category="fiscal", week="2025-01-20"),
        ]
        aggs = aggregate_scores(scores)
        assert [(a.category, a.week_of) for a in aggs] == [
            ("civilService", "2025-01-20"),
            ("civilService", "2025-01-27"),
            ("fiscal", "2025-01-20"),
        ]
        assert aggs[0].total_severity == pytest.approx(6.0)


class TestCumulative:
    def test_single_week_decays_to_itself(self):
        result = compute_cumulative_from_weeks("x", [WeekScore(week_of="2025-01-06", total_severity=12.5)], 8)
        assert result.decay_weighted_score == 12.5
        assert result.running_sum == 12.5
        assert result.current_week_score == 12.5
        assert result.week_count == 1

    def test_two_weeks_half_life_one(self):
        weeks = [
            WeekScore(week_of="2025-01-06", total_severity=10),
            WeekScore(week_of="2025-01-13", total_severity=20),
        ]
        result = compute_cumulative_from_weeks("x", weeks, 1)
        assert result.decay_weighted_score == pytest.approx(25.0)
        assert result.running_average == pytest.approx(15.0)
        assert result.as_of == "2025-01-13"

    def test_high_water_tie_keeps_earliest(self):
        weeks = [
            WeekScore(week_of="2025-01-06", total_severity=30),
            WeekScore(week_of="2025-01-13", total_severity=10),
            WeekScore(week_of="2025-01-20", total_severity=30),
        ]
        result = compute_cumulative_from_weeks("x", weeks, 8)
        assert result.high_water_mark == 30
        assert result.high_water_week == "2025-01-06"

    def test_unordered_input_is_sorted(self):
        weeks = [
            WeekScore(week_of="2025-01-13", total_severity=20),
            WeekScore(week_of="2025-01-06", total_severity=10),
        ]
        result = compute_cumulative_from_weeks("x", weeks, 1)
        assert result.current_week_score == 20
        assert result.decay_weighted_score == pytest.approx(25.0)

    def test_empty_series_is_zeroed(self):
        result = compute_cumulative_from_weeks("x", [], 8)
        assert result.week_count == 0
        assert result.decay_weighted_score == 0.0
        assert result.high_water_week == ""
        assert result.decay_half_life_weeks == 8

    def test_half_life_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_cumulative_from_weeks("x", [], 0)
