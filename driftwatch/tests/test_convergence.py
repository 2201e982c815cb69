"""Tests for the infrastructure convergence detector."""
from __future__ import annotations

import pytest

from driftwatch.convergence import (
    analyze_infrastructure,
    analyze_infrastructure_over_time,
    compute_convergence_score,
    compute_convergence_series,
    convergence_level,
    scan_theme,
)
from driftwatch.rules import build_rulebook, default_rulebook_data
from driftwatch.schemas import CategorySnapshot, ConvergenceLevel


@pytest.fixture()
def rules():
    return build_rulebook(default_rulebook_data())


def _theme(rules, name):
    return next(t for t in rules.themes if t.theme == name)


class TestScore:
    def test_fewer_than_two_active_is_zero(self):
        assert compute_convergence_score([]) == 0
        assert compute_convergence_score([9]) == 0
        assert compute_convergence_score([9, 0, 0]) == 0

    def test_product_of_active_intensities(self):
        assert compute_convergence_score([3, 7, 0]) == 21
        assert compute_convergence_score([3, 7]) == 21
        assert compute_convergence_score([2, 3, 4]) == 24

    def test_levels_escalate(self):
        assert convergence_level(0, 0, 50) == ConvergenceLevel.NONE
        assert convergence_level(1, 0, 50) == ConvergenceLevel.EMERGING
        assert convergence_level(2, 21, 50) == ConvergenceLevel.ACTIVE
        assert convergence_level(2, 50, 50) == ConvergenceLevel.ENTRENCHED
        assert convergence_level(3, 120, 50) == ConvergenceLevel.ENTRENCHED


class TestScanTheme:
    def test_matches_across_texts(self, rules):
        theme = _theme(rules, "detention_incarceration")
        result = scan_theme(theme, {
            "military": CategorySnapshot(matches=["Contract for detention facility expansion"]),
        })
        assert result.active
        assert {m.keyword for m in result.matches} == {"detention facility", "facility expansion"}
        assert result.intensity == 2
        assert result.categories_involved == ["military"]

    def test_dedupe_per_keyword_and_category(self, rules):
        theme = _theme(rules, "surveillance_apparatus")
        result = scan_theme(theme, {
            "igs": CategorySnapshot(reason="Facial recognition pilot", matches=["facial recognition expanded"]),
            "courts": CategorySnapshot(matches=["Lawsuit over facial recognition"]),
        })
        assert result.match_count == 2
        assert sorted(m.category for m in result.matches) == ["courts", "igs"]

    def test_context_dependent_keyword_suppressed(self, rules):
        theme = _theme(rules, "surveillance_apparatus")
        result = scan_theme(theme, {"igs": CategorySnapshot(reason="FISA annual report released")})
        assert result.match_count == 0
        assert result.suppressed_count == 1
        assert not result.active

    def test_context_dependent_keyword_without_suppressor(self, rules):
        theme = _theme(rules, "surveillance_apparatus")
        result = scan_theme(theme, {"igs": CategorySnapshot(reason="New FISA queries on journalists")})
        assert [m.keyword for m in result.matches] == ["fisa"]


class TestAnalyze:
    def test_two_active_themes(self, rules):
        snapshots = {
            "igs": CategorySnapshot(
                reason="Detention facility expansion and new detention beds",
                matches=["facial recognition rollout", "social media monitoring expanded"],
            ),
            "courts": CategorySnapshot(matches=["detention center audit"]),
        }
        result = analyze_infrastructure(snapshots, rules, threshold=50)
        by_theme = {t.theme: t for t in result.themes}
        detention = by_theme["detention_incarceration"]
        surveillance = by_theme["surveillance_apparatus"]
        assert detention.active and surveillance.active
        assert not by_theme["criminalization_opposition"].active
        assert result.active_theme_count == 2
        assert result.convergence_score == detention.match_count * surveillance.match_count
        assert result.convergence == ConvergenceLevel.ACTIVE
        assert result.scanned_categories == 2
        assert result.total_items_scanned == 4
        assert "Active convergence" in result.convergence_note

    def test_nothing_detected(self, rules):
        result = analyze_infrastructure({"igs": CategorySnapshot(reason="Routine audit")}, rules)
        assert result.convergence == ConvergenceLevel.NONE
        assert result.convergence_score == 0
        assert result.convergence_note.startswith("No authoritarian infrastructure patterns")

    def test_single_theme_is_emerging(self, rules):
        result = analyze_infrastructure(
            {"igs": CategorySnapshot(reason="Detention facility expansion")}, rules,
        )
        assert result.convergence == ConvergenceLevel.EMERGING
        assert result.convergence_score == 0
        assert "across 1 category" in result.convergence_note

    def test_over_time(self, rules):
        weekly = [
            ("2025-01-06", {"igs": CategorySnapshot(reason="Routine audit")}),
            ("2025-01-13", {"igs": CategorySnapshot(reason="Detention facility expansion")}),
        ]
        out = analyze_infrastructure_over_time(weekly, rules)
        assert [w for w, _ in out] == ["2025-01-06", "2025-01-13"]
        assert out[1][1].convergence == ConvergenceLevel.EMERGING

    def test_series_sorted_by_week(self, rules):
        week_map = {
            "2025-01-13": {"igs": ["Detention facility expansion", "facial recognition and wiretap"]},
            "2025-01-06": {"igs": ["Routine audit"]},
        }
        points = compute_convergence_series(week_map, rules, threshold=50)
        assert [p.week for p in points] == ["2025-01-06", "2025-01-13"]
        assert points[0].convergence == ConvergenceLevel.NONE
        assert points[1].active_theme_count == 2
        assert points[1].convergence_score == 4
