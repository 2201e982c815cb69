"""Pydantic data model shared by the scoring core, the store and the API.

Enums carry an explicit ordinal so that severity comparisons are integer
comparisons, never string comparisons.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Ordered enums
# ---------------------------------------------------------------------------


class StatusLevel(str, Enum):
    STABLE = "Stable"
    WARNING = "Warning"
    DRIFT = "Drift"
    CAPTURE = "Capture"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


STATUS_ORDER: tuple[StatusLevel, ...] = (
    StatusLevel.STABLE, StatusLevel.WARNING, StatusLevel.DRIFT, StatusLevel.CAPTURE,
)
_STATUS_RANK = {s: i for i, s in enumerate(STATUS_ORDER)}


class SeverityTier(str, Enum):
    WARNING = "warning"
    DRIFT = "drift"
    CAPTURE = "capture"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def demote(self) -> SeverityTier:
        """One tier down; warning is the floor."""
        return TIER_ORDER[max(0, self.rank - 1)]


TIER_ORDER: tuple[SeverityTier, ...] = (SeverityTier.WARNING, SeverityTier.DRIFT, SeverityTier.CAPTURE)
_TIER_RANK = {t: i for i, t in enumerate(TIER_ORDER)}

# Scan order: most severe first
TIERS_DESCENDING: tuple[SeverityTier, ...] = tuple(reversed(TIER_ORDER))


class MatchProvenance(str, Enum):
    PLAIN = "plain"
    AUTHORITATIVE = "authoritative"
    REPEATED_PATTERN = "repeated_pattern"


_PROVENANCE_SUFFIX = {
    MatchProvenance.PLAIN: "",
    MatchProvenance.AUTHORITATIVE: " (authoritative source)",
    MatchProvenance.REPEATED_PATTERN: " (systematic pattern)",
}


class DocumentClass(str, Enum):
    EXECUTIVE_ORDER = "executive_order"
    PRESIDENTIAL_MEMORANDUM = "presidential_memorandum"
    FINAL_RULE = "final_rule"
    PROPOSED_RULE = "proposed_rule"
    NOTICE = "notice"
    COURT_OPINION = "court_opinion"
    REPORT = "report"
    PRESS_RELEASE = "press_release"
    UNKNOWN = "unknown"


class ConvergenceLevel(str, Enum):
    NONE = "none"
    EMERGING = "emerging"
    ACTIVE = "active"
    ENTRENCHED = "entrenched"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class ContentItem(BaseModel):
    """One fetched government text item. Immutable once produced."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    summary: str = ""
    link: str = ""
    pub_date: str | None = Field(default=None, alias="pubDate")
    agency: str = ""
    type: str = ""
    note: str = ""
    is_error: bool = Field(default=False, alias="isError")
    is_warning: bool = Field(default=False, alias="isWarning")

    @field_validator("summary", "link", "agency", "type", "note", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_valid(self) -> bool:
        return not (self.is_error or self.is_warning)

    @property
    def text(self) -> str:
        """Searchable text used by the keyword engine."""
        return " ".join(p for p in (self.title, self.summary, self.note) if p)


# ---------------------------------------------------------------------------
# Keyword engine output
# ---------------------------------------------------------------------------


class KeywordMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str
    tier: SeverityTier
    provenance: MatchProvenance = MatchProvenance.PLAIN
    weight: float = 0.0
    source: str = ""
    context: str = ""

    @property
    def label(self) -> str:
        return f"{self.keyword}{_PROVENANCE_SUFFIX[self.provenance]}"


class SuppressedMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str
    tier: SeverityTier
    rule: str
    reason: str
    source: str = ""


class AssessmentDetail(BaseModel):
    capture_count: int = 0
    drift_count: int = 0
    warning_count: int = 0
    suppressed_count: int = 0
    items_reviewed: int = 0
    has_authoritative: bool = False
    dominant_tier: SeverityTier | None = None
    keyword_matches: list[KeywordMatch] = []


class AssessmentResult(BaseModel):
    status: StatusLevel
    reason: str
    matches: list[str] = []
    detail: AssessmentDetail | None = None


# ---------------------------------------------------------------------------
# AI opinion contract
# ---------------------------------------------------------------------------


class AIAssessmentResponse(BaseModel):
    """What an AI provider must return; anything else counts as no opinion."""
    model_config = ConfigDict(populate_by_name=True)

    status: StatusLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str
    evidence_for: list[str] = Field(default_factory=list, alias="evidenceFor")
    evidence_against: list[str] = Field(default_factory=list, alias="evidenceAgainst")
    how_we_could_be_wrong: list[str] = Field(default_factory=list, alias="howWeCouldBeWrong")


class CounterEvidenceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    counter_points: list[str] = Field(default_factory=list, alias="counterPoints")


class AIResult(BaseModel):
    provider: str
    model: str = ""
    status: StatusLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    latency_ms: int = 0


class DowngradeDecision(BaseModel):
    final_status: StatusLevel
    downgrade_applied: bool
    flagged_for_review: bool
    reason: str


# ---------------------------------------------------------------------------
# Enhanced assessment
# ---------------------------------------------------------------------------


class EvidenceItem(BaseModel):
    text: str
    direction: str  # "concerning" | "reassuring"
    source: str | None = None


class ConfidenceFactors(BaseModel):
    source_diversity: float = Field(0.0, ge=0.0, le=1.0)
    authority_weight: float = Field(0.0, ge=0.0, le=1.0)
    evidence_coverage: float = Field(0.0, ge=0.0, le=1.0)
    keyword_density: float = Field(0.0, ge=0.0, le=1.0)
    ai_agreement: float = Field(0.5, ge=0.0, le=1.0)


class TrendAnomaly(BaseModel):
    keyword: str
    category: str
    ratio: float
    severity: str  # "low" | "medium" | "high"
    message: str


class EnhancedAssessment(BaseModel):
    category: str
    status: StatusLevel
    reason: str
    matches: list[str] = []
    keyword_result: AssessmentResult
    ai_result: AIResult | None = None
    downgrade: DowngradeDecision | None = None
    review_reasoning: str | None = None
    data_coverage: float = Field(0.0, ge=0.0, le=1.0)
    data_coverage_factors: ConfidenceFactors = ConfidenceFactors()
    evidence_for: list[EvidenceItem] = []
    evidence_against: list[EvidenceItem] = []
    how_we_could_be_wrong: list[str] = []
    consensus_note: str | None = None
    assessed_at: str
    # Only filled in when a baseline is supplied
    trend_anomalies: list[TrendAnomaly] | None = None


# ---------------------------------------------------------------------------
# Review queue
# ---------------------------------------------------------------------------


class ReviewDecision(BaseModel):
    final_status: StatusLevel
    decision: Literal["approve", "override", "skip"] = "approve"
    reason: str = ""
    reviewer: str = ""


class ReviewItem(BaseModel):
    """A flagged assessment with both opinions side by side."""

    id: int
    category: str
    status: StatusLevel
    keyword_status: StatusLevel
    ai_status: StatusLevel | None = None
    ai_confidence: float | None = None
    ai_reasoning: str = ""
    reason: str = ""
    week_of: str
    assessed_at: datetime | None = None
    resolved_at: datetime | None = None
    resolution: ReviewDecision | None = None


# ---------------------------------------------------------------------------
# Per-document scores and temporal aggregates
# ---------------------------------------------------------------------------


class DocumentScore(BaseModel):
    url: str
    category: str
    title: str
    severity_score: float
    final_score: float
    capture_count: int
    drift_count: int
    warning_count: int
    suppressed_count: int
    document_class: DocumentClass
    class_multiplier: float
    is_high_authority: bool
    matches: list[KeywordMatch] = []
    suppressed: list[SuppressedMatch] = []
    week_of: str
    published_at: str | None = None
    scored_at: str


class WeeklyAggregate(BaseModel):
    category: str
    week_of: str
    total_severity: float = 0.0
    document_count: int = 0
    avg_severity_per_doc: float = 0.0
    capture_proportion: float = 0.0
    drift_proportion: float = 0.0
    warning_proportion: float = 0.0
    severity_mix: float = 0.0
    capture_match_count: int = 0
    drift_match_count: int = 0
    warning_match_count: int = 0
    suppressed_match_count: int = 0
    top_keywords: list[str] = []


class WeekScore(BaseModel):
    week_of: str
    total_severity: float


class CumulativeScores(BaseModel):
    category: str
    as_of: str = ""
    running_sum: float = 0.0
    running_average: float = 0.0
    week_count: int = 0
    high_water_mark: float = 0.0
    high_water_week: str = ""
    current_week_score: float = 0.0
    decay_weighted_score: float = 0.0
    decay_half_life_weeks: float


# ---------------------------------------------------------------------------
# Infrastructure convergence
# ---------------------------------------------------------------------------


class InfrastructureKeywordMatch(BaseModel):
    keyword: str
    source: str
    category: str


class InfrastructureThemeResult(BaseModel):
    theme: str
    label: str
    description: str = ""
    active: bool
    match_count: int
    matches: list[InfrastructureKeywordMatch] = []
    categories_involved: list[str] = []
    suppressed_count: int = 0

    @property
    def intensity(self) -> int:
        return self.match_count


class InfrastructureAssessment(BaseModel):
    themes: list[InfrastructureThemeResult]
    active_theme_count: int
    convergence: ConvergenceLevel
    convergence_score: int
    convergence_note: str
    scanned_categories: int
    total_items_scanned: int
    assessed_at: str


class ConvergencePoint(BaseModel):
    week: str
    active_theme_count: int
    convergence: ConvergenceLevel
    convergence_score: int


class CategorySnapshot(BaseModel):
    """The slice of an assessment the convergence scan reads."""
    reason: str = ""
    matches: list[str] = []
    evidence_for: list[str] = []
    evidence_against: list[str] = []

    @classmethod
    def from_assessment(cls, assessment: EnhancedAssessment | AssessmentResult) -> CategorySnapshot:
        if isinstance(assessment, EnhancedAssessment):
            return cls(
                reason=assessment.reason,
                matches=list(assessment.matches),
                evidence_for=[e.text for e in assessment.evidence_for],
                evidence_against=[e.text for e in assessment.evidence_against],
            )
        return cls(reason=assessment.reason, matches=list(assessment.matches))

    def texts(self) -> list[str]:
        return [t for t in (self.reason, *self.matches, *self.evidence_for, *self.evidence_against) if t]
