from __future__ import annotations

import logging
import math
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from driftwatch.schemas import DocumentClass, SeverityTier

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Configuration is unusable; raised at startup, never per request."""


def _resolve_home() -> Path:
    override = os.getenv("DRIFTWATCH_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd().resolve()


DEFAULT_TIER_WEIGHTS: dict[SeverityTier, float] = {
    SeverityTier.CAPTURE: 4.0,
    SeverityTier.DRIFT: 2.0,
    SeverityTier.WARNING: 1.0,
}

# Instrument type correlates with real-world consequence
DEFAULT_CLASS_MULTIPLIERS: dict[DocumentClass, float] = {
    DocumentClass.EXECUTIVE_ORDER: 1.5,
    DocumentClass.PRESIDENTIAL_MEMORANDUM: 1.4,
    DocumentClass.FINAL_RULE: 1.3,
    DocumentClass.PROPOSED_RULE: 1.0,
    DocumentClass.NOTICE: 0.5,
    DocumentClass.COURT_OPINION: 1.3,
    DocumentClass.REPORT: 1.2,
    DocumentClass.PRESS_RELEASE: 0.7,
    DocumentClass.UNKNOWN: 1.0,
}


class CoverageWeights(BaseModel):
    source_diversity: float = 0.15
    authority_weight: float = 0.25
    evidence_coverage: float = 0.20
    keyword_density: float = 0.15
    ai_agreement: float = 0.25


class Settings(BaseModel):
    database_path: Path = Field(default_factory=lambda: _resolve_home() / "data" / "driftwatch.db")
    rules_file: Path | None = None

    # Severity
    tier_weights: dict[SeverityTier, float] = Field(default_factory=lambda: dict(DEFAULT_TIER_WEIGHTS))
    class_multipliers: dict[DocumentClass, float] = Field(
        default_factory=lambda: dict(DEFAULT_CLASS_MULTIPLIERS)
    )

    # Matching windows (characters around a keyword hit)
    negation_window_before: int = 60
    negation_window_after: int = 40
    context_radius: int = 50

    # Status derivation
    warning_escalation_count: int = 5
    pattern_min_items: int = 2

    # Data coverage saturation points
    source_diversity_max: int = 5
    authority_count_max: int = 3
    evidence_count_max: int = 10
    keyword_density_ratio: float = 0.3
    keyword_density_floor: int = 3
    coverage_weights: CoverageWeights = Field(default_factory=CoverageWeights)
    ai_agreement_steps: tuple[float, float, float, float] = (1.0, 0.7, 0.4, 0.2)
    ai_agreement_default: float = 0.5

    # Reconciliation
    downgrade_confidence_threshold: float = 0.7

    # Temporal
    decay_half_life_weeks: float = 8.0
    top_keywords_limit: int = 10

    # Convergence
    convergence_entrenched_threshold: int = 50

    # Trends
    trend_anomaly_ratio: float = 2.0
    trend_min_count: int = 2

    # AI provider
    ai_timeout_seconds: float = 30.0
    ai_max_items: int = 20

    @model_validator(mode="after")
    def _check_tables(self) -> Settings:
        missing = [t.value for t in SeverityTier if t not in self.tier_weights]
        if missing:
            raise ValueError(f"tier_weights missing required tiers: {', '.join(missing)}")
        if any(w <= 0 for w in self.tier_weights.values()):
            raise ValueError("tier_weights must all be positive")
        if not (self.tier_weights[SeverityTier.CAPTURE] > self.tier_weights[SeverityTier.DRIFT]
                > self.tier_weights[SeverityTier.WARNING]):
            raise ValueError("tier_weights must order capture > drift > warning")

        missing_cls = [c.value for c in DocumentClass if c not in self.class_multipliers]
        if missing_cls:
            raise ValueError(f"class_multipliers missing classes: {', '.join(missing_cls)}")
        if any(m <= 0 for m in self.class_multipliers.values()):
            raise ValueError("class_multipliers must all be positive")

        total = sum(self.coverage_weights.model_dump().values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"coverage_weights must sum to 1.0 (got {total:.4f})")
        if self.decay_half_life_weeks <= 0:
            raise ValueError("decay_half_life_weeks must be positive")
        if not 0 < self.keyword_density_ratio <= 1:
            raise ValueError("keyword_density_ratio must be in (0, 1]")
        return self

    def tier_weight(self, tier: SeverityTier) -> float:
        return self.tier_weights[tier]

    def class_multiplier(self, doc_class: DocumentClass) -> float:
        return self.class_multipliers[doc_class]


def load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def build_settings(overrides: dict[str, Any] | None = None) -> Settings:
    """Validate settings, turning any validation failure into a ConfigError."""
    try:
        return Settings(**(overrides or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid driftwatch configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    overrides: dict[str, Any] = {}
    settings_file = os.getenv("DRIFTWATCH_SETTINGS_FILE", "").strip()
    if settings_file:
        overrides.update(load_yaml(Path(settings_file)))
        log.info("Loaded settings overrides from %s", settings_file)
    rules_file = os.getenv("DRIFTWATCH_RULES_FILE", "").strip()
    if rules_file:
        overrides["rules_file"] = rules_file
    db_path = os.getenv("DRIFTWATCH_DB", "").strip()
    if db_path:
        overrides["database_path"] = db_path
    return build_settings(overrides)
