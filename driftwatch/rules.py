"""Rule-table schema and registry.

A ``RuleBook`` bundles everything the keyword engine and the convergence
detector need: per-category tier dictionaries, per-keyword suppression rules,
the global negation phrases, the high-authority agency list and the
infrastructure themes.  The defaults live in ``keyword_data``; a YAML file of
the same shape replaces them wholesale.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from driftwatch import keyword_data
from driftwatch.config import get_settings, load_yaml
from driftwatch.matching import contains_phrase
from driftwatch.schemas import SeverityTier, StatusLevel

log = logging.getLogger(__name__)


class RuleBookError(ValueError):
    """The rule book could not be loaded or failed validation."""


def _lower_all(values: list[str]) -> list[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class TierKeywords(BaseModel):
    capture: list[str] = []
    drift: list[str] = []
    warning: list[str] = []

    @field_validator("capture", "drift", "warning")
    @classmethod
    def _normalize(cls, v: list[str]) -> list[str]:
        return _lower_all(v)

    def for_tier(self, tier: SeverityTier) -> list[str]:
        return getattr(self, tier.value)


class VolumeThreshold(BaseModel):
    """Item-count gates used when nothing matched at all."""
    drift: int = Field(..., gt=0)
    capture: int = Field(..., gt=0)


class SpecialCase(BaseModel):
    """Fixed verdict triggered by a title or note phrase."""
    title_contains: list[str] = []
    note_contains: list[str] = []
    status: StatusLevel
    reason: str
    match: str

    def triggered_by(self, title: str, note: str) -> bool:
        title_l = title.lower()
        note_l = note.lower()
        return (
            any(t.lower() in title_l for t in self.title_contains)
            or any(n.lower() in note_l for n in self.note_contains)
        )


class CategoryRules(BaseModel):
    title: str = ""
    keywords: TierKeywords = TierKeywords()
    volume_threshold: VolumeThreshold | None = None
    special_cases: list[SpecialCase] = []


class SuppressionRule(BaseModel):
    keyword: str
    suppress_if_any: list[str] = []
    downweight_if_any: list[str] = []

    @field_validator("keyword")
    @classmethod
    def _keyword_lower(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("suppression rule keyword must not be empty")
        return v

    @field_validator("suppress_if_any", "downweight_if_any")
    @classmethod
    def _terms_lower(cls, v: list[str]) -> list[str]:
        return _lower_all(v)


class ThemeConfig(BaseModel):
    theme: str
    label: str
    description: str = ""
    keywords: list[str] = []
    context_dependent_keywords: list[str] = []
    suppression_rules: list[SuppressionRule] = []
    activation_threshold: int = Field(2, gt=0)

    @field_validator("keywords", "context_dependent_keywords")
    @classmethod
    def _keywords_lower(cls, v: list[str]) -> list[str]:
        return _lower_all(v)

    def suppression_for(self, keyword: str) -> SuppressionRule | None:
        for rule in self.suppression_rules:
            if rule.keyword == keyword:
                return rule
        return None


class RuleBook(BaseModel):
    categories: dict[str, CategoryRules]
    suppression: dict[str, list[SuppressionRule]] = {}
    negation_patterns: list[str] = []
    authority_agencies: list[str] = []
    pattern_terms: list[str] = []
    themes: list[ThemeConfig] = []

    @field_validator("negation_patterns", "authority_agencies", "pattern_terms")
    @classmethod
    def _phrases_lower(cls, v: list[str]) -> list[str]:
        return _lower_all(v)

    def category(self, name: str) -> CategoryRules | None:
        return self.categories.get(name)

    def suppression_for(self, category: str, keyword: str) -> SuppressionRule | None:
        for rule in self.suppression.get(category, []):
            if rule.keyword == keyword:
                return rule
        return None

    def is_high_authority(self, agency: str) -> bool:
        agency_l = (agency or "").lower()
        if not agency_l:
            return False
        # Short acronyms need a word match; "osc" must not hit "moscow"
        return any(contains_phrase(agency_l, a) for a in self.authority_agencies)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def build_rulebook(data: dict[str, Any]) -> RuleBook:
    try:
        return RuleBook(**data)
    except ValidationError as exc:
        raise RuleBookError(f"Invalid rule book: {exc}") from exc


def default_rulebook_data() -> dict[str, Any]:
    return {
        "categories": keyword_data.CATEGORY_RULES,
        "suppression": keyword_data.SUPPRESSION_RULES,
        "negation_patterns": keyword_data.NEGATION_PATTERNS,
        "authority_agencies": keyword_data.HIGH_AUTHORITY_AGENCIES,
        "pattern_terms": keyword_data.PATTERN_TERMS,
        "themes": keyword_data.INFRASTRUCTURE_THEMES,
    }


def load_rulebook(path: str | Path) -> RuleBook:
    """Load a YAML rule book. Sections it leaves out fall back to the defaults."""
    path = Path(path)
    if not path.exists():
        raise RuleBookError(f"Rule book not found: {path}")
    data = default_rulebook_data()
    data.update(load_yaml(path))
    book = build_rulebook(data)
    log.info("Loaded rule book from %s (%d categories)", path, len(book.categories))
    return book


@lru_cache(maxsize=1)
def get_rulebook() -> RuleBook:
    rules_file = get_settings().rules_file
    if rules_file is not None:
        return load_rulebook(rules_file)
    return build_rulebook(default_rulebook_data())
