from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class DocumentScoreRow(Base):
    __tablename__ = "document_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, default="")
    severity_score: Mapped[float] = mapped_column(Float, default=0.0)
    final_score: Mapped[float] = mapped_column(Float, default=0.0)
    capture_count: Mapped[int] = mapped_column(Integer, default=0)
    drift_count: Mapped[int] = mapped_column(Integer, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, default=0)
    suppressed_count: Mapped[int] = mapped_column(Integer, default=0)
    document_class: Mapped[str] = mapped_column(String(50), default="unknown")
    class_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    is_high_authority: Mapped[bool] = mapped_column(Boolean, default=False)
    matches_json: Mapped[str] = mapped_column(Text, default="[]")
    suppressed_json: Mapped[str] = mapped_column(Text, default="[]")
    week_of: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # ISO Monday
    published_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    scored_at: Mapped[str] = mapped_column(String(40), default="")


class WeeklyAggregateRow(Base):
    __tablename__ = "weekly_aggregates"
    __table_args__ = (UniqueConstraint("category", "week_of", name="uq_weekly_category_week"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    week_of: Mapped[str] = mapped_column(String(10), nullable=False)
    total_severity: Mapped[float] = mapped_column(Float, default=0.0)
    document_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_severity_per_doc: Mapped[float] = mapped_column(Float, default=0.0)
    capture_proportion: Mapped[float] = mapped_column(Float, default=0.0)
    drift_proportion: Mapped[float] = mapped_column(Float, default=0.0)
    warning_proportion: Mapped[float] = mapped_column(Float, default=0.0)
    severity_mix: Mapped[float] = mapped_column(Float, default=0.0)
    capture_match_count: Mapped[int] = mapped_column(Integer, default=0)
    drift_match_count: Mapped[int] = mapped_column(Integer, default=0)
    warning_match_count: Mapped[int] = mapped_column(Integer, default=0)
    suppressed_match_count: Mapped[int] = mapped_column(Integer, default=0)
    top_keywords_json: Mapped[str] = mapped_column(Text, default="[]")


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # Stable | Warning | Drift | Capture
    keyword_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    data_coverage: Mapped[float] = mapped_column(Float, default=0.0)
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_provider: Mapped[str] = mapped_column(String(50), default="")
    ai_model: Mapped[str] = mapped_column(String(100), default="")
    ai_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_reasoning: Mapped[str] = mapped_column(Text, default="")
    week_of: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, default="{}")
    assessed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Review outcome; a flagged row is pending while resolved_at is null
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    final_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    review_decision: Mapped[str] = mapped_column(String(20), default="")
    review_reason: Mapped[str] = mapped_column(Text, default="")
    reviewer: Mapped[str] = mapped_column(String(100), default="")
