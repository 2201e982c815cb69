from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from driftwatch import services
from driftwatch.ai import LLMClient
from driftwatch.config import get_settings
from driftwatch.convergence import analyze_infrastructure
from driftwatch.db import init_db, session_generator
from driftwatch.engine import score_document_batch
from driftwatch.rules import get_rulebook
from driftwatch.schemas import (
    CategorySnapshot,
    ContentItem,
    ConvergencePoint,
    CumulativeScores,
    DocumentScore,
    EnhancedAssessment,
    InfrastructureAssessment,
    ReviewDecision,
    ReviewItem,
    WeeklyAggregate,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail at startup, not per request, on a broken configuration
    get_settings()
    get_rulebook()
    init_db()
    yield


app = FastAPI(
    title="Driftwatch",
    version="0.1.0",
    description=(
        "Severity monitoring for government text feeds. Scores items per category, "
        "reconciles an optional AI opinion, and tracks weekly and cross-category trends. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Assessment", "description": "Keyword and AI-reconciled category assessments."},
        {"name": "Scoring", "description": "Per-document severity scores."},
        {"name": "History", "description": "Weekly aggregates, cumulative and convergence series."},
        {"name": "Infrastructure", "description": "Cross-category theme convergence."},
        {"name": "Review", "description": "Assessments whose AI downgrade needs a human decision."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def llm_client() -> LLMClient:
    return LLMClient()


class ItemsBody(BaseModel):
    items: list[ContentItem]


class AssessBody(ItemsBody):
    use_ai: bool = False
    store: bool = False


class ScoreResponse(BaseModel):
    stored: int
    scores: list[DocumentScore]


class RecomputeResponse(BaseModel):
    aggregates: list[WeeklyAggregate]


class InfrastructureBody(BaseModel):
    snapshots: dict[str, CategorySnapshot]


# ---------------------------------------------------------------------------
# Routes: Assessment
# ---------------------------------------------------------------------------


@app.get("/api/categories", tags=["Assessment"], summary="List configured categories")
async def list_categories():
    book = get_rulebook()
    return [{"key": key, "title": rules.title} for key, rules in book.categories.items()]


@app.post("/api/assess/{category}", response_model=EnhancedAssessment,
          tags=["Assessment"], summary="Assess a batch of items for one category")
async def assess(category: str, body: AssessBody, session: Session = Depends(db_session)):
    client = None
    if body.use_ai:
        try:
            client = llm_client()
        except ValueError as exc:
            raise HTTPException(400, str(exc)) from exc
    result = await services.enhanced_assessment(body.items, category, client)
    if body.store:
        services.record_assessment(session, result)
        session.commit()
    return result


# ---------------------------------------------------------------------------
# Routes: Scoring
# ---------------------------------------------------------------------------


@app.post("/api/score/{category}", response_model=ScoreResponse,
          tags=["Scoring"], summary="Score and store documents for one category")
async def score(category: str, body: ItemsBody, session: Session = Depends(db_session)):
    if get_rulebook().category(category) is None:
        raise HTTPException(404, f"No assessment rules configured for category {category}")
    scores = score_document_batch(body.items, category)
    stored = services.store_document_scores(session, scores)
    session.commit()
    return ScoreResponse(stored=stored, scores=scores)


@app.post("/api/aggregates/recompute", response_model=RecomputeResponse,
          tags=["Scoring"], summary="Rebuild weekly aggregates from stored document scores")
async def recompute(category: str | None = None, session: Session = Depends(db_session)):
    aggregates = services.recompute_weekly_aggregates(session, category)
    session.commit()
    return RecomputeResponse(aggregates=aggregates)


# ---------------------------------------------------------------------------
# Routes: History
# ---------------------------------------------------------------------------


@app.get("/api/history/cumulative", response_model=dict[str, CumulativeScores],
         tags=["History"], summary="Cumulative scores for every category")
async def cumulative_all(
    half_life: float | None = Query(None, gt=0), session: Session = Depends(db_session),
):
    return services.all_cumulative_scores(session, half_life)


@app.get("/api/history/cumulative/{category}", response_model=CumulativeScores,
         tags=["History"], summary="Cumulative scores for one category")
async def cumulative_one(
    category: str,
    half_life: float | None = Query(None, gt=0),
    session: Session = Depends(db_session),
):
    return services.cumulative_scores(session, category, half_life)


@app.get("/api/history/weekly/{category}", response_model=list[WeeklyAggregate],
         tags=["History"], summary="Weekly aggregates for one category, oldest first")
async def weekly(
    category: str,
    start: str | None = None,
    end: str | None = None,
    session: Session = Depends(db_session),
):
    return services.load_weekly_series(session, category, start, end)


@app.get("/api/history/convergence", response_model=list[ConvergencePoint],
         tags=["History"], summary="Weekly convergence series from stored assessments")
async def convergence_history(start: str | None = None, session: Session = Depends(db_session)):
    return services.weekly_convergence(session, start)


# ---------------------------------------------------------------------------
# Routes: Review
# ---------------------------------------------------------------------------


@app.get("/api/reviews", response_model=list[ReviewItem],
         tags=["Review"], summary="Flagged assessments, pending by default")
async def list_reviews(resolved: bool = False, session: Session = Depends(db_session)):
    if resolved:
        return services.resolved_reviews(session)
    return services.pending_reviews(session)


@app.post("/api/reviews/{review_id}/resolve", response_model=ReviewItem,
          tags=["Review"], summary="Record a reviewer's decision on a flagged assessment")
async def resolve_review(review_id: int, body: ReviewDecision, session: Session = Depends(db_session)):
    item = services.resolve_review(session, review_id, body)
    if item is None:
        raise HTTPException(404, f"No pending review {review_id}")
    session.commit()
    return item


# ---------------------------------------------------------------------------
# Routes: Infrastructure
# ---------------------------------------------------------------------------


@app.post("/api/infrastructure", response_model=InfrastructureAssessment,
          tags=["Infrastructure"], summary="Scan category snapshots for converging themes")
async def infrastructure(body: InfrastructureBody):
    return analyze_infrastructure(body.snapshots)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("driftwatch.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
