"""Integration tests for the FastAPI endpoints.

Uses TestClient against a shared in-memory database.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from driftwatch.models import AssessmentRow, Base


@pytest.fixture()
def test_db():
    """In-memory SQLite; StaticPool so every session sees the same data."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine, TestSession


@pytest.fixture()
def client(test_db):
    engine, TestSession = test_db
    from driftwatch.app import app, db_session

    def override_db_session():
        session = TestSession()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[db_session] = override_db_session
    with patch("driftwatch.app.init_db"):
        with TestClient(app, raise_server_exceptions=True) as c:
            yield c, TestSession
    app.dependency_overrides.clear()


DRIFT_ITEMS = [
    {"title": "Positions moved to excepted service", "summary": "Removal protections narrowed"},
    {"title": "Routine benefits notice"},
]


class TestAssess:
    def test_categories(self, client):
        c, _ = client
        resp = c.get("/api/categories")
        assert resp.status_code == 200
        keys = [cat["key"] for cat in resp.json()]
        assert "civilService" in keys
        assert "courts" in keys

    def test_drift(self, client):
        c, _ = client
        resp = c.post("/api/assess/civilService", json={"items": DRIFT_ITEMS})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "Drift"
        assert data["ai_result"] is None
        assert data["keyword_result"]["detail"]["drift_count"] == 2
        assert data["how_we_could_be_wrong"]

    def test_capture_with_corroboration(self, client):
        c, _ = client
        resp = c.post("/api/assess/civilService", json={"items": [
            {"title": "Mass firing of career staff under Schedule F"},
        ]})
        assert resp.json()["status"] == "Capture"

    def test_unknown_category_is_warning(self, client):
        c, _ = client
        resp = c.post("/api/assess/weather", json={"items": DRIFT_ITEMS})
        assert resp.status_code == 200
        assert resp.json()["status"] == "Warning"
        assert "weather" in resp.json()["reason"]

    def test_error_items_only(self, client):
        c, _ = client
        resp = c.post("/api/assess/civilService", json={"items": [
            {"title": "Feed unavailable", "isError": True},
        ]})
        data = resp.json()
        assert data["status"] == "Stable"
        assert data["reason"].startswith("Not enough information")

    def test_ai_downgrade(self, client):
        c, _ = client
        llm = MagicMock()
        llm.provider = "openai"
        llm.model = "test-model"
        llm.call = AsyncMock(return_value={
            "status": "Warning",
            "confidence": 0.85,
            "reasoning": "Protections remain enforceable in court.",
            "howWeCouldBeWrong": ["Rule not final", "Small sample"],
        })
        with patch("driftwatch.app.llm_client", return_value=llm):
            resp = c.post("/api/assess/civilService", json={"items": DRIFT_ITEMS, "use_ai": True})
        data = resp.json()
        assert data["status"] == "Warning"
        assert data["keyword_result"]["status"] == "Drift"
        assert data["downgrade"]["downgrade_applied"] is True
        assert data["ai_result"]["provider"] == "openai"

    def test_store_assessment(self, client):
        c, TestSession = client
        resp = c.post("/api/assess/civilService", json={"items": DRIFT_ITEMS, "store": True})
        assert resp.status_code == 200
        session = TestSession()
        rows = session.query(AssessmentRow).all()
        session.close()
        assert len(rows) == 1
        assert rows[0].status == "Drift"

        history = c.get("/api/history/convergence").json()
        assert len(history) == 1
        assert history[0]["week"] == rows[0].week_of


class TestScoringHistory:
    ITEMS = [
        {"title": "Positions moved to excepted service", "link": "https://example.gov/a",
         "pubDate": "2025-01-22", "type": "Rule"},
        {"title": "Hiring freeze extended", "link": "https://example.gov/b",
         "pubDate": "2025-01-14"},
        {"title": "Broken feed", "isError": True},
    ]

    def test_score_recompute_and_history(self, client):
        c, _ = client
        resp = c.post("/api/score/civilService", json={"items": self.ITEMS})
        assert resp.status_code == 200
        data = resp.json()
        assert data["stored"] == 2
        by_url = {s["url"]: s for s in data["scores"]}
        assert by_url["https://example.gov/a"]["week_of"] == "2025-01-20"
        assert by_url["https://example.gov/a"]["drift_count"] == 1
        assert by_url["https://example.gov/b"]["week_of"] == "2025-01-13"

        resp = c.post("/api/aggregates/recompute", params={"category": "civilService"})
        assert resp.status_code == 200
        assert [a["week_of"] for a in resp.json()["aggregates"]] == ["2025-01-13", "2025-01-20"]

        weekly = c.get("/api/history/weekly/civilService").json()
        assert [w["week_of"] for w in weekly] == ["2025-01-13", "2025-01-20"]
        assert weekly[1]["total_severity"] == pytest.approx(by_url["https://example.gov/a"]["final_score"])

        ranged = c.get("/api/history/weekly/civilService", params={"start": "2025-01-20"}).json()
        assert len(ranged) == 1

        cumulative = c.get("/api/history/cumulative/civilService", params={"half_life": 4}).json()
        assert cumulative["week_count"] == 2
        assert cumulative["as_of"] == "2025-01-20"
        assert cumulative["decay_half_life_weeks"] == 4

        everything = c.get("/api/history/cumulative").json()
        assert everything["civilService"]["week_count"] == 2
        assert everything["fiscal"]["week_count"] == 0

    def test_rescoring_replaces_rows(self, client):
        c, _ = client
        c.post("/api/score/civilService", json={"items": self.ITEMS})
        resp = c.post("/api/score/civilService", json={"items": self.ITEMS[:1]})
        assert resp.json()["stored"] == 1
        aggs = c.post("/api/aggregates/recompute").json()["aggregates"]
        assert sum(a["document_count"] for a in aggs) == 2

    def test_unknown_category_404(self, client):
        c, _ = client
        resp = c.post("/api/score/weather", json={"items": self.ITEMS})
        assert resp.status_code == 404

    def test_invalid_half_life(self, client):
        c, _ = client
        resp = c.get("/api/history/cumulative/civilService", params={"half_life": 0})
        assert resp.status_code == 422

    def test_empty_history(self, client):
        c, _ = client
        assert c.get("/api/history/weekly/civilService").json() == []
        assert c.get("/api/history/convergence").json() == []


class TestInfrastructure:
    def test_active_convergence(self, client):
        c, _ = client
        resp = c.post("/api/infrastructure", json={"snapshots": {
            "igs": {
                "reason": "Detention facility expansion and new detention beds",
                "matches": ["facial recognition rollout", "social media monitoring expanded"],
            },
            "courts": {"matches": ["detention center audit"]},
        }})
        assert resp.status_code == 200
        data = resp.json()
        assert data["active_theme_count"] == 2
        assert data["convergence"] == "active"
        assert data["scanned_categories"] == 2

    def test_no_convergence(self, client):
        c, _ = client
        resp = c.post("/api/infrastructure", json={"snapshots": {"igs": {"reason": "Routine audit"}}})
        assert resp.json()["convergence"] == "none"


class TestReview:
    def _store_flagged(self, c) -> None:
        llm = MagicMock()
        llm.provider = "anthropic"
        llm.model = "test-model"
        llm.call = AsyncMock(return_value={
            "status": "Stable",
            "confidence": 0.9,
            "reasoning": "Nothing has been implemented yet.",
            "howWeCouldBeWrong": ["Rule could be finalized", "Small sample"],
        })
        with patch("driftwatch.app.llm_client", return_value=llm):
            resp = c.post("/api/assess/civilService", json={
                "items": DRIFT_ITEMS, "use_ai": True, "store": True,
            })
        assert resp.json()["downgrade"]["flagged_for_review"] is True

    def test_pending_and_resolve(self, client):
        c, _ = client
        self._store_flagged(c)
        c.post("/api/assess/civilService", json={"items": DRIFT_ITEMS, "store": True})

        pending = c.get("/api/reviews").json()
        assert len(pending) == 1
        review = pending[0]
        assert review["keyword_status"] == "Drift"
        assert review["ai_status"] == "Stable"
        assert review["ai_confidence"] == pytest.approx(0.9)
        assert review["ai_reasoning"] == "Nothing has been implemented yet."

        resp = c.post(f"/api/reviews/{review['id']}/resolve", json={
            "final_status": "Warning", "decision": "override", "reviewer": "analyst",
        })
        assert resp.status_code == 200
        assert resp.json()["resolution"]["final_status"] == "Warning"

        assert c.get("/api/reviews").json() == []
        resolved = c.get("/api/reviews", params={"resolved": True}).json()
        assert [r["id"] for r in resolved] == [review["id"]]

        again = c.post(f"/api/reviews/{review['id']}/resolve", json={"final_status": "Drift"})
        assert again.status_code == 404

    def test_unknown_review_404(self, client):
        c, _ = client
        resp = c.post("/api/reviews/42/resolve", json={"final_status": "Drift"})
        assert resp.status_code == 404

    def test_invalid_decision_422(self, client):
        c, _ = client
        self._store_flagged(c)
        review_id = c.get("/api/reviews").json()[0]["id"]
        resp = c.post(f"/api/reviews/{review_id}/resolve", json={
            "final_status": "Drift", "decision": "maybe",
        })
        assert resp.status_code == 422
