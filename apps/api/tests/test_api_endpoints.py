"""
API endpoint tests for scores, training load and backfill.

Uses FastAPI TestClient with get_db overridden to the SQLite test session.
"""

from datetime import date, datetime, time, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import make_ride, make_sample
from core.database import get_db
from core.exceptions import CompletenessRegressionError

DAY = date(2024, 3, 14)


@pytest.fixture
def client(db_session):
    from main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def week(db_session, athlete):
    for offset in range(8):
        db_session.add(make_sample(DAY - timedelta(days=offset)))
    db_session.add(make_ride(datetime.combine(DAY - timedelta(days=1), time(9, 0))))
    db_session.commit()


class TestScoresEndpoints:

    def test_score_record(self, client, week):
        response = client.get(f"/v1/scores/{DAY.isoformat()}")
        assert response.status_code == 200
        body = response.json()
        assert body["date"] == DAY.isoformat()
        assert body["sleep"]["status"] == "ok"
        assert body["recovery"]["status"] == "ok"
        assert body["strain"]["family"] == "strain"

    def test_single_family(self, client, week):
        response = client.get(f"/v1/scores/{DAY.isoformat()}/sleep")
        assert response.status_code == 200
        body = response.json()
        assert body["family"] == "sleep"
        assert 0 <= body["score"] <= 100
        assert body["inputs_total"] == 5

    def test_score_is_stored_on_first_read(self, client, week):
        first = client.get(f"/v1/scores/{DAY.isoformat()}/recovery").json()
        second = client.get(f"/v1/scores/{DAY.isoformat()}/recovery").json()
        assert first == second

    def test_unscored_night_is_no_data(self, client, db_session):
        response = client.get(f"/v1/scores/{DAY.isoformat()}/sleep")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "no_data"
        assert body["score"] is None

    def test_unknown_family(self, client):
        response = client.get(f"/v1/scores/{DAY.isoformat()}/mood")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_bad_date(self, client):
        response = client.get("/v1/scores/not-a-date")
        assert response.status_code == 422

    def test_invariant_violation_is_conflict(self, client, week):
        with patch(
            "routers.scores.ScoringService.family_score",
            side_effect=CompletenessRegressionError(DAY, "sleep", 5, 3),
        ):
            response = client.get(f"/v1/scores/{DAY.isoformat()}/sleep")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVARIANT_VIOLATION"


class TestTrainingLoadEndpoints:

    def test_single_day(self, client, week):
        response = client.get(f"/v1/training-load/{DAY.isoformat()}")
        assert response.status_code == 200
        body = response.json()
        assert body["tsb"] == pytest.approx(body["ctl"] - body["atl"], abs=0.11)

    def test_range(self, client, week):
        start = DAY - timedelta(days=6)
        response = client.get(
            "/v1/training-load", params={"start": start.isoformat(), "end": DAY.isoformat()}
        )
        assert response.status_code == 200
        points = response.json()["points"]
        assert [p["date"] for p in points] == [(start + timedelta(days=i)).isoformat() for i in range(7)]
        assert sum(p["activity_count"] for p in points) == 1

    def test_range_end_before_start(self, client):
        response = client.get(
            "/v1/training-load", params={"start": DAY.isoformat(), "end": (DAY - timedelta(days=1)).isoformat()}
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR_END"

    def test_summary(self, client, week):
        response = client.get("/v1/training-load/summary", params={"as_of": DAY.isoformat()})
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {
            "date", "current_atl", "current_ctl", "current_tsb",
            "atl_trend", "ctl_trend", "tsb_trend", "zone",
        }
        assert body["date"] == DAY.isoformat()
        assert body["zone"]["zone"] in {
            "race_ready", "recovering", "optimal_training", "overreaching", "overtraining_risk",
        }

    def test_untrained_summary(self, client):
        response = client.get("/v1/training-load/summary", params={"as_of": DAY.isoformat()})
        assert response.status_code == 200
        assert response.json()["current_ctl"] == 0.0


class TestBackfillEndpoint:

    def test_run_backfill(self, client, db_session):
        response = client.post("/v1/backfill", params={"window": 3, "force": True})
        assert response.status_code == 200
        body = response.json()
        assert body["window"] == 3
        assert body["force"] is True
        assert set(body["families"]) == {"sleep", "recovery", "strain"}
        assert body["load_error"] is None

    def test_family_filter(self, client, db_session):
        response = client.post("/v1/backfill", params={"window": 2, "family": ["sleep"]})
        assert response.status_code == 200
        assert list(response.json()["families"]) == ["sleep"]

    def test_unknown_family_rejected(self, client):
        response = client.post("/v1/backfill", params={"family": ["mood"]})
        assert response.status_code == 422

    def test_window_validated(self, client):
        response = client.post("/v1/backfill", params={"window": 0})
        assert response.status_code == 422


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
