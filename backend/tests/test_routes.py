"""Tests for the read-only report API."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from farmer.api import router
from farmer.models.market import Venue
from farmer.models.records import DecisionAction
from farmer.services.strategy_engine import make_decision
from tests.factories import estimate, execution, market, resolution


@pytest.fixture
def client(journal):
    app = FastAPI()
    app.include_router(router)
    app.state.journal = journal
    return TestClient(app)


class TestCalibrationRoutes:
    def test_empty_journal(self, client) -> None:
        resp = client.get("/farmer/calibration")
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_resolved"] == 0
        assert body["buckets"] == []

    def test_report(self, client, journal) -> None:
        for i in range(10):
            journal.append_resolution(resolution(0.7, won=i < 7))
        body = client.get("/farmer/calibration").json()
        assert body["total_resolved"] == 10
        assert body["win_rate"] == pytest.approx(0.7)
        assert body["buckets"][0]["range"] == "70-80%"

    def test_feedback_unavailable_until_enough_resolutions(self, client, journal) -> None:
        journal.append_resolution(resolution())
        assert client.get("/farmer/feedback").json() == {"available": False, "text": None}

    def test_feedback_text(self, client, journal) -> None:
        for _ in range(11):
            journal.append_resolution(resolution())
        body = client.get("/farmer/feedback").json()
        assert body["available"]
        assert body["text"].startswith("## Your Past Performance")


class TestJournalRoutes:
    def test_decisions_newest_first_and_filtered(self, client, journal) -> None:
        bet = make_decision(market(market_id="bet", probability=0.30), estimate(0.60), 1000)
        skip = make_decision(market(market_id="skip", probability=0.30), estimate(0.32), 1000)
        journal.append_decision(bet)
        journal.append_decision(skip)

        assert [d["market_id"] for d in client.get("/farmer/decisions").json()] == ["skip", "bet"]
        only_bets = client.get("/farmer/decisions", params={"action": "bet"}).json()
        assert [d["action"] for d in only_bets] == [DecisionAction.BET.value]

    def test_decision_limit_validated(self, client) -> None:
        assert client.get("/farmer/decisions", params={"limit": 0}).status_code == 422

    def test_positions(self, client, journal) -> None:
        journal.append_execution(execution(trace_id="open", market_id="m1"))
        journal.append_execution(execution(trace_id="dry", dry_run=True))
        journal.append_execution(execution(trace_id="poly", venue=Venue.POLYMARKET, market_id="0xc"))

        assert {p["trace_id"] for p in client.get("/farmer/positions").json()} == {"open", "poly"}
        manifold_only = client.get("/farmer/positions", params={"venue": "manifold"}).json()
        assert [p["trace_id"] for p in manifold_only] == ["open"]

    def test_monitor(self, client, journal) -> None:
        journal.append_execution(execution(trace_id="open", market_id="m1"))
        body = client.get("/farmer/monitor").json()
        assert body["positions"] == 1
        assert body["with_snapshot"] == 0
        assert body["verdict"] is None

    def test_health(self, client, journal) -> None:
        journal.append_execution(execution())
        body = client.get("/farmer/health").json()
        assert body["status"] == "healthy"
        assert body["executions"] == 1


def test_journal_required():
    app = FastAPI()
    app.include_router(router)
    assert TestClient(app).get("/farmer/calibration").status_code == 503
