"""Tests for the deal and pipeline API routes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

CALL = {
    "budget_clarity": "clear",
    "competition": "none",
    "engagement": "medium",
    "plan_fit": "medium",
}

pytestmark = pytest.mark.integration


def _create(client: TestClient, **overrides) -> dict:
    payload = {
        "client_id": "client-api",
        "rep_id": "rep-1",
        "predicted_tier": "best",
        "predicted_monthly": "1500.00",
        "call_score": CALL,
    }
    payload.update(overrides)
    resp = client.post("/api/deals", json=payload, headers={"X-Actor-Id": "rep-1"})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _future(days: int = 7) -> str:
    return (datetime.now(UTC) + timedelta(days=days)).isoformat()


class TestDealRoutes:
    def test_create_and_get(self, client_with_db: TestClient) -> None:
        created = _create(client_with_db)
        assert created["state"] == "active"
        assert created["confidence_score"] == 90
        assert Decimal(created["predicted_monthly"]) == Decimal("1500")

        resp = client_with_db.get(f"/api/deals/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["client_id"] == "client-api"

    def test_create_validation_error(self, client_with_db: TestClient) -> None:
        resp = client_with_db.post("/api/deals", json={"client_id": ""})
        assert resp.status_code == 422

    def test_create_unknown_factor_value(self, client_with_db: TestClient) -> None:
        resp = client_with_db.post(
            "/api/deals",
            json={"client_id": "c", "call_score": dict(CALL, engagement="ecstatic")},
        )
        assert resp.status_code == 422
        assert "engagement" in resp.json()["detail"]

    def test_unknown_deal_is_404(self, client_with_db: TestClient) -> None:
        assert client_with_db.get("/api/deals/987654").status_code == 404
        assert client_with_db.get("/api/deals/987654/score").status_code == 404
        assert client_with_db.post("/api/deals/987654/revive").status_code == 404

    def test_score_breakdown(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.get(f"/api/deals/{deal['id']}/score")
        assert resp.status_code == 200
        body = resp.json()
        assert body["final_score"] == 90
        assert body["confidence_fraction"] == 0.9
        assert body["base_score"] == 82.0
        assert body["tier_multiplier"] == 1.1
        assert body["config_version"] == "v2"
        assert set(body["penalties"]) == {
            "email_not_opened",
            "proposal_not_viewed",
            "silence",
            "excessive_follow_up",
        }

    def test_recalculate_is_idempotent(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        first = client_with_db.post(f"/api/deals/{deal['id']}/recalculate")
        second = client_with_db.post(f"/api/deals/{deal['id']}/recalculate")
        assert first.status_code == 200
        assert first.json()["final_score"] == second.json()["final_score"]

        history = client_with_db.get(f"/api/deals/{deal['id']}/history").json()
        assert len(history["items"]) == 1

    def test_audit_trail_records_actor(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        audit = client_with_db.get(f"/api/deals/{deal['id']}/audit").json()
        assert audit["deal_id"] == deal["id"]
        assert audit["items"][0]["action"] == "deal_created"
        assert audit["items"][0]["actor_id"] == "rep-1"


class TestEventRoutes:
    def test_call_score_update(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.put(
            f"/api/deals/{deal['id']}/call-score", json=dict(CALL, plan_fit="strong")
        )
        assert resp.status_code == 200
        assert resp.json()["plan_fit"] == "strong"
        assert resp.json()["confidence_score"] > deal["confidence_score"]

    def test_sent_milestone_and_communication(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        deal_id = deal["id"]
        assert client_with_db.post(f"/api/deals/{deal_id}/sent", json={}).status_code == 200
        resp = client_with_db.post(
            f"/api/deals/{deal_id}/milestones", json={"milestone": "email_opened"}
        )
        assert resp.status_code == 200
        assert resp.json()["first_email_opened_at"] is not None

        resp = client_with_db.post(
            f"/api/deals/{deal_id}/communications", json={"direction": "outbound"}
        )
        assert resp.json()["unanswered_outbound_count"] == 1

    def test_bad_milestone_is_422(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/milestones", json={"milestone": "signed"}
        )
        assert resp.status_code == 422

    def test_invites(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.put(
            f"/api/deals/{deal['id']}/invites",
            json={"total_invites": 2, "invites_opened": 3},
        )
        assert resp.status_code == 422

    def test_external_audit_event(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/audit-events",
            json={"action": "item_added", "details": {"item": "Local SEO"}},
        )
        assert resp.status_code == 200
        audit = client_with_db.get(f"/api/deals/{deal['id']}/audit").json()
        assert audit["items"][-1]["action"] == "item_added"


class TestLifecycleRoutes:
    def test_snooze_and_unsnooze(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/snooze",
            json={"snoozed_until": _future(), "reason": "Client traveling"},
        )
        assert resp.status_code == 200
        assert resp.json()["state"] == "snoozed"

        resp = client_with_db.delete(f"/api/deals/{deal['id']}/snooze")
        assert resp.status_code == 200
        assert resp.json()["state"] == "active"
        assert resp.json()["snoozed_until"] is None

    def test_snooze_in_past_is_409(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/snooze", json={"snoozed_until": _future(-1)}
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["command"] == "snooze"

    def test_archive_other_without_notes_is_409(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(f"/api/deals/{deal['id']}/archive", json={"reason": "other"})
        assert resp.status_code == 409
        assert client_with_db.get(f"/api/deals/{deal['id']}").json()["state"] == "active"

    def test_archive_then_revive(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/archive", json={"reason": "went_dark"}
        )
        assert resp.json()["state"] == "archived"

        resp = client_with_db.post(f"/api/deals/{deal['id']}/revive")
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == deal["id"]
        assert body["state"] == "active"
        assert body["revived_at"] is not None

    def test_terminal_status(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(
            f"/api/deals/{deal['id']}/terminal", json={"status": "closed_lost", "reason": "price"}
        )
        assert resp.status_code == 200
        assert resp.json()["confidence_score"] == 0

        resp = client_with_db.post(f"/api/deals/{deal['id']}/snooze", json={"snoozed_until": _future()})
        assert resp.status_code == 409

    def test_invalid_terminal_status_is_422(self, client_with_db: TestClient) -> None:
        deal = _create(client_with_db)
        resp = client_with_db.post(f"/api/deals/{deal['id']}/terminal", json={"status": "won"})
        assert resp.status_code == 422


class TestPipelineRoutes:
    def test_aggregates(self, client_with_db: TestClient) -> None:
        _create(client_with_db, predicted_monthly="1000")
        lost = _create(client_with_db, client_id="client-lost", predicted_monthly="5000")
        client_with_db.post(f"/api/deals/{lost['id']}/terminal", json={"status": "closed_lost"})

        resp = client_with_db.get("/api/pipeline/aggregates")
        assert resp.status_code == 200
        body = resp.json()
        assert body["deal_count"] == 1
        assert Decimal(body["total_raw_monthly"]) == Decimal("1000")
        assert Decimal(body["total_weighted_monthly"]) == Decimal("900.00")
        assert set(body["buckets"]) == {"closing_soon", "in_pipeline", "at_risk", "on_hold"}

    def test_aggregates_bad_tier(self, client_with_db: TestClient) -> None:
        resp = client_with_db.get("/api/pipeline/aggregates", params={"predicted_tier": "gold"})
        assert resp.status_code == 422

    def test_config(self, client: TestClient) -> None:
        resp = client.get("/api/pipeline/config")
        assert resp.status_code == 200
        body = resp.json()
        assert body["version"] == "v2"
        assert body["daily_sweep_time"] == "06:00"
        assert "v1" in body["available_versions"]
