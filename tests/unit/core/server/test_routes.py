"""Tests for the plan HTTP API, driven through httpx's ASGI transport."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from starlette.applications import Starlette

from nutriplan.core.server.auth import TokenSigner
from nutriplan.core.server.routes import PlanApi


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner("route-test-secret")


@pytest.fixture
def app(metrics_service, plan_service, plan_repository, signer) -> Starlette:
    api = PlanApi(metrics_service, plan_service, plan_repository, signer)
    return Starlette(routes=api.routes())


@pytest.fixture
def call(app, signer):
    """Issue one request as ``user-1`` (or unauthenticated) and return the response."""
    def _call(method: str, path: str, *, json=None, content=None, auth: bool = True, token=None):
        headers = {"Authorization": f"Bearer {signer.issue_token('user-1')}"} if auth else {}
        if token is not None:
            headers = {"Authorization": b"Bearer " + token}

        async def _send():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                return await client.request(method, path, json=json, content=content, headers=headers)

        return _run(_send())
    return _call


class TestAuth:
    def test_missing_token(self, call):
        resp = call("GET", "/v1/profile/metrics/today", auth=False)
        assert resp.status_code == 401
        assert resp.json() == {
            "success": False,
            "error": {
                "code": "AUTH_EXPIRED",
                "message": "Not authenticated. Please sign in.",
                "retryable": True,
            },
        }

    def test_non_ascii_token_is_unauthorized(self, call):
        resp = call("GET", "/v1/profile/metrics/today", token="é.1.x".encode("utf-8"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTH_EXPIRED"


class TestTodaysMetrics:
    def test_not_computed(self, call, seeded_user):
        resp = call("GET", "/v1/profile/metrics/today")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "METRICS_NOT_COMPUTED"
        assert resp.json()["error"]["retryable"] is False

    def test_returns_metrics(self, call, metrics_job, seeded_user):
        metrics_job.compute_for_user(seeded_user)
        body = call("GET", "/v1/profile/metrics/today").json()
        assert body["success"] is True
        assert body["data"]["metrics"]["version"] == 1
        assert body["data"]["metrics"]["computedAt"] == "2026-03-10T09:00:00.123456+00:00"
        assert body["data"]["acknowledged"] is False

    def test_unexpected_error_is_500(self, call, metrics_service, monkeypatch):
        def boom(user_id):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(metrics_service, "get_today", boom)
        resp = call("GET", "/v1/profile/metrics/today")
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "INTERNAL_ERROR"


class TestAcknowledgeAndGenerate:
    def test_full_flow(self, call, metrics_job, seeded_user):
        snapshot = metrics_job.compute_for_user(seeded_user)

        blocked = call("POST", "/v1/plans/generate")
        assert blocked.status_code == 403
        assert blocked.json()["error"]["code"] == "METRICS_ACK_REQUIRED"

        ack_body = {"version": snapshot.version, "metricsComputedAt": snapshot.computed_at_iso}
        first = call("POST", "/v1/profile/metrics/acknowledge", json=ack_body)
        again = call("POST", "/v1/profile/metrics/acknowledge", json=ack_body)
        assert first.status_code == again.status_code == 200
        assert first.json()["data"]["acknowledged"] is True

        created = call("POST", "/v1/plans/generate")
        assert created.status_code == 201
        assert created.json()["data"]["targets"] == {
            "calorieTarget": 2164,
            "proteinTarget": 176,
            "waterTarget": 3300,
            "estimatedWeeks": 20,
        }

        reused = call("POST", "/v1/plans/generate", json={})
        assert reused.status_code == 200
        assert reused.json()["data"]["recomputed"] is False

        forced = call("POST", "/v1/plans/generate", json={"forceRecompute": True})
        assert forced.status_code == 201
        assert forced.json()["data"]["previousTargets"]["calorieTarget"] == 2164

    def test_stale_pair_rejected(self, call, metrics_job, seeded_user):
        metrics_job.compute_for_user(seeded_user)
        resp = call(
            "POST",
            "/v1/profile/metrics/acknowledge",
            json={"version": 1, "metricsComputedAt": "2026-03-10T09:00:00Z"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "STALE_ACKNOWLEDGMENT"

    def test_invalid_json(self, call, seeded_user):
        resp = call("POST", "/v1/profile/metrics/acknowledge", content=b"{not json")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_empty_ack_body(self, call, seeded_user):
        resp = call("POST", "/v1/profile/metrics/acknowledge")
        assert resp.status_code == 400

    def test_force_flag_must_be_boolean(self, call, seeded_user):
        resp = call("POST", "/v1/plans/generate", json={"forceRecompute": "yes"})
        assert resp.status_code == 400
        assert "forceRecompute" in resp.json()["error"]["message"]


class TestHealthProfile:
    def test_first_profile_requires_acknowledgment(self, call):
        resp = call(
            "PUT",
            "/auth/profile/health",
            json={
                "currentWeight": 80,
                "height": 175,
                "dateOfBirth": "1990-01-01",
                "gender": "male",
                "activityLevel": "moderately_active",
                "primaryGoal": "maintain",
            },
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        # the profile update computes fresh metrics that still await acknowledgment
        assert body["acknowledgmentRequired"] is True
        assert body["planUpdated"] is False
        assert body["profile"]["weight_kg"] == 80.0

    def test_partial_update_of_unknown_user(self, call):
        resp = call("PUT", "/auth/profile/health", json={"currentWeight": 80})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "height is required."

    def test_out_of_range(self, call, seeded_user):
        resp = call("PUT", "/auth/profile/health", json={"currentWeight": 900})
        assert resp.status_code == 400
        assert "Weight" in resp.json()["error"]["message"]

    def test_goal_change_after_acknowledgment(self, call, metrics_job, ack_store, seeded_user):
        ack_store.acknowledge(metrics_job.compute_for_user(seeded_user))
        call("POST", "/v1/plans/generate")

        body = call("PUT", "/auth/profile/health", json={"primaryGoal": "maintain"}).json()
        assert body["acknowledgmentRequired"] is False
        assert body["planUpdated"] is True
        assert body["targets"]["calorieTarget"] == 2664
        assert body["changes"]["calorieDelta"] == 500
