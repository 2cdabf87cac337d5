"""Integration tests for the NutriPlan MCP server."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from fastmcp import Client

from nutriplan.core.server.app import create_app, create_http_app
from nutriplan.core.server.auth import TokenSigner
from nutriplan.core.storage.database import PlanDatabase


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    """Decode the JSON text of a tool result."""
    return json.loads(result.content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "todays_health_metrics",
    "acknowledge_health_metrics",
    "generate_nutrition_plan",
    "update_health_profile",
    "compute_health_metrics",
    "audit_summary",
]

PROFILE_ARGS = {
    "user_id": "user-1",
    "current_weight_kg": 80.0,
    "height_cm": 175.0,
    "date_of_birth": "1990-01-01",
    "gender": "male",
    "target_weight_kg": 70.0,
    "activity_level": "moderately_active",
    "primary_goal": "lose_weight",
}


@pytest.fixture
def database():
    db = PlanDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner("integration-secret")


@pytest.fixture
def server(database, signer, clock):
    return create_app(database_override=database, signer_override=signer, clock=clock)


@pytest.fixture
def client(server):
    """Create an MCP client connected to a fresh in-memory server."""
    return Client(server)


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    """health_check tool should return status ok with store counts."""
    async def _check():
        async with client:
            result = await client.call_tool("health_check", {})
            data = _payload(result)
            assert data["status"] == "ok"
            assert data["users"] == 0
            assert data["acknowledgments_stored"] == 0
    _run(_check())


def test_acknowledgment_gate_through_tools(client):
    """A plan is refused until today's exact metrics are acknowledged."""
    async def _check():
        async with client:
            update = _payload(await client.call_tool("update_health_profile", PROFILE_ARGS))
            assert update["status"] == "ok"
            assert update["acknowledgmentRequired"] is True

            today = _payload(await client.call_tool("todays_health_metrics", {"user_id": "user-1"}))
            metrics = today["metrics"]
            assert metrics["bmr"] == 1719
            assert today["acknowledged"] is False

            blocked = _payload(await client.call_tool("generate_nutrition_plan", {"user_id": "user-1"}))
            assert blocked["status"] == "error"
            assert blocked["code"] == "METRICS_ACK_REQUIRED"

            ack_args = {
                "user_id": "user-1",
                "version": metrics["version"],
                "metrics_computed_at": metrics["computedAt"],
            }
            ack = _payload(await client.call_tool("acknowledge_health_metrics", ack_args))
            assert ack["newlyAcknowledged"] is True
            again = _payload(await client.call_tool("acknowledge_health_metrics", ack_args))
            assert again["status"] == "ok"
            assert again["newlyAcknowledged"] is False

            plan = _payload(await client.call_tool("generate_nutrition_plan", {"user_id": "user-1"}))
            assert plan["status"] == "ok"
            assert plan["targets"]["calorieTarget"] == 2164
            assert plan["recomputed"] is True

            summary = _payload(await client.call_tool("audit_summary", {}))
            assert summary["gate_outcomes"]["acknowledged"] >= 1
            assert summary["gate_outcomes"]["not_acknowledged"] >= 1
    _run(_check())


def test_compute_metrics_tool_unknown_user(client):
    async def _check():
        async with client:
            result = _payload(await client.call_tool("compute_health_metrics", {"user_id": "ghost"}))
            assert result["status"] == "error"
            assert result["code"] == "PROFILE_NOT_FOUND"
    _run(_check())


def test_http_routes_mounted(server, signer):
    """Custom routes are served by the MCP server's HTTP app."""
    app = server.http_app()

    async def _check():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            headers = {"Authorization": f"Bearer {signer.issue_token('user-1')}"}
            resp = await http.get("/v1/profile/metrics/today", headers=headers)
            assert resp.status_code == 404
            assert resp.json()["error"]["code"] == "METRICS_NOT_COMPUTED"

            unauth = await http.post("/v1/plans/generate")
            assert unauth.status_code == 401
    _run(_check())


def test_http_app_runs_metrics_job(plan_db, profile_encryptor, plan_repository, seeded_user, signer, clock):
    """The served app computes snapshots on a loop for as long as it runs."""
    app = create_http_app(
        metrics_job_interval_seconds=0.01,
        database_override=plan_db,
        encryptor_override=profile_encryptor,
        signer_override=signer,
        clock=clock,
    )

    async def _serve_briefly():
        async with app.router.lifespan_context(app):
            await asyncio.sleep(0.05)

    _run(_serve_briefly())
    snapshot = plan_repository.get_latest_snapshot(seeded_user)
    assert snapshot is not None
    assert snapshot.version == 1
    assert plan_repository.count_snapshots(seeded_user) == 1


def test_http_app_without_metrics_loop(plan_db, profile_encryptor, plan_repository, seeded_user, signer, clock):
    app = create_http_app(
        metrics_job_interval_seconds=0,
        database_override=plan_db,
        encryptor_override=profile_encryptor,
        signer_override=signer,
        clock=clock,
    )

    async def _serve_briefly():
        async with app.router.lifespan_context(app):
            await asyncio.sleep(0.02)

    _run(_serve_briefly())
    assert plan_repository.count_snapshots(seeded_user) == 0
