"""MCP tools for metrics review, acknowledgment and plan generation.

The tools go through the same services as the HTTP routes, so plan
generation from an assistant is gated by metrics acknowledgment exactly
like the mobile client.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from fastmcp import Context, FastMCP

from nutriplan.domains.nutrition.domain_logic.profile_input import parse_profile_update
from nutriplan.domains.nutrition.errors import NutritionPlanError
from nutriplan.domains.nutrition.services.guards import storage_guard
from nutriplan.domains.nutrition.services.metrics_service import snapshot_to_dict

if TYPE_CHECKING:
    from nutriplan.core.audit.logger import AuditLogger
    from nutriplan.core.storage.repository import PlanRepository
    from nutriplan.domains.nutrition.jobs.daily_metrics import MetricsComputationJob
    from nutriplan.domains.nutrition.services.metrics_service import MetricsService
    from nutriplan.domains.nutrition.services.plan_service import PlanService

logger = logging.getLogger(__name__)


def register_plan_tools(
    mcp: FastMCP,
    *,
    metrics_service: MetricsService,
    plan_service: PlanService,
    repository: PlanRepository,
    metrics_job: MetricsComputationJob,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register nutrition plan tools on the MCP server."""

    def run_tool(
        tool_name: str,
        user_id: str,
        tool_input: dict[str, Any],
        call: Callable[[], dict[str, Any]],
    ) -> str:
        start = time.monotonic()
        try:
            result = {"status": "ok", **call()}
            status, error_type = "success", None
        except NutritionPlanError as exc:
            logger.info("Tool %s failed for user %s: %s", tool_name, user_id, exc.code)
            result = {"status": "error", **exc.to_dict()}
            status, error_type = "failure", exc.code

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                tool_input,
                user_id=user_id,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                status=status,
                error_type=error_type,
            )
        return json.dumps(result, indent=2)

    @mcp.tool
    async def todays_health_metrics(ctx: Context, user_id: str) -> str:
        """Show today's BMI, BMR and TDEE with plain-language explanations.

        Also reports whether these exact metrics have been acknowledged.

        Args:
            user_id: The user whose metrics to show.
        """
        return run_tool(
            "todays_health_metrics", user_id, {"user_id": user_id},
            lambda: metrics_service.get_today(user_id),
        )

    @mcp.tool
    async def acknowledge_health_metrics(
        ctx: Context,
        user_id: str,
        version: int,
        metrics_computed_at: str,
    ) -> str:
        """Acknowledge today's health metrics so a plan can be generated.

        Args:
            user_id: The user acknowledging.
            version: Metrics version, as returned by todays_health_metrics.
            metrics_computed_at: The exact computedAt timestamp of those metrics.
        """
        def call() -> dict[str, Any]:
            data, created = metrics_service.acknowledge(user_id, version, metrics_computed_at)
            return {**data, "newlyAcknowledged": created}

        return run_tool(
            "acknowledge_health_metrics",
            user_id,
            {"user_id": user_id, "version": version, "metrics_computed_at": metrics_computed_at},
            call,
        )

    @mcp.tool
    async def generate_nutrition_plan(
        ctx: Context,
        user_id: str,
        force_recompute: bool = False,
    ) -> str:
        """Generate (or reuse a recent) daily calorie, protein and water plan.

        Requires today's metrics to be acknowledged first.

        Args:
            user_id: The user to plan for.
            force_recompute: Skip recent-plan reuse and compute a fresh plan.
        """
        return run_tool(
            "generate_nutrition_plan",
            user_id,
            {"user_id": user_id, "force_recompute": force_recompute},
            lambda: plan_service.generate_plan(user_id, force_recompute=force_recompute).to_dict(),
        )

    @mcp.tool
    async def update_health_profile(
        ctx: Context,
        user_id: str,
        current_weight_kg: float | None = None,
        height_cm: float | None = None,
        date_of_birth: str | None = None,
        gender: str | None = None,
        target_weight_kg: float | None = None,
        activity_level: str | None = None,
        primary_goal: str | None = None,
    ) -> str:
        """Update health inputs (metric units) and recompute the plan if allowed.

        Omitted fields keep their stored values.

        Args:
            user_id: The user to update.
            current_weight_kg: Current weight in kilograms.
            height_cm: Height in centimeters.
            date_of_birth: ISO date, e.g. '1990-04-02'.
            gender: 'male', 'female' or 'other'.
            target_weight_kg: Goal weight in kilograms.
            activity_level: sedentary, lightly_active, moderately_active,
                very_active or extremely_active.
            primary_goal: lose_weight, gain_muscle, maintain or improve_health.
        """
        payload = {
            "currentWeight": current_weight_kg,
            "height": height_cm,
            "dateOfBirth": date_of_birth,
            "gender": gender,
            "activityLevel": activity_level,
            "primaryGoal": primary_goal,
        }
        if target_weight_kg is not None:
            payload["targetWeight"] = target_weight_kg

        def call() -> dict[str, Any]:
            with storage_guard("profile lookup"):
                existing = repository.get_profile(user_id)
            profile, activity, goal = parse_profile_update(payload, existing)
            return plan_service.update_health_profile(user_id, profile, activity, goal).to_dict()

        return run_tool("update_health_profile", user_id, payload, call)

    @mcp.tool
    async def compute_health_metrics(
        ctx: Context,
        user_id: str,
        force: bool = False,
    ) -> str:
        """Compute today's metrics snapshot for a user (normally done by the daily job).

        Args:
            user_id: The user to compute metrics for.
            force: Recompute even if today's snapshot is current.
        """
        def call() -> dict[str, Any]:
            with storage_guard("metrics compute"):
                snapshot = metrics_job.compute_for_user(user_id, force=force)
            return {"metrics": snapshot_to_dict(snapshot)}

        return run_tool(
            "compute_health_metrics", user_id, {"user_id": user_id, "force": force}, call,
        )
