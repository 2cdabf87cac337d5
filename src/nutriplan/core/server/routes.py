"""HTTP/JSON endpoints for the plan API.

All responses use the envelope ``{"success": bool, "data" | "error": ...}``.
Errors carry ``code``, ``message`` and ``retryable`` and use the HTTP status
of their error class.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from nutriplan.core.server.auth import TokenSigner, authenticate
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.domain_logic.profile_input import parse_profile_update
from nutriplan.domains.nutrition.errors import InputValidationError, NutritionPlanError
from nutriplan.domains.nutrition.services.guards import storage_guard
from nutriplan.domains.nutrition.services.metrics_service import MetricsService
from nutriplan.domains.nutrition.services.plan_service import PlanService

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[JSONResponse]]


def error_response(exc: NutritionPlanError) -> JSONResponse:
    return JSONResponse({"success": False, "error": exc.to_dict()}, status_code=exc.status_code)


def success_response(data: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


async def _json_body(request: Request, *, allow_empty: bool = False) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return {}
        raise InputValidationError("Request body is required.")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InputValidationError("Request body must be valid JSON.") from exc
    if not isinstance(payload, dict):
        raise InputValidationError("Request body must be a JSON object.")
    return payload


class PlanApi:
    """Binds the plan/metrics services to HTTP handlers.

    Usage::

        api = PlanApi(metrics_service, plan_service, repository, signer)
        app = Starlette(routes=api.routes())
    """

    def __init__(
        self,
        metrics: MetricsService,
        plans: PlanService,
        repository: PlanRepository,
        signer: TokenSigner,
    ) -> None:
        self._metrics = metrics
        self._plans = plans
        self._repo = repository
        self._signer = signer

    def _endpoint(self, name: str, handler: Callable[[Request, str], Awaitable[JSONResponse]]) -> Handler:
        async def endpoint(request: Request) -> JSONResponse:
            try:
                user_id = authenticate(request, self._signer)
                return await handler(request, user_id)
            except NutritionPlanError as exc:
                logger.info("%s failed: %s", name, exc.code)
                return error_response(exc)
            except Exception:
                logger.exception("Unhandled error in %s", name)
                return error_response(NutritionPlanError())

        endpoint.__name__ = name
        return endpoint

    def route_table(self) -> list[tuple[str, list[str], Handler]]:
        return [
            ("/v1/profile/metrics/today", ["GET"],
             self._endpoint("todays_metrics", self.todays_metrics)),
            ("/v1/profile/metrics/acknowledge", ["POST"],
             self._endpoint("acknowledge_metrics", self.acknowledge_metrics)),
            ("/auth/profile/health", ["PUT"],
             self._endpoint("update_health_profile", self.update_health_profile)),
            ("/v1/plans/generate", ["POST"],
             self._endpoint("generate_plan", self.generate_plan)),
        ]

    def routes(self) -> list[Route]:
        return [
            Route(path, endpoint=handler, methods=methods)
            for path, methods, handler in self.route_table()
        ]

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def todays_metrics(self, request: Request, user_id: str) -> JSONResponse:
        return success_response(self._metrics.get_today(user_id))

    async def acknowledge_metrics(self, request: Request, user_id: str) -> JSONResponse:
        payload = await _json_body(request)
        data, _created = self._metrics.acknowledge(
            user_id, payload.get("version"), payload.get("metricsComputedAt")
        )
        return success_response(data)

    async def update_health_profile(self, request: Request, user_id: str) -> JSONResponse:
        payload = await _json_body(request)
        with storage_guard("profile lookup"):
            existing = self._repo.get_profile(user_id)
        profile, activity, goal = parse_profile_update(payload, existing)
        result = self._plans.update_health_profile(user_id, profile, activity, goal)
        return JSONResponse({"success": True, **result.to_dict()})

    async def generate_plan(self, request: Request, user_id: str) -> JSONResponse:
        payload = await _json_body(request, allow_empty=True)
        force = payload.get("forceRecompute", False)
        if not isinstance(force, bool):
            raise InputValidationError("forceRecompute must be a boolean.")
        result = self._plans.generate_plan(user_id, force_recompute=force)
        return success_response(result.to_dict(), status_code=201 if result.recomputed else 200)
