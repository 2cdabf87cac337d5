"""Async HTTP adapter for the plan API.

Performs the network round-trips for metrics fetch/acknowledge, plan
fetch/recompute and profile updates, and returns immutable values from
:mod:`nutriplan.client.models`.

Retries are left to the caller, with one exception: a 401 triggers exactly
one silent token refresh and retry before ``AuthExpiredError`` surfaces.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from nutriplan.client.models import (
    AcknowledgeResult,
    HealthProfileUpdate,
    MetricsStatus,
    PlanResponse,
    ProfileUpdateResponse,
    TodayMetrics,
    TodayMetricsResult,
)
from nutriplan.domains.nutrition.errors import (
    InputValidationError,
    NetworkError,
    error_from_payload,
)

logger = logging.getLogger(__name__)

TokenRefresher = Callable[[], Awaitable[str]]
T = TypeVar("T")


class OperationState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RequestOrchestrator:
    """Client adapter over ``httpx.AsyncClient``.

    Usage::

        async with RequestOrchestrator(base_url, token=token, refresh_token=refresh) as api:
            today = await api.fetch_today_metrics()
            if today.requires_acknowledgment:
                await api.acknowledge_metrics(today.today.metrics.version,
                                              today.today.metrics.computed_at)
            plan = await api.fetch_plan()

    The in-flight counter is informational only; it may briefly lag under
    concurrent calls.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        refresh_token: TokenRefresher | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._refresh_token = refresh_token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._in_flight = 0
        self._states: dict[str, OperationState] = {}

    async def __aenter__(self) -> RequestOrchestrator:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._in_flight > 0

    def state(self, operation: str) -> OperationState:
        return self._states.get(operation, OperationState.IDLE)

    def clear_token(self) -> None:
        self._token = ""

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, body: dict[str, Any] | None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            return await self._ensure_client().request(method, path, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkError("The request timed out. Please try again.") from exc
        except httpx.TransportError as exc:
            raise NetworkError() from exc

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        *,
        passthrough: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Send one logical request; statuses in ``passthrough`` are returned, not raised."""
        self._states[operation] = OperationState.IN_FLIGHT
        self._in_flight += 1
        try:
            response = await self._send(method, path, body)
            if response.status_code == 401 and self._refresh_token is not None:
                logger.info("%s got 401; refreshing token once", operation)
                self._token = await self._refresh_token()
                response = await self._send(method, path, body)

            if response.status_code >= 400 and response.status_code not in passthrough:
                raise error_from_payload(_json_or_none(response), status_code=response.status_code)
        except Exception:
            self._states[operation] = OperationState.FAILED
            raise
        finally:
            self._in_flight -= 1

        self._states[operation] = OperationState.SUCCEEDED
        return response

    @staticmethod
    def _parse(operation: str, response: httpx.Response, build: Callable[[Any], T]) -> T:
        payload = _json_or_none(response)
        if not isinstance(payload, dict):
            raise NetworkError(f"Malformed response from server ({operation}).")
        try:
            return build(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Malformed response from server ({operation}).") from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_today_metrics(self) -> TodayMetricsResult:
        """Fetch today's metrics.

        404 maps to ``NOT_YET_COMPUTED`` and 400 to ``VALIDATION_FAILED``;
        every other error status raises.
        """
        response = await self._request(
            "fetch_today_metrics", "GET", "/v1/profile/metrics/today", passthrough=(400, 404)
        )
        if response.status_code == 404:
            return TodayMetricsResult(status=MetricsStatus.NOT_YET_COMPUTED)
        if response.status_code == 400:
            error = error_from_payload(_json_or_none(response), status_code=400)
            if not isinstance(error, InputValidationError):
                error = InputValidationError(error.message)
            logger.warning("Today's metrics failed validation: %s", error.code)
            return TodayMetricsResult(
                status=MetricsStatus.VALIDATION_FAILED,
                error_code=error.code,
                error_message=error.message,
            )
        return TodayMetricsResult(
            status=MetricsStatus.AVAILABLE,
            today=self._parse("fetch_today_metrics", response,
                              lambda p: TodayMetrics.from_dict(p["data"])),
        )

    async def acknowledge_metrics(self, version: int, metrics_computed_at: str) -> AcknowledgeResult:
        """Acknowledge one exact ``(version, computedAt)`` pair; idempotent server-side."""
        response = await self._request(
            "acknowledge_metrics",
            "POST",
            "/v1/profile/metrics/acknowledge",
            {"version": version, "metricsComputedAt": metrics_computed_at},
        )
        return self._parse("acknowledge_metrics", response,
                           lambda p: AcknowledgeResult.from_dict(p["data"]))

    async def fetch_plan(self, *, force_recompute: bool = False) -> PlanResponse:
        response = await self._request(
            "fetch_plan", "POST", "/v1/plans/generate", {"forceRecompute": force_recompute}
        )
        return self._parse("fetch_plan", response, lambda p: PlanResponse.from_dict(p["data"]))

    async def update_health_profile(self, update: HealthProfileUpdate) -> ProfileUpdateResponse:
        response = await self._request(
            "update_health_profile", "PUT", "/auth/profile/health", update.to_payload()
        )
        return self._parse("update_health_profile", response, ProfileUpdateResponse.from_dict)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


