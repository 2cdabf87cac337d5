"""Per-session container for the plan client.

One :class:`PlanSession` owns one orchestrator, one plan cache and the
optional background-refresh task. Nothing here is process-global; build a
session per signed-in user and pass it to whatever needs it.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import httpx

from nutriplan.client.models import (
    AcknowledgeResult,
    CachedPlan,
    HealthProfileUpdate,
    MetricsSnapshotView,
    ProfileUpdateResponse,
    TodayMetricsResult,
)
from nutriplan.client.orchestrator import RequestOrchestrator, TokenRefresher
from nutriplan.client.persistence import JsonFilePlanStore
from nutriplan.client.plan_cache import ChangeListener, PlanCache
from nutriplan.core.config.settings import Settings

logger = logging.getLogger(__name__)


class PlanSession:
    """Wires cache invalidation to logout, profile updates and first acknowledgment.

    Usage::

        async with PlanSession.from_settings(settings, token=token) as session:
            today = await session.todays_metrics()
            if today.requires_acknowledgment:
                await session.acknowledge(today.today.metrics)
            plan = await session.plan()
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        refresh_token: TokenRefresher | None = None,
        timeout: float = 10.0,
        cache_ttl: timedelta = timedelta(minutes=60),
        cache_path: str = "",
        background_refresh_seconds: float = 0.0,
        on_significant_change: ChangeListener | None = None,
        calorie_threshold: int = 50,
        protein_threshold: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
        **cache_kwargs: Any,
    ) -> None:
        self._orchestrator = RequestOrchestrator(
            base_url,
            token=token,
            refresh_token=refresh_token,
            timeout=timeout,
            transport=transport,
        )
        self._cache = PlanCache(
            lambda force: self._orchestrator.fetch_plan(force_recompute=force),
            ttl=cache_ttl,
            store=JsonFilePlanStore(cache_path) if cache_path else None,
            on_significant_change=on_significant_change,
            calorie_threshold=calorie_threshold,
            protein_threshold=protein_threshold,
            **cache_kwargs,
        )
        self._background_refresh_seconds = background_refresh_seconds
        self._acknowledged: set[tuple[int, str]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> PlanSession:
        kwargs.setdefault("timeout", settings.request_timeout_seconds)
        kwargs.setdefault("cache_ttl", timedelta(minutes=settings.plan_cache_ttl_minutes))
        kwargs.setdefault("cache_path", settings.plan_cache_path)
        kwargs.setdefault("background_refresh_seconds", settings.background_refresh_seconds)
        kwargs.setdefault("calorie_threshold", settings.significant_calorie_delta)
        kwargs.setdefault("protein_threshold", settings.significant_protein_delta)
        return cls(settings.api_base_url, **kwargs)

    async def __aenter__(self) -> PlanSession:
        await self._orchestrator.__aenter__()
        if self._background_refresh_seconds > 0:
            self._cache.start_background_refresh(self._background_refresh_seconds)
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._cache.stop_background_refresh()
        await self._orchestrator.aclose()

    @property
    def orchestrator(self) -> RequestOrchestrator:
        return self._orchestrator

    @property
    def cache(self) -> PlanCache:
        return self._cache

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def todays_metrics(self) -> TodayMetricsResult:
        return await self._orchestrator.fetch_today_metrics()

    async def acknowledge(self, metrics: MetricsSnapshotView) -> AcknowledgeResult:
        """Acknowledge the given metrics; the first time a pair is acknowledged
        in this session the cached plan is dropped so the next plan is fresh."""
        result = await self._orchestrator.acknowledge_metrics(metrics.version, metrics.computed_at)
        key = (metrics.version, metrics.computed_at)
        if key not in self._acknowledged:
            self._acknowledged.add(key)
            self._cache.invalidate()
        return result

    async def plan(self, *, timeout: float | None = None) -> CachedPlan:
        return await self._cache.fetch(timeout=timeout)

    async def recompute_plan(self, *, timeout: float | None = None) -> CachedPlan:
        return await self._cache.recompute(timeout=timeout)

    async def update_health_profile(self, update: HealthProfileUpdate) -> ProfileUpdateResponse:
        response = await self._orchestrator.update_health_profile(update)
        self._cache.invalidate()
        return response

    async def logout(self) -> None:
        self._cache.invalidate()
        self._acknowledged.clear()
        self._orchestrator.clear_token()
        await self.close()
        logger.info("Plan session logged out")
