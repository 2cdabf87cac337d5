"""Client-side plan cache with TTL, single-flight fetches and invalidation.

States: EMPTY -> FRESH -> STALE (by age) and back to EMPTY on invalidation.

* ``fetch()`` returns a fresh entry without touching the network.
* An empty or stale cache issues one network call. Concurrent callers join
  the call already in flight instead of starting another.
* ``fetch(force_recompute=True)`` / ``recompute()`` always go to the network
  and keep the replaced targets as ``previous_targets``.
* A caller that stops waiting (cancellation or timeout) does not cancel
  the underlying fetch. It completes and updates the cache for everyone else.
* Only this class mutates the cached entry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable

from nutriplan.client.models import CachedPlan, PlanResponse
from nutriplan.client.persistence import PersistenceError, PlanStore
from nutriplan.domains.nutrition.domain_logic.significant_change import PlanChange, compare
from nutriplan.domains.nutrition.errors import NutritionPlanError

logger = logging.getLogger(__name__)

PlanFetcher = Callable[[bool], Awaitable[PlanResponse]]
ChangeListener = Callable[[PlanChange], None]

DEFAULT_TTL = timedelta(minutes=60)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheState(str, Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class PlanCache:
    """Holds the most recent plan for one user session.

    Usage::

        cache = PlanCache(lambda force: api.fetch_plan(force_recompute=force))
        entry = await cache.fetch()
        entry = await cache.recompute()
        if entry.previous_targets is not None:
            ...
    """

    def __init__(
        self,
        fetcher: PlanFetcher,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
        store: PlanStore | None = None,
        on_significant_change: ChangeListener | None = None,
        calorie_threshold: int = 50,
        protein_threshold: int = 10,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl
        self._clock = clock
        self._store = store
        self._store_loaded = store is None
        self._on_change = on_significant_change
        self._calorie_threshold = calorie_threshold
        self._protein_threshold = protein_threshold

        self._entry: CachedPlan | None = None
        self._generation = 0
        # keyed by force_recompute
        self._in_flight: dict[bool, asyncio.Task[CachedPlan]] = {}
        self._network_calls = 0
        self._refresh_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def entry(self) -> CachedPlan | None:
        self._load_persisted()
        return self._entry

    @property
    def state(self) -> CacheState:
        entry = self.entry
        if entry is None:
            return CacheState.EMPTY
        return CacheState.FRESH if entry.is_fresh(self._clock(), self._ttl) else CacheState.STALE

    @property
    def is_fetching(self) -> bool:
        return bool(self._in_flight)

    @property
    def network_calls(self) -> int:
        return self._network_calls

    @property
    def persistence_enabled(self) -> bool:
        return self._store is not None

    # ------------------------------------------------------------------
    # Fetch / recompute / invalidate
    # ------------------------------------------------------------------

    async def fetch(
        self,
        force_recompute: bool = False,
        *,
        timeout: float | None = None,
    ) -> CachedPlan:
        """Return the cached plan, fetching it when empty, stale or forced.

        Raises:
            asyncio.TimeoutError: ``timeout`` elapsed; the cache is unchanged.
            NutritionPlanError: The fetch failed; the prior entry is kept.
        """
        self._load_persisted()
        if not force_recompute and self.state is CacheState.FRESH:
            return self._entry

        task = self._in_flight.get(True) if force_recompute else (
            self._in_flight.get(False) or self._in_flight.get(True)
        )
        if task is None:
            task = asyncio.ensure_future(self._run_fetch(force_recompute, self._generation))
            self._in_flight[force_recompute] = task
            task.add_done_callback(lambda t, key=force_recompute: self._fetch_done(key, t))
        else:
            logger.debug("Joining in-flight plan fetch")

        if timeout is None:
            return await asyncio.shield(task)
        return await asyncio.wait_for(asyncio.shield(task), timeout)

    async def recompute(self, *, timeout: float | None = None) -> CachedPlan:
        return await self.fetch(True, timeout=timeout)

    def invalidate(self) -> None:
        """Drop the cached plan. A fetch already in flight will not repopulate it,
        and later callers start a new fetch instead of joining it."""
        self._entry = None
        self._generation += 1
        self._in_flight.clear()
        self._store_loaded = True
        if self._store is not None:
            try:
                self._store.clear()
            except PersistenceError as exc:
                logger.warning("Plan cache clear failed, disabling persistence: %s", exc)
                self._store = None
        logger.info("Plan cache invalidated")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_fetch(self, force_recompute: bool, generation: int) -> CachedPlan:
        self._network_calls += 1
        response = await self._fetcher(force_recompute)

        prior = self._entry
        previous = None
        if force_recompute:
            previous = prior.targets if prior is not None else response.previous_targets

        entry = CachedPlan(
            targets=response.targets,
            fetched_at=self._clock(),
            previous_targets=previous,
            response=response,
        )
        if generation != self._generation:
            logger.info("Plan fetch finished after invalidation; result not cached")
            return entry

        self._entry = entry
        self._persist(entry)
        if previous is not None:
            self._notify(previous, entry)
        return entry

    def _fetch_done(self, key: bool, task: asyncio.Task[CachedPlan]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Plan fetch failed: %s", exc)

    def _notify(self, previous, entry: CachedPlan) -> None:
        change = compare(
            previous,
            entry.targets,
            calorie_threshold=self._calorie_threshold,
            protein_threshold=self._protein_threshold,
        )
        if change.significant and self._on_change is not None:
            logger.info("Significant plan change: %s", change.describe())
            self._on_change(change)

    def _load_persisted(self) -> None:
        if self._store_loaded:
            return
        self._store_loaded = True
        try:
            stored = self._store.load()
        except PersistenceError as exc:
            logger.warning("Plan cache unreadable, disabling persistence: %s", exc)
            self._store = None
            return
        if stored is not None and self._entry is None:
            self._entry = stored

    def _persist(self, entry: CachedPlan) -> None:
        if self._store is None:
            return
        try:
            self._store.save(entry)
        except PersistenceError as exc:
            logger.warning("Plan cache write failed, disabling persistence: %s", exc)
            self._store = None

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def start_background_refresh(self, interval_seconds: float) -> asyncio.Task[None]:
        """Re-fetch silently whenever the entry goes stale.

        The displayed entry stays in place until the new one is ready.
        Stop with :meth:`stop_background_refresh`.
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task
        self._refresh_task = asyncio.ensure_future(self._refresh_loop(interval_seconds))
        return self._refresh_task

    async def stop_background_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _refresh_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            if self.state is not CacheState.STALE:
                continue
            try:
                await self.fetch()
            except NutritionPlanError as exc:
                logger.info("Background plan refresh failed: %s", exc.code)
