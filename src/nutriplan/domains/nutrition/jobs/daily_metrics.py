"""Daily health-metrics computation job.

Produces the versioned BMI/BMR/TDEE snapshots the acknowledgment gate
reads. Snapshots are append-only; versioning rules:

* first snapshot for a user                      -> version 1
* new UTC day, or BMR/TDEE-relevant input change -> previous version + 1
* reprocessing identical inputs on the same day  -> same version, new computed_at
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from datetime import datetime, timezone

from nutriplan.core.audit.logger import AuditLogger
from nutriplan.core.storage.encryption import EncryptionError
from nutriplan.core.storage.models import HealthMetricsSnapshot, StoredProfile
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.domain_logic.plan_engine import (
    calculate_bmi,
    compute_full,
)
from nutriplan.domains.nutrition.errors import NutritionPlanError, ProfileNotFoundError
from nutriplan.domains.nutrition.gate import Clock, utc_now

logger = logging.getLogger(__name__)


def inputs_fingerprint(stored: StoredProfile) -> str:
    """Hash of the inputs BMR and TDEE depend on (target weight excluded)."""
    profile = stored.profile
    payload = {
        "weight_kg": profile.weight_kg,
        "height_cm": profile.height_cm,
        "date_of_birth": profile.date_of_birth.isoformat(),
        "gender": profile.gender.value,
        "activity_level": stored.activity_level.value,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


class MetricsComputationJob:
    """Computes and stores metrics snapshots for one user or for everyone."""

    def __init__(
        self,
        repository: PlanRepository,
        audit: AuditLogger | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repository
        self._audit = audit
        self._clock = clock

    def compute_for_user(self, user_id: str, force: bool = False) -> HealthMetricsSnapshot:
        """Return today's snapshot, computing a new one when needed.

        An existing snapshot for today is reused unless the relevant inputs
        changed or ``force`` is set.

        Raises:
            ProfileNotFoundError: If the user has no stored profile.
            InputValidationError: If the stored profile is out of range.
        """
        start = time.monotonic()
        stored = self._repo.get_profile(user_id)
        if stored is None:
            raise ProfileNotFoundError()

        now = self._clock().astimezone(timezone.utc)
        today = now.date()
        fingerprint = inputs_fingerprint(stored)

        current = self._repo.get_snapshot_for_day(user_id, today)
        if current is not None and not force and current.inputs_fingerprint == fingerprint:
            return current

        latest = self._repo.get_latest_snapshot(user_id)
        version = self._next_version(latest, now, fingerprint)

        computed = compute_full(
            stored.profile, stored.activity_level, stored.primary_goal, as_of=today
        )
        snapshot = self._repo.save_snapshot(HealthMetricsSnapshot(
            id="",
            user_id=user_id,
            bmi=calculate_bmi(stored.profile.weight_kg, stored.profile.height_cm),
            bmr=computed.bmr,
            tdee=computed.tdee,
            computed_at=now,
            version=version,
            inputs_fingerprint=fingerprint,
        ))

        if self._audit is not None:
            self._audit.log_operation(
                "metrics_compute",
                user_id,
                outcome="recomputed" if current is not None else "computed",
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                metadata={"version": version, "forced": force},
            )
        return snapshot

    @staticmethod
    def _next_version(
        latest: HealthMetricsSnapshot | None,
        now: datetime,
        fingerprint: str,
    ) -> int:
        if latest is None:
            return 1
        same_day = latest.computed_at.astimezone(timezone.utc).date() == now.date()
        if same_day and latest.inputs_fingerprint == fingerprint:
            return latest.version
        return latest.version + 1

    def run_once(self) -> int:
        """Compute today's snapshot for every stored profile.

        A user whose profile cannot be processed is logged and skipped.

        Returns:
            Number of users processed successfully.
        """
        processed = 0
        for user_id in self._repo.list_user_ids():
            try:
                self.compute_for_user(user_id)
            except (NutritionPlanError, EncryptionError) as exc:
                logger.warning("Skipping metrics for user %s: %s", user_id, exc)
                continue
            processed += 1
        logger.info("Metrics job processed %d user(s)", processed)
        return processed

    async def run_forever(self, interval_seconds: float) -> None:
        """Run :meth:`run_once` every ``interval_seconds`` until cancelled.

        The served app starts this from its lifespan; with the loop disabled,
        an outside scheduler calls :meth:`run_once` instead.
        """
        while True:
            self.run_once()
            await asyncio.sleep(interval_seconds)
