"""Plan generation, recomputation and profile-driven recompute.

Every path that produces a plan passes the acknowledgment gate first,
before force-recompute handling and before recent-plan reuse.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Any

from nutriplan.core.audit.logger import AuditLogger
from nutriplan.core.storage.models import StoredPlan
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.domain_logic.explanations import why_it_works
from nutriplan.domains.nutrition.domain_logic.plan_engine import compute_full, validate_inputs
from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ActivityLevel,
    ComputedTargets,
    HealthProfile,
    PlanTargets,
    PrimaryGoal,
)
from nutriplan.domains.nutrition.domain_logic.significant_change import PlanChange, compare
from nutriplan.domains.nutrition.errors import NutritionPlanError, ProfileNotFoundError
from nutriplan.domains.nutrition.gate import Clock, MetricsAcknowledgmentGate, utc_now, utc_today
from nutriplan.domains.nutrition.jobs.daily_metrics import MetricsComputationJob
from nutriplan.domains.nutrition.services.guards import storage_guard

logger = logging.getLogger(__name__)


def _plan_to_dict(plan: StoredPlan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "startDate": plan.start_date,
        "endDate": plan.end_date,
        "createdAt": plan.created_at,
        "bmr": plan.bmr,
        "tdee": plan.tdee,
        "weeklyRate": plan.weekly_rate,
    }


@dataclass(frozen=True)
class PlanResult:
    plan: StoredPlan
    why_it_works: dict[str, Any]
    recomputed: bool
    previous_targets: PlanTargets | None = None
    change: PlanChange | None = None

    @property
    def targets(self) -> PlanTargets:
        return self.plan.targets

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "plan": _plan_to_dict(self.plan),
            "targets": self.plan.targets.to_dict(),
            "whyItWorks": self.why_it_works,
            "recomputed": self.recomputed,
        }
        if self.previous_targets is not None:
            data["previousTargets"] = self.previous_targets.to_dict()
        if self.change is not None:
            data["significantChange"] = self.change.significant
        return data


@dataclass(frozen=True)
class ProfileUpdateResult:
    profile: HealthProfile
    activity_level: ActivityLevel
    primary_goal: PrimaryGoal
    plan_updated: bool
    acknowledgment_required: bool
    targets: PlanTargets | None = None
    change: PlanChange | None = None

    def to_dict(self) -> dict[str, Any]:
        profile = self.profile.to_private_dict()
        profile["activity_level"] = self.activity_level.value
        profile["primary_goal"] = self.primary_goal.value
        data: dict[str, Any] = {
            "profile": profile,
            "planUpdated": self.plan_updated,
            "acknowledgmentRequired": self.acknowledgment_required,
        }
        if self.targets is not None:
            data["targets"] = self.targets.to_dict()
        if self.change is not None:
            data["changes"] = self.change.to_dict()
        return data


class PlanService:
    """Server-side plan operations behind the HTTP routes and MCP tools."""

    def __init__(
        self,
        repository: PlanRepository,
        gate: MetricsAcknowledgmentGate,
        audit: AuditLogger | None = None,
        *,
        metrics_job: MetricsComputationJob | None = None,
        clock: Clock = utc_now,
        recent_plan_window_days: int = 7,
        calorie_threshold: int = 50,
        protein_threshold: int = 10,
    ) -> None:
        self._repo = repository
        self._gate = gate
        self._audit = audit
        self._job = metrics_job
        self._clock = clock
        self._window = timedelta(days=recent_plan_window_days)
        self._calorie_threshold = calorie_threshold
        self._protein_threshold = protein_threshold

    def _compare(self, old: PlanTargets, new: PlanTargets) -> PlanChange:
        return compare(
            old,
            new,
            calorie_threshold=self._calorie_threshold,
            protein_threshold=self._protein_threshold,
        )

    def _save(self, user_id: str, computed: ComputedTargets) -> StoredPlan:
        now = self._clock().astimezone(timezone.utc)
        return self._repo.save_plan(
            user_id,
            computed,
            start_date=now.date(),
            end_date=now.date() + self._window,
            created_at=now,
        )

    # ------------------------------------------------------------------
    # Generate / recompute
    # ------------------------------------------------------------------

    def generate_plan(self, user_id: str, *, force_recompute: bool = False) -> PlanResult:
        """Return a plan for ``user_id``, reusing a recent one unless forced.

        Raises:
            MetricsAcknowledgmentRequiredError: Current metrics not acknowledged.
            StaleAcknowledgmentError: Acknowledgment is for an older snapshot.
            ProfileNotFoundError: No stored profile.
            CacheUnavailableError: Storage failure (fail closed).
        """
        start = time.monotonic()
        gate_result = self._gate.require(user_id)

        action = "plan_recompute" if force_recompute else "plan_generate"
        try:
            with storage_guard(action):
                result = self._generate(user_id, gate_result.snapshot, force_recompute)
        except NutritionPlanError as exc:
            self._log(action, user_id, start, status="failure", error_type=exc.code)
            raise

        self._log(
            action,
            user_id,
            start,
            outcome="created" if result.recomputed else "reused",
            metadata={"significant": result.change.significant} if result.change else None,
        )
        return result

    def recompute_for_user(self, user_id: str) -> PlanResult:
        return self.generate_plan(user_id, force_recompute=True)

    def _generate(self, user_id, snapshot, force_recompute: bool) -> PlanResult:
        stored = self._repo.get_profile(user_id)
        if stored is None:
            raise ProfileNotFoundError()

        now = self._clock().astimezone(timezone.utc)
        if not force_recompute:
            recent = self._repo.get_latest_plan(user_id, since=now - self._window)
            if recent is not None:
                logger.info("Reusing recent plan %s for user %s", recent.id, user_id)
                computed = ComputedTargets(
                    bmr=recent.bmr,
                    tdee=recent.tdee,
                    weekly_rate=recent.weekly_rate,
                    targets=recent.targets,
                )
                return PlanResult(
                    plan=recent,
                    why_it_works=why_it_works(computed, stored.activity_level, stored.primary_goal),
                    recomputed=False,
                )

        previous = self._repo.get_latest_plan(user_id)
        computed = compute_full(
            stored.profile,
            stored.activity_level,
            stored.primary_goal,
            snapshot,
            as_of=now.date(),
        )
        plan = self._save(user_id, computed)
        change = self._compare(previous.targets, plan.targets) if previous else None
        if change is not None and change.significant:
            logger.info("Significant plan change for user %s: %s", user_id, change.describe())

        return PlanResult(
            plan=plan,
            why_it_works=why_it_works(computed, stored.activity_level, stored.primary_goal),
            recomputed=True,
            previous_targets=previous.targets if previous else None,
            change=change,
        )

    # ------------------------------------------------------------------
    # Profile update
    # ------------------------------------------------------------------

    def update_health_profile(
        self,
        user_id: str,
        profile: HealthProfile,
        activity_level: ActivityLevel,
        primary_goal: PrimaryGoal,
    ) -> ProfileUpdateResult:
        """Store new inputs, refresh metrics, then try a gated recompute.

        Plan targets are replaced only when the gate passes and the change
        is significant. A blocked gate is reported, not raised.
        """
        start = time.monotonic()
        validate_inputs(profile, as_of=utc_today(self._clock))

        with storage_guard("profile update"):
            previous = self._repo.get_latest_plan(user_id)
            self._repo.upsert_profile(user_id, profile, activity_level, primary_goal)
            if self._job is not None:
                self._job.compute_for_user(user_id)

        gate_result = self._gate.check(user_id)
        if not gate_result.allowed:
            self._log("profile_update", user_id, start, outcome="acknowledgment_required")
            return ProfileUpdateResult(
                profile=profile,
                activity_level=activity_level,
                primary_goal=primary_goal,
                plan_updated=False,
                acknowledgment_required=True,
            )

        computed = compute_full(
            profile, activity_level, primary_goal, gate_result.snapshot,
            as_of=utc_today(self._clock),
        )
        change = self._compare(previous.targets, computed.targets) if previous else None
        plan_updated = change is None or change.significant
        if plan_updated:
            with storage_guard("profile update"):
                self._save(user_id, computed)

        self._log(
            "profile_update",
            user_id,
            start,
            outcome="plan_updated" if plan_updated else "plan_unchanged",
        )
        return ProfileUpdateResult(
            profile=profile,
            activity_level=activity_level,
            primary_goal=primary_goal,
            plan_updated=plan_updated,
            acknowledgment_required=False,
            targets=computed.targets if plan_updated else None,
            change=change,
        )

    def _log(
        self,
        action: str,
        user_id: str,
        start: float,
        *,
        outcome: str | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_operation(
            action,
            user_id,
            outcome=outcome,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            status=status,
            error_type=error_type,
            metadata=metadata,
        )
