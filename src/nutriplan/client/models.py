"""Immutable wire types for the plan API client.

Every type here is a frozen dataclass built once from a response body, so
one value can be handed to the cache, the UI and loggers concurrently.
Nested JSON that callers only display (``whyItWorks``) is kept as a JSON
string and decoded on access.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from nutriplan.domains.nutrition.domain_logic.plan_models import PlanTargets
from nutriplan.domains.nutrition.errors import (
    NetworkError,
    NutritionPlanError,
    error_from_payload,
)


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise NetworkError(f"Malformed response from server: missing '{key}'.")
    return data[key]


@dataclass(frozen=True)
class MetricsSnapshotView:
    """Today's metrics as served. ``computed_at`` is the server's exact string."""

    bmi: float
    bmr: int
    tdee: int
    computed_at: str
    version: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetricsSnapshotView:
        return cls(
            bmi=float(_require(data, "bmi")),
            bmr=int(_require(data, "bmr")),
            tdee=int(_require(data, "tdee")),
            computed_at=str(_require(data, "computedAt")),
            version=int(_require(data, "version")),
        )


@dataclass(frozen=True)
class MetricsExplanations:
    bmi: str
    bmr: str
    tdee: str

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MetricsExplanations:
        data = data or {}
        return cls(bmi=data.get("bmi", ""), bmr=data.get("bmr", ""), tdee=data.get("tdee", ""))


@dataclass(frozen=True)
class AcknowledgementView:
    acknowledged_at: str
    version: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AcknowledgementView:
        return cls(
            acknowledged_at=str(_require(data, "acknowledgedAt")),
            version=int(_require(data, "version")),
        )


@dataclass(frozen=True)
class TodayMetrics:
    metrics: MetricsSnapshotView
    explanations: MetricsExplanations
    acknowledged: bool
    acknowledgement: AcknowledgementView | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TodayMetrics:
        ack = data.get("acknowledgement")
        return cls(
            metrics=MetricsSnapshotView.from_dict(_require(data, "metrics")),
            explanations=MetricsExplanations.from_dict(data.get("explanations")),
            acknowledged=bool(_require(data, "acknowledged")),
            acknowledgement=AcknowledgementView.from_dict(ack) if ack else None,
        )


class MetricsStatus(str, Enum):
    AVAILABLE = "available"
    NOT_YET_COMPUTED = "not_yet_computed"
    VALIDATION_FAILED = "validation_failed"


@dataclass(frozen=True)
class TodayMetricsResult:
    """Outcome of a today-metrics fetch as a tagged variant.

    ``NOT_YET_COMPUTED`` (404) means there is nothing to acknowledge.
    ``VALIDATION_FAILED`` (400) is a retryable error; asking it whether an
    acknowledgment is required raises instead of answering "no".
    """

    status: MetricsStatus
    today: TodayMetrics | None = None
    error_code: str = ""
    error_message: str = ""

    @property
    def requires_acknowledgment(self) -> bool:
        if self.status is MetricsStatus.VALIDATION_FAILED:
            raise self.to_error()
        if self.status is MetricsStatus.NOT_YET_COMPUTED:
            return False
        return self.today is not None and not self.today.acknowledged

    def to_error(self) -> NutritionPlanError:
        return error_from_payload(
            {"error": {"code": self.error_code, "message": self.error_message}},
            status_code=400,
        )


@dataclass(frozen=True)
class AcknowledgeResult:
    acknowledged: bool
    acknowledgement: AcknowledgementView

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AcknowledgeResult:
        return cls(
            acknowledged=bool(_require(data, "acknowledged")),
            acknowledgement=AcknowledgementView.from_dict(_require(data, "acknowledgement")),
        )


@dataclass(frozen=True)
class PlanResponse:
    targets: PlanTargets
    recomputed: bool
    plan_id: str = ""
    created_at: str = ""
    previous_targets: PlanTargets | None = None
    why_it_works_json: str = "{}"

    @property
    def why_it_works(self) -> dict[str, Any]:
        return json.loads(self.why_it_works_json)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanResponse:
        plan = data.get("plan") or {}
        previous = data.get("previousTargets")
        try:
            return cls(
                targets=PlanTargets.from_dict(_require(data, "targets")),
                recomputed=bool(data.get("recomputed", False)),
                plan_id=str(plan.get("id", "")),
                created_at=str(plan.get("createdAt", "")),
                previous_targets=PlanTargets.from_dict(previous) if previous else None,
                why_it_works_json=json.dumps(data.get("whyItWorks") or {}, sort_keys=True),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError("Malformed plan response from server.") from exc


@dataclass(frozen=True)
class ProfileUpdateResponse:
    plan_updated: bool
    acknowledgment_required: bool
    targets: PlanTargets | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfileUpdateResponse:
        targets = data.get("targets")
        return cls(
            plan_updated=bool(data.get("planUpdated", False)),
            acknowledgment_required=bool(data.get("acknowledgmentRequired", False)),
            targets=PlanTargets.from_dict(targets) if targets else None,
        )


@dataclass(frozen=True)
class HealthProfileUpdate:
    """Request body for a profile update. Metric units; ``None`` = unchanged."""

    current_weight_kg: float | None = None
    height_cm: float | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    target_weight_kg: float | None = None
    activity_level: str | None = None
    primary_goal: str | None = None

    def to_payload(self) -> dict[str, Any]:
        fields = {
            "currentWeight": self.current_weight_kg,
            "height": self.height_cm,
            "dateOfBirth": self.date_of_birth,
            "gender": self.gender,
            "targetWeight": self.target_weight_kg,
            "activityLevel": self.activity_level,
            "primaryGoal": self.primary_goal,
        }
        return {key: value for key, value in fields.items() if value is not None}


@dataclass(frozen=True)
class CachedPlan:
    """The client-side cache entry. ``previous_targets`` lives one recompute cycle."""

    targets: PlanTargets
    fetched_at: datetime
    previous_targets: PlanTargets | None = None
    response: PlanResponse | None = None

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return self.age(now) < ttl
