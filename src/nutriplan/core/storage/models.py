"""Data models for the nutrition persistence layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ActivityLevel,
    HealthProfile,
    PlanTargets,
    PrimaryGoal,
)


def canonical_timestamp(value: datetime) -> str:
    """Render a timestamp as UTC ISO 8601 with microseconds.

    Stored timestamps are compared as strings, so every write goes through
    this function. Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class StoredProfile:
    """A user's plan inputs as held in ``user_profiles``."""

    user_id: str
    profile: HealthProfile
    activity_level: ActivityLevel
    primary_goal: PrimaryGoal
    updated_at: str = ""


@dataclass(frozen=True)
class HealthMetricsSnapshot:
    """Versioned BMI/BMR/TDEE snapshot. Never mutated after creation."""

    id: str
    user_id: str
    bmi: float
    bmr: int
    tdee: int
    computed_at: datetime
    version: int
    inputs_fingerprint: str = ""

    @property
    def computed_at_iso(self) -> str:
        return canonical_timestamp(self.computed_at)


@dataclass(frozen=True)
class Acknowledgment:
    """A user's acknowledgment of one exact ``(version, computed_at)`` snapshot."""

    user_id: str
    version: int
    metrics_computed_at: datetime
    acknowledged_at: datetime


@dataclass(frozen=True)
class StoredPlan:
    """One generated plan, kept for audit and recent-plan reuse."""

    id: str
    user_id: str
    targets: PlanTargets
    bmr: int
    tdee: int
    weekly_rate: float
    start_date: str
    end_date: str
    created_at: str
