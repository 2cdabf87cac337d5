"""Plan computation engine: profile + activity + goal -> daily targets.

Pure functions only. No I/O, no clock reads (callers pass ``as_of``), no
module state. Identical inputs always produce identical targets.

Pipeline:
1. Validate inputs against realistic human ranges
2. BMR via Mifflin-St Jeor (or taken from an acknowledged metrics snapshot)
3. TDEE = BMR x activity multiplier
4. Calorie target = TDEE + goal delta
5. Protein, water and timeline from body weight and goal
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Protocol

from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ACTIVITY_MULTIPLIERS,
    GENDER_BMR_OFFSETS,
    GOAL_CALORIE_DELTAS,
    PROTEIN_PER_KG,
    VALIDATION_RANGES,
    WATER_ACTIVITY_ALLOWANCE_ML,
    WATER_ML_PER_KG,
    WEEKLY_RATES,
    ActivityLevel,
    ComputedTargets,
    HealthProfile,
    PlanTargets,
    PrimaryGoal,
)
from nutriplan.domains.nutrition.errors import InputValidationError

logger = logging.getLogger(__name__)


class MetricsLike(Protocol):
    """Anything carrying computed BMR and TDEE (e.g. a metrics snapshot)."""

    bmr: int
    tdee: int


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_range(field: str, value: float, label: str) -> None:
    low, high = VALIDATION_RANGES[field]
    if not math.isfinite(value) or not (low <= value <= high):
        raise InputValidationError(f"{label} must be between {low:g} and {high:g}.")


def validate_inputs(profile: HealthProfile, *, as_of: date) -> None:
    """Reject unrealistic inputs before they reach the formulas.

    Raises:
        InputValidationError: If any field falls outside its allowed range.
    """
    _check_range("weight", profile.weight_kg, "Weight (kg)")
    _check_range("height", profile.height_cm, "Height (cm)")
    _check_range("age", profile.age_on(as_of), "Age")
    if profile.target_weight_kg is not None:
        _check_range("target_weight", profile.target_weight_kg, "Target weight (kg)")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """BMI = kg / m^2, one decimal place."""
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


def _mifflin_st_jeor(profile: HealthProfile, age: int) -> float:
    return (
        10 * profile.weight_kg
        + 6.25 * profile.height_cm
        - 5 * age
        + GENDER_BMR_OFFSETS[profile.gender]
    )


def calculate_bmr(profile: HealthProfile, *, as_of: date) -> int:
    """Basal metabolic rate in kcal/day."""
    return round(_mifflin_st_jeor(profile, profile.age_on(as_of)))


def calculate_tdee(bmr: float, activity_level: ActivityLevel) -> int:
    """Total daily energy expenditure in kcal/day."""
    return round(bmr * ACTIVITY_MULTIPLIERS[activity_level])


def calculate_water_target(weight_kg: float, activity_level: ActivityLevel) -> int:
    """Daily water in ml, rounded half-up to the nearest 100 ml."""
    raw = WATER_ML_PER_KG * weight_kg + WATER_ACTIVITY_ALLOWANCE_ML[activity_level]
    return int(math.floor(raw / 100 + 0.5) * 100)


def estimate_weeks(
    current_kg: float,
    target_kg: float | None,
    weekly_rate: float,
) -> int | None:
    """Weeks to reach the target weight, or None when not applicable."""
    if target_kg is None or weekly_rate == 0:
        return None
    return math.ceil(abs(target_kg - current_kg) / abs(weekly_rate))


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

def compute_full(
    profile: HealthProfile,
    activity_level: ActivityLevel,
    goal: PrimaryGoal,
    metrics: MetricsLike | None = None,
    *,
    as_of: date,
) -> ComputedTargets:
    """Compute targets together with the BMR/TDEE and weekly rate used.

    When ``metrics`` is given, its BMR and TDEE are the figures the user
    acknowledged, so they are used as-is instead of being recomputed.
    """
    validate_inputs(profile, as_of=as_of)

    if metrics is not None:
        bmr = int(metrics.bmr)
        tdee = int(metrics.tdee)
    else:
        raw_bmr = _mifflin_st_jeor(profile, profile.age_on(as_of))
        bmr = round(raw_bmr)
        tdee = calculate_tdee(raw_bmr, activity_level)

    weekly_rate = WEEKLY_RATES[goal]
    targets = PlanTargets(
        calorie_target=tdee + GOAL_CALORIE_DELTAS[goal],
        protein_target=round(profile.weight_kg * PROTEIN_PER_KG[goal]),
        water_target=calculate_water_target(profile.weight_kg, activity_level),
        estimated_weeks=estimate_weeks(profile.weight_kg, profile.target_weight_kg, weekly_rate),
    )
    return ComputedTargets(bmr=bmr, tdee=tdee, weekly_rate=weekly_rate, targets=targets)


def compute_targets(
    profile: HealthProfile,
    activity_level: ActivityLevel,
    goal: PrimaryGoal,
    metrics: MetricsLike | None = None,
    *,
    as_of: date,
) -> PlanTargets:
    """Daily calorie, protein and water targets for one user."""
    return compute_full(profile, activity_level, goal, metrics, as_of=as_of).targets
