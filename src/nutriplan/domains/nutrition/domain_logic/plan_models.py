"""Nutrition plan value types and domain constants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enumerations (wire values match the mobile/API contract)
# ---------------------------------------------------------------------------

class ActivityLevel(str, Enum):
    SEDENTARY = "sedentary"
    LIGHTLY_ACTIVE = "lightly_active"
    MODERATELY_ACTIVE = "moderately_active"
    VERY_ACTIVE = "very_active"
    EXTREMELY_ACTIVE = "extremely_active"


class PrimaryGoal(str, Enum):
    LOSE_WEIGHT = "lose_weight"
    GAIN_MUSCLE = "gain_muscle"
    MAINTAIN = "maintain"
    IMPROVE_HEALTH = "improve_health"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

ACTIVITY_MULTIPLIERS: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHTLY_ACTIVE: 1.375,
    ActivityLevel.MODERATELY_ACTIVE: 1.55,
    ActivityLevel.VERY_ACTIVE: 1.725,
    ActivityLevel.EXTREMELY_ACTIVE: 1.9,
}

# Mifflin-St Jeor sex offsets; "other" uses the mean of male and female
GENDER_BMR_OFFSETS: dict[Gender, float] = {
    Gender.MALE: 5.0,
    Gender.FEMALE: -161.0,
    Gender.OTHER: (5.0 + -161.0) / 2,
}

# kcal/day applied to TDEE
GOAL_CALORIE_DELTAS: dict[PrimaryGoal, int] = {
    PrimaryGoal.LOSE_WEIGHT: -500,
    PrimaryGoal.GAIN_MUSCLE: 400,
    PrimaryGoal.MAINTAIN: 0,
    PrimaryGoal.IMPROVE_HEALTH: 0,
}

# grams of protein per kg of body weight
PROTEIN_PER_KG: dict[PrimaryGoal, float] = {
    PrimaryGoal.LOSE_WEIGHT: 2.2,
    PrimaryGoal.GAIN_MUSCLE: 2.4,
    PrimaryGoal.MAINTAIN: 1.8,
    PrimaryGoal.IMPROVE_HEALTH: 1.8,
}

# kg per week (negative = loss)
WEEKLY_RATES: dict[PrimaryGoal, float] = {
    PrimaryGoal.LOSE_WEIGHT: -0.5,
    PrimaryGoal.GAIN_MUSCLE: 0.4,
    PrimaryGoal.MAINTAIN: 0.0,
    PrimaryGoal.IMPROVE_HEALTH: 0.0,
}

WATER_ML_PER_KG = 35

# Extra daily fluid for sweat losses, in ml
WATER_ACTIVITY_ALLOWANCE_ML: dict[ActivityLevel, int] = {
    ActivityLevel.SEDENTARY: 0,
    ActivityLevel.LIGHTLY_ACTIVE: 250,
    ActivityLevel.MODERATELY_ACTIVE: 500,
    ActivityLevel.VERY_ACTIVE: 750,
    ActivityLevel.EXTREMELY_ACTIVE: 1000,
}

# Inclusive (min, max) ranges for realistic human input, metric units
VALIDATION_RANGES: dict[str, tuple[float, float]] = {
    "weight": (30, 300),
    "height": (100, 250),
    "age": (13, 120),
    "target_weight": (30, 300),
}


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthProfile:
    """Demographic and body inputs for plan computation (metric units only)."""

    weight_kg: float
    height_cm: float
    date_of_birth: date
    gender: Gender
    target_weight_kg: float | None = None

    def age_on(self, today: date) -> int:
        """Whole years of age on ``today``."""
        dob = self.date_of_birth
        age = today.year - dob.year
        if (today.month, today.day) < (dob.month, dob.day):
            age -= 1
        return age

    def to_private_dict(self) -> dict[str, Any]:
        """Serialize the fields that are stored encrypted at rest."""
        return {
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "date_of_birth": self.date_of_birth.isoformat(),
            "gender": self.gender.value,
            "target_weight_kg": self.target_weight_kg,
        }

    @classmethod
    def from_private_dict(cls, data: dict[str, Any]) -> HealthProfile:
        return cls(
            weight_kg=float(data["weight_kg"]),
            height_cm=float(data["height_cm"]),
            date_of_birth=date.fromisoformat(data["date_of_birth"]),
            gender=Gender(data["gender"]),
            target_weight_kg=(
                float(data["target_weight_kg"])
                if data.get("target_weight_kg") is not None
                else None
            ),
        )


@dataclass(frozen=True)
class PlanTargets:
    """Daily nutrition targets. Immutable, safe to share across tasks."""

    calorie_target: int
    protein_target: int          # grams
    water_target: int            # ml
    estimated_weeks: int | None = None  # None = not applicable, never zero-as-absent

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "calorieTarget": self.calorie_target,
            "proteinTarget": self.protein_target,
            "waterTarget": self.water_target,
        }
        if self.estimated_weeks is not None:
            data["estimatedWeeks"] = self.estimated_weeks
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanTargets:
        weeks = data.get("estimatedWeeks")
        return cls(
            calorie_target=int(data["calorieTarget"]),
            protein_target=int(data["proteinTarget"]),
            water_target=int(data["waterTarget"]),
            estimated_weeks=int(weeks) if weeks is not None else None,
        )


@dataclass(frozen=True)
class ComputedTargets:
    """Full engine output: plan targets plus the intermediate figures."""

    bmr: int
    tdee: int
    weekly_rate: float
    targets: PlanTargets
