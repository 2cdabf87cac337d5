"""Plain-language explanations attached to metrics and plan responses."""

from __future__ import annotations

from typing import Any

from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ACTIVITY_MULTIPLIERS,
    PROTEIN_PER_KG,
    WATER_ML_PER_KG,
    ActivityLevel,
    ComputedTargets,
    PrimaryGoal,
)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "underweight"
    if bmi < 25:
        return "normal weight"
    if bmi < 30:
        return "overweight"
    return "obese"


def _humanize(value: str) -> str:
    return value.replace("_", " ")


def metrics_explanations(bmi: float, bmr: int, tdee: int) -> dict[str, str]:
    """Explanations for the today-metrics response (keys: bmi, bmr, tdee)."""
    return {
        "bmi": (
            f"Your BMI is {bmi}, which falls into the {bmi_category(bmi)} category. "
            "BMI is weight (kg) divided by height (m) squared. It is a screening "
            "tool and does not measure body fat or muscle mass directly."
        ),
        "bmr": (
            f"Your BMR is {bmr} calories per day: the energy your body burns at "
            "complete rest to keep breathing, circulation and cell repair going."
        ),
        "tdee": (
            f"Your TDEE is {tdee} calories per day, your total burn including "
            "activity. Eating at this level maintains your current weight."
        ),
    }


def _calorie_explanation(computed: ComputedTargets, goal: PrimaryGoal) -> str:
    gap = computed.tdee - computed.targets.calorie_target
    goal_text = _humanize(goal.value)
    if gap > 0:
        return (
            f"To {goal_text}, you eat {gap} calories below maintenance. "
            f"That works out to roughly {abs(computed.weekly_rate)} kg per week."
        )
    if gap < 0:
        return (
            f"To {goal_text}, you eat {abs(gap)} calories above maintenance to fuel "
            f"recovery and muscle growth, roughly {computed.weekly_rate} kg per week."
        )
    return (
        f"To {goal_text}, you eat at maintenance ({computed.targets.calorie_target} "
        "calories), which keeps your weight stable."
    )


def _protein_reason(goal: PrimaryGoal) -> str:
    if goal is PrimaryGoal.LOSE_WEIGHT:
        return "High protein protects muscle and keeps you full while in a deficit."
    if goal is PrimaryGoal.GAIN_MUSCLE:
        return "Extra protein supplies the amino acids new muscle is built from."
    return "Adequate protein supports muscle maintenance and satiety."


def why_it_works(
    computed: ComputedTargets,
    activity_level: ActivityLevel,
    goal: PrimaryGoal,
) -> dict[str, Any]:
    """Per-target rationale for a generated plan."""
    targets = computed.targets
    multiplier = ACTIVITY_MULTIPLIERS[activity_level]
    grams_per_kg = PROTEIN_PER_KG[goal]

    if targets.estimated_weeks is not None:
        timeline = (
            f"At {abs(computed.weekly_rate)} kg per week you reach your goal in about "
            f"{targets.estimated_weeks} weeks. Expect some fluctuation week to week."
        )
    else:
        timeline = (
            f"With a goal to {_humanize(goal.value)} there is no weight timeline. "
            "Focus on consistency with your daily targets."
        )

    return {
        "bmr": {
            "title": "Your Basal Metabolic Rate (BMR)",
            "explanation": (
                f"Your BMR is {computed.bmr} calories, the energy your body burns at rest."
            ),
            "formula": "BMR = (10 x weight kg) + (6.25 x height cm) - (5 x age) + sex offset",
        },
        "tdee": {
            "title": "Your Total Daily Energy Expenditure (TDEE)",
            "explanation": (
                f"Your TDEE is {computed.tdee} calories: BMR multiplied by {multiplier} "
                f"for a {_humanize(activity_level.value)} lifestyle."
            ),
            "activityMultiplier": multiplier,
        },
        "calorieTarget": {
            "title": "Your Daily Calorie Target",
            "explanation": _calorie_explanation(computed, goal),
            "deficit": computed.tdee - targets.calorie_target,
        },
        "proteinTarget": {
            "title": "Your Daily Protein Target",
            "explanation": (
                f"You need {targets.protein_target}g of protein daily "
                f"({grams_per_kg}g per kg of body weight). {_protein_reason(goal)}"
            ),
            "gramsPerKg": grams_per_kg,
        },
        "waterTarget": {
            "title": "Your Daily Hydration Target",
            "explanation": (
                f"Aim for {targets.water_target}ml of water daily "
                f"({WATER_ML_PER_KG}ml per kg plus an activity allowance)."
            ),
            "mlPerKg": WATER_ML_PER_KG,
        },
        "timeline": {
            "title": "Your Projected Timeline",
            "explanation": timeline,
            "weeklyRate": computed.weekly_rate,
            "estimatedWeeks": targets.estimated_weeks,
        },
    }
