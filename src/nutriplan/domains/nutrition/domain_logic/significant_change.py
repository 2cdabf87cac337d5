"""Classify a plan-target delta as worth telling the user about.

A change is significant when the calorie target moves by more than
``calorie_threshold`` kcal or the protein target by more than
``protein_threshold`` g. Both comparisons are strict: a delta equal to
the threshold is not significant.

The result only drives notification and before/after summaries. It never
blocks a recompute.
"""

from __future__ import annotations

from dataclasses import dataclass

from nutriplan.domains.nutrition.domain_logic.plan_models import PlanTargets

DEFAULT_CALORIE_THRESHOLD = 50
DEFAULT_PROTEIN_THRESHOLD = 10


@dataclass(frozen=True)
class PlanChange:
    """Signed deltas between two plans plus the significance verdict."""

    previous: PlanTargets
    current: PlanTargets
    calorie_delta: int
    protein_delta: int
    water_delta: int
    significant: bool

    def describe(self) -> str:
        """One-line human summary, e.g. ``calories -100 kcal, protein -5 g``."""
        parts = [f"calories {self.calorie_delta:+d} kcal", f"protein {self.protein_delta:+d} g"]
        if self.water_delta:
            parts.append(f"water {self.water_delta:+d} ml")
        return ", ".join(parts)

    def to_dict(self) -> dict:
        return {
            "previous": self.previous.to_dict(),
            "current": self.current.to_dict(),
            "calorieDelta": self.calorie_delta,
            "proteinDelta": self.protein_delta,
            "waterDelta": self.water_delta,
            "significant": self.significant,
        }


def compare(
    old: PlanTargets,
    new: PlanTargets,
    *,
    calorie_threshold: int = DEFAULT_CALORIE_THRESHOLD,
    protein_threshold: int = DEFAULT_PROTEIN_THRESHOLD,
) -> PlanChange:
    calorie_delta = new.calorie_target - old.calorie_target
    protein_delta = new.protein_target - old.protein_target
    return PlanChange(
        previous=old,
        current=new,
        calorie_delta=calorie_delta,
        protein_delta=protein_delta,
        water_delta=new.water_target - old.water_target,
        significant=(
            abs(calorie_delta) > calorie_threshold
            or abs(protein_delta) > protein_threshold
        ),
    )


def is_significant(
    old: PlanTargets,
    new: PlanTargets,
    *,
    calorie_threshold: int = DEFAULT_CALORIE_THRESHOLD,
    protein_threshold: int = DEFAULT_PROTEIN_THRESHOLD,
) -> bool:
    return compare(
        old,
        new,
        calorie_threshold=calorie_threshold,
        protein_threshold=protein_threshold,
    ).significant
