"""Parse health-profile updates from API/tool payloads (metric units only)."""

from __future__ import annotations

import math
from datetime import date
from typing import Any

from nutriplan.core.storage.models import StoredProfile
from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ActivityLevel,
    Gender,
    HealthProfile,
    PrimaryGoal,
)
from nutriplan.domains.nutrition.errors import InputValidationError


def _number(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputValidationError(f"{label} must be a number.")
    number = float(value)
    if not math.isfinite(number):
        raise InputValidationError(f"{label} must be a finite number.")
    return number


def _enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InputValidationError(f"{label} must be one of: {allowed}.") from exc


def _iso_date(value: Any, label: str) -> date:
    if not isinstance(value, str):
        raise InputValidationError(f"{label} must be an ISO date (YYYY-MM-DD).")
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise InputValidationError(f"{label} must be an ISO date (YYYY-MM-DD).") from exc


def parse_profile_update(
    payload: Any,
    existing: StoredProfile | None = None,
) -> tuple[HealthProfile, ActivityLevel, PrimaryGoal]:
    """Merge a (possibly partial) update over the stored profile.

    Without a stored profile every field except ``targetWeight`` is required.
    Range checks happen later in the engine's ``validate_inputs``.

    Raises:
        InputValidationError: Missing or malformed fields.
    """
    if not isinstance(payload, dict):
        raise InputValidationError("Request body must be a JSON object.")

    current: dict[str, Any] = {}
    if existing is not None:
        current = {
            "currentWeight": existing.profile.weight_kg,
            "height": existing.profile.height_cm,
            "dateOfBirth": existing.profile.date_of_birth,
            "gender": existing.profile.gender,
            "targetWeight": existing.profile.target_weight_kg,
            "activityLevel": existing.activity_level,
            "primaryGoal": existing.primary_goal,
        }

    def pick(key: str, parse) -> Any:
        value = payload.get(key)
        if value is not None:
            return parse(value, key)
        if current.get(key) is None:
            raise InputValidationError(f"{key} is required.")
        return current[key]

    if "currentWeight" not in payload and "weight" in payload:
        payload = {**payload, "currentWeight": payload["weight"]}

    if "targetWeight" in payload:
        target = payload["targetWeight"]
        target_weight_kg = _number(target, "targetWeight") if target is not None else None
    else:
        target_weight_kg = current.get("targetWeight")

    profile = HealthProfile(
        weight_kg=pick("currentWeight", _number),
        height_cm=pick("height", _number),
        date_of_birth=pick("dateOfBirth", _iso_date),
        gender=pick("gender", lambda v, k: _enum(Gender, v, k)),
        target_weight_kg=target_weight_kg,
    )
    activity_level = pick("activityLevel", lambda v, k: _enum(ActivityLevel, v, k))
    primary_goal = pick("primaryGoal", lambda v, k: _enum(PrimaryGoal, v, k))
    return profile, activity_level, primary_goal
