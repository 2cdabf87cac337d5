"""Tests for parsing profile-update payloads."""

from __future__ import annotations

from datetime import date

import pytest

from nutriplan.core.storage.models import StoredProfile
from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ActivityLevel,
    Gender,
    PrimaryGoal,
)
from nutriplan.domains.nutrition.domain_logic.profile_input import parse_profile_update
from nutriplan.domains.nutrition.errors import InputValidationError

FULL = {
    "currentWeight": 80,
    "height": 175,
    "dateOfBirth": "1990-01-01",
    "gender": "male",
    "targetWeight": 70,
    "activityLevel": "moderately_active",
    "primaryGoal": "lose_weight",
}


@pytest.fixture
def existing(make_profile) -> StoredProfile:
    return StoredProfile(
        user_id="user-1",
        profile=make_profile(target_weight_kg=70.0),
        activity_level=ActivityLevel.SEDENTARY,
        primary_goal=PrimaryGoal.MAINTAIN,
    )


class TestFullPayload:
    def test_parses_every_field(self):
        profile, activity, goal = parse_profile_update(FULL)
        assert profile.weight_kg == 80.0
        assert profile.height_cm == 175.0
        assert profile.date_of_birth == date(1990, 1, 1)
        assert profile.gender is Gender.MALE
        assert profile.target_weight_kg == 70.0
        assert activity is ActivityLevel.MODERATELY_ACTIVE
        assert goal is PrimaryGoal.LOSE_WEIGHT

    def test_weight_alias(self):
        payload = {k: v for k, v in FULL.items() if k != "currentWeight"}
        payload["weight"] = 82.5
        profile, _, _ = parse_profile_update(payload)
        assert profile.weight_kg == 82.5

    def test_datetime_string_for_dob(self):
        profile, _, _ = parse_profile_update({**FULL, "dateOfBirth": "1990-01-01T00:00:00Z"})
        assert profile.date_of_birth == date(1990, 1, 1)


class TestMissingFields:
    def test_required_without_existing(self):
        payload = {k: v for k, v in FULL.items() if k != "height"}
        with pytest.raises(InputValidationError, match="height is required"):
            parse_profile_update(payload)

    def test_target_weight_optional(self):
        payload = {k: v for k, v in FULL.items() if k != "targetWeight"}
        profile, _, _ = parse_profile_update(payload)
        assert profile.target_weight_kg is None

    def test_partial_update_merges_existing(self, existing):
        profile, activity, goal = parse_profile_update({"currentWeight": 78}, existing)
        assert profile.weight_kg == 78.0
        assert profile.height_cm == 175.0
        assert profile.target_weight_kg == 70.0
        assert activity is ActivityLevel.SEDENTARY
        assert goal is PrimaryGoal.MAINTAIN

    def test_explicit_null_clears_target(self, existing):
        profile, _, _ = parse_profile_update({"targetWeight": None}, existing)
        assert profile.target_weight_kg is None


class TestMalformed:
    def test_non_object_body(self):
        with pytest.raises(InputValidationError, match="JSON object"):
            parse_profile_update(["not", "a", "dict"])

    @pytest.mark.parametrize("value", ["80", True, float("nan")])
    def test_bad_weight(self, value):
        with pytest.raises(InputValidationError, match="currentWeight"):
            parse_profile_update({**FULL, "currentWeight": value})

    def test_unknown_activity_level_lists_choices(self):
        with pytest.raises(InputValidationError, match="sedentary"):
            parse_profile_update({**FULL, "activityLevel": "couch"})

    def test_bad_date(self):
        with pytest.raises(InputValidationError, match="ISO date"):
            parse_profile_update({**FULL, "dateOfBirth": "01/01/1990"})
