"""Tests for the JSON file plan store."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from nutriplan.client.models import CachedPlan
from nutriplan.client.persistence import JsonFilePlanStore, PersistenceError
from nutriplan.domains.nutrition.domain_logic.plan_models import PlanTargets

FETCHED = datetime(2026, 3, 10, 9, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path) -> JsonFilePlanStore:
    return JsonFilePlanStore(tmp_path / "cache" / "plan.json")


def test_missing_file_loads_none(store):
    assert store.load() is None


def test_saved_plan_loads_back(store):
    store.save(CachedPlan(
        PlanTargets(2164, 176, 3300, 20),
        FETCHED,
        previous_targets=PlanTargets(2264, 176, 3300, 20),
    ))
    loaded = store.load()
    assert loaded.targets == PlanTargets(2164, 176, 3300, 20)
    assert loaded.fetched_at == FETCHED
    # previous targets are never persisted
    assert loaded.previous_targets is None


def test_save_is_atomic(store):
    store.save(CachedPlan(PlanTargets(2000, 150, 3000), FETCHED))
    assert not store.path.with_suffix(".json.tmp").exists()
    assert json.loads(store.path.read_text())["formatVersion"] == 1


def test_clear(store):
    store.save(CachedPlan(PlanTargets(2000, 150, 3000), FETCHED))
    store.clear()
    assert store.load() is None
    store.clear()


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"formatVersion": 99, "targets": {}, "fetchedAt": "x"}),
        json.dumps({"formatVersion": 1, "targets": {"calorieTarget": 1}, "fetchedAt": "x"}),
    ],
)
def test_corrupt_file_raises(store, content):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(content)
    with pytest.raises(PersistenceError):
        store.load()


def test_unwritable_location(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    store = JsonFilePlanStore(blocker / "plan.json")
    with pytest.raises(PersistenceError, match="Cannot write"):
        store.save(CachedPlan(PlanTargets(2000, 150, 3000), FETCHED))
