"""Shared test fixtures for NutriPlan tests."""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from nutriplan.domains.nutrition.domain_logic.plan_models import (  # noqa: E402
    ActivityLevel,
    Gender,
    HealthProfile,
    PrimaryGoal,
)


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("AUTH_SECRET", "")
    monkeypatch.setenv("PLAN_CACHE_PATH", "")


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 10, 9, 0, 0, 123456, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@pytest.fixture
def make_profile():
    """Factory for HealthProfile with the 80 kg / 175 cm / age-36 defaults."""
    def _make(**overrides) -> HealthProfile:
        defaults = dict(
            weight_kg=80.0,
            height_cm=175.0,
            date_of_birth=date(1990, 1, 1),
            gender=Gender.MALE,
            target_weight_kg=None,
        )
        defaults.update(overrides)
        return HealthProfile(**defaults)
    return _make


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def plan_db():
    """Create an in-memory PlanDatabase for testing."""
    from nutriplan.core.storage.database import PlanDatabase

    db = PlanDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def profile_encryptor():
    """Create a ProfileEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from nutriplan.core.storage.encryption import ProfileEncryptor

    return ProfileEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def plan_repository(plan_db, profile_encryptor):
    """Create a PlanRepository backed by in-memory SQLite."""
    from nutriplan.core.storage.repository import PlanRepository

    return PlanRepository(plan_db, profile_encryptor)


@pytest.fixture
def ack_store(plan_db):
    from nutriplan.core.storage.acknowledgments import AcknowledgmentStore

    return AcknowledgmentStore(plan_db)


@pytest.fixture
def audit_logger(plan_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from nutriplan.core.audit.logger import AuditLogger

    return AuditLogger(plan_db)


@pytest.fixture
def seeded_user(plan_repository, make_profile) -> str:
    """A stored user: 80 kg male, lose_weight, moderately_active."""
    plan_repository.upsert_profile(
        "user-1",
        make_profile(target_weight_kg=70.0),
        ActivityLevel.MODERATELY_ACTIVE,
        PrimaryGoal.LOSE_WEIGHT,
    )
    return "user-1"


# ---------------------------------------------------------------------------
# Domain services
# ---------------------------------------------------------------------------

@pytest.fixture
def gate(plan_repository, ack_store, audit_logger, clock):
    from nutriplan.domains.nutrition.gate import MetricsAcknowledgmentGate

    return MetricsAcknowledgmentGate(plan_repository, ack_store, audit_logger, clock=clock)


@pytest.fixture
def metrics_job(plan_repository, audit_logger, clock):
    from nutriplan.domains.nutrition.jobs.daily_metrics import MetricsComputationJob

    return MetricsComputationJob(plan_repository, audit_logger, clock=clock)


@pytest.fixture
def metrics_service(plan_repository, ack_store, audit_logger, clock):
    from nutriplan.domains.nutrition.services.metrics_service import MetricsService

    return MetricsService(plan_repository, ack_store, audit_logger, clock=clock)


@pytest.fixture
def plan_service(plan_repository, gate, audit_logger, metrics_job, clock):
    from nutriplan.domains.nutrition.services.plan_service import PlanService

    return PlanService(
        plan_repository, gate, audit_logger, metrics_job=metrics_job, clock=clock
    )
