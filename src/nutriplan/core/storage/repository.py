"""Plan data repository: profiles, metrics snapshots and generated plans.

The repository mediates between domain objects and the SQLite database,
using ProfileEncryptor to seal demographics at rest.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from nutriplan.core.storage.database import PlanDatabase
from nutriplan.core.storage.encryption import ProfileEncryptor
from nutriplan.core.storage.models import (
    HealthMetricsSnapshot,
    StoredPlan,
    StoredProfile,
    canonical_timestamp,
    parse_timestamp,
)
from nutriplan.domains.nutrition.domain_logic.plan_models import (
    ActivityLevel,
    ComputedTargets,
    HealthProfile,
    PlanTargets,
    PrimaryGoal,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def utc_day_bounds(day: date) -> tuple[str, str]:
    """Return canonical [start, end) timestamps for a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return canonical_timestamp(start), canonical_timestamp(start + timedelta(days=1))


class PlanRepository:
    """CRUD repository for profiles, metrics snapshots and plans.

    Usage::

        db = PlanDatabase(":memory:")
        db.initialize()
        repo = PlanRepository(db, ProfileEncryptor(key))

        repo.upsert_profile("user-1", profile, ActivityLevel.SEDENTARY, PrimaryGoal.MAINTAIN)
        snapshot = repo.get_snapshot_for_day("user-1", date.today())
    """

    def __init__(self, database: PlanDatabase, encryptor: ProfileEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return canonical_timestamp(datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def upsert_profile(
        self,
        user_id: str,
        profile: HealthProfile,
        activity_level: ActivityLevel,
        primary_goal: PrimaryGoal,
    ) -> StoredProfile:
        """Insert or replace a user's plan inputs."""
        now = self._now_iso()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO user_profiles (user_id, profile_enc, activity_level, primary_goal, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   profile_enc = excluded.profile_enc,
                   activity_level = excluded.activity_level,
                   primary_goal = excluded.primary_goal,
                   updated_at = excluded.updated_at""",
            (
                user_id,
                self._enc.seal_profile(profile),
                activity_level.value,
                primary_goal.value,
                now,
            ),
        )
        conn.commit()
        logger.info("Saved profile for user %s", user_id)
        return StoredProfile(
            user_id=user_id,
            profile=profile,
            activity_level=activity_level,
            primary_goal=primary_goal,
            updated_at=now,
        )

    def get_profile(self, user_id: str) -> StoredProfile | None:
        row = self._db.connection.execute(
            "SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return StoredProfile(
            user_id=row["user_id"],
            profile=self._enc.open_profile(row["profile_enc"]),
            activity_level=ActivityLevel(row["activity_level"]),
            primary_goal=PrimaryGoal(row["primary_goal"]),
            updated_at=row["updated_at"],
        )

    def list_user_ids(self) -> list[str]:
        rows = self._db.connection.execute(
            "SELECT user_id FROM user_profiles ORDER BY user_id"
        ).fetchall()
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Metrics snapshots (written only by the metrics job)
    # ------------------------------------------------------------------

    def save_snapshot(self, snapshot: HealthMetricsSnapshot) -> HealthMetricsSnapshot:
        """Persist a new snapshot. Snapshots are append-only."""
        sid = snapshot.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO profile_metrics
               (id, user_id, bmi, bmr, tdee, version, computed_at, inputs_fingerprint)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                sid,
                snapshot.user_id,
                snapshot.bmi,
                snapshot.bmr,
                snapshot.tdee,
                snapshot.version,
                snapshot.computed_at_iso,
                snapshot.inputs_fingerprint,
            ),
        )
        conn.commit()
        logger.info(
            "Saved metrics snapshot %s for user %s (version=%d)",
            sid, snapshot.user_id, snapshot.version,
        )
        if sid == snapshot.id:
            return snapshot
        return HealthMetricsSnapshot(
            id=sid,
            user_id=snapshot.user_id,
            bmi=snapshot.bmi,
            bmr=snapshot.bmr,
            tdee=snapshot.tdee,
            computed_at=snapshot.computed_at,
            version=snapshot.version,
            inputs_fingerprint=snapshot.inputs_fingerprint,
        )

    def get_snapshot_for_day(self, user_id: str, day: date) -> HealthMetricsSnapshot | None:
        """Most recent snapshot computed within the given UTC calendar day."""
        start, end = utc_day_bounds(day)
        row = self._db.connection.execute(
            """SELECT * FROM profile_metrics
               WHERE user_id = ? AND computed_at >= ? AND computed_at < ?
               ORDER BY computed_at DESC, rowid DESC LIMIT 1""",
            (user_id, start, end),
        ).fetchone()
        return self._row_to_snapshot(row) if row is not None else None

    def get_latest_snapshot(self, user_id: str) -> HealthMetricsSnapshot | None:
        row = self._db.connection.execute(
            """SELECT * FROM profile_metrics WHERE user_id = ?
               ORDER BY computed_at DESC, rowid DESC LIMIT 1""",
            (user_id,),
        ).fetchone()
        return self._row_to_snapshot(row) if row is not None else None

    def count_snapshots(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self._db.connection.execute("SELECT COUNT(*) FROM profile_metrics").fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM profile_metrics WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def save_plan(
        self,
        user_id: str,
        computed: ComputedTargets,
        *,
        start_date: date,
        end_date: date,
        created_at: datetime | None = None,
    ) -> StoredPlan:
        """Record a generated plan (``created_at`` defaults to now)."""
        plan = StoredPlan(
            id=self._new_id(),
            user_id=user_id,
            targets=computed.targets,
            bmr=computed.bmr,
            tdee=computed.tdee,
            weekly_rate=computed.weekly_rate,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            created_at=(
                canonical_timestamp(created_at) if created_at is not None else self._now_iso()
            ),
        )
        conn = self._db.connection
        conn.execute(
            """INSERT INTO plans (
                id, user_id, calorie_target, protein_target, water_target,
                estimated_weeks, bmr, tdee, weekly_rate, start_date, end_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                plan.id,
                plan.user_id,
                plan.targets.calorie_target,
                plan.targets.protein_target,
                plan.targets.water_target,
                plan.targets.estimated_weeks,
                plan.bmr,
                plan.tdee,
                plan.weekly_rate,
                plan.start_date,
                plan.end_date,
                plan.created_at,
            ),
        )
        conn.commit()
        logger.info("Saved plan %s for user %s", plan.id, user_id)
        return plan

    def get_latest_plan(self, user_id: str, *, since: datetime | None = None) -> StoredPlan | None:
        """Most recent plan, optionally only if created at or after ``since``."""
        query = "SELECT * FROM plans WHERE user_id = ?"
        params: list[Any] = [user_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(canonical_timestamp(since))
        query += " ORDER BY created_at DESC, rowid DESC LIMIT 1"

        row = self._db.connection.execute(query, params).fetchone()
        return self._row_to_plan(row) if row is not None else None

    def count_plans(self, user_id: str) -> int:
        row = self._db.connection.execute(
            "SELECT COUNT(*) FROM plans WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_snapshot(row: Any) -> HealthMetricsSnapshot:
        return HealthMetricsSnapshot(
            id=row["id"],
            user_id=row["user_id"],
            bmi=row["bmi"],
            bmr=row["bmr"],
            tdee=row["tdee"],
            computed_at=parse_timestamp(row["computed_at"]),
            version=row["version"],
            inputs_fingerprint=row["inputs_fingerprint"] or "",
        )

    @staticmethod
    def _row_to_plan(row: Any) -> StoredPlan:
        return StoredPlan(
            id=row["id"],
            user_id=row["user_id"],
            targets=PlanTargets(
                calorie_target=row["calorie_target"],
                protein_target=row["protein_target"],
                water_target=row["water_target"],
                estimated_weeks=row["estimated_weeks"],
            ),
            bmr=row["bmr"],
            tdee=row["tdee"],
            weekly_rate=row["weekly_rate"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            created_at=row["created_at"],
        )
