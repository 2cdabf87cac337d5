"""Durable record of which metrics snapshot each user has acknowledged."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from nutriplan.core.storage.database import PlanDatabase
from nutriplan.core.storage.models import (
    Acknowledgment,
    HealthMetricsSnapshot,
    canonical_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class AcknowledgmentStore:
    """Stores acknowledgments keyed on ``(user_id, version, metrics_computed_at)``.

    Writes are committed before :meth:`acknowledge` returns, so a plan
    request issued after a successful acknowledgment always observes it.
    Acknowledging the same pair twice keeps the first record.
    """

    def __init__(self, database: PlanDatabase) -> None:
        self._db = database

    def acknowledge(
        self,
        snapshot: HealthMetricsSnapshot,
        *,
        acknowledged_at: datetime | None = None,
    ) -> tuple[Acknowledgment, bool]:
        """Record that the snapshot's owner acknowledged it.

        Returns:
            ``(acknowledgment, created)``; ``created`` is False when the
            pair had already been acknowledged.
        """
        ack_time = acknowledged_at or datetime.now(timezone.utc)
        conn = self._db.connection
        cursor = conn.execute(
            """INSERT OR IGNORE INTO metrics_acknowledgements
               (id, user_id, version, metrics_computed_at, acknowledged_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                str(uuid.uuid4()),
                snapshot.user_id,
                snapshot.version,
                snapshot.computed_at_iso,
                canonical_timestamp(ack_time),
            ),
        )
        conn.commit()
        created = cursor.rowcount == 1

        stored = self.find(snapshot.user_id, snapshot.version, snapshot.computed_at)
        if stored is None:  # pragma: no cover - the row was just written
            raise LookupError("Acknowledgment vanished after write")

        if created:
            logger.info(
                "Recorded acknowledgment for user %s (version=%d)",
                snapshot.user_id, snapshot.version,
            )
        else:
            logger.info(
                "Acknowledgment already recorded for user %s (version=%d)",
                snapshot.user_id, snapshot.version,
            )
        return stored, created

    def find(
        self,
        user_id: str,
        version: int,
        metrics_computed_at: datetime,
    ) -> Acknowledgment | None:
        """Exact lookup; a timestamp differing by a microsecond does not match."""
        row = self._db.connection.execute(
            """SELECT * FROM metrics_acknowledgements
               WHERE user_id = ? AND version = ? AND metrics_computed_at = ?""",
            (user_id, version, canonical_timestamp(metrics_computed_at)),
        ).fetchone()
        return self._row_to_ack(row) if row is not None else None

    def find_for_snapshot(self, snapshot: HealthMetricsSnapshot) -> Acknowledgment | None:
        return self.find(snapshot.user_id, snapshot.version, snapshot.computed_at)

    def latest_for_user(self, user_id: str) -> Acknowledgment | None:
        """Most recent acknowledgment of any snapshot (used to tell stale from absent)."""
        row = self._db.connection.execute(
            """SELECT * FROM metrics_acknowledgements WHERE user_id = ?
               ORDER BY acknowledged_at DESC, rowid DESC LIMIT 1""",
            (user_id,),
        ).fetchone()
        return self._row_to_ack(row) if row is not None else None

    def count(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM metrics_acknowledgements"
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM metrics_acknowledgements WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return row[0]

    @staticmethod
    def _row_to_ack(row: Any) -> Acknowledgment:
        return Acknowledgment(
            user_id=row["user_id"],
            version=row["version"],
            metrics_computed_at=parse_timestamp(row["metrics_computed_at"]),
            acknowledged_at=parse_timestamp(row["acknowledged_at"]),
        )
