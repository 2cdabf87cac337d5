"""Metrics acknowledgment gate.

Plan generation and recomputation may only proceed once the user has
acknowledged the exact metrics snapshot the plan will be built from:

* no snapshot for today (UTC)      -> allowed (fail-open, first plans must work)
* snapshot + exact acknowledgment  -> allowed
* snapshot, no exact match         -> blocked, user must acknowledge
* storage failure                  -> blocked (fail-closed)

Every check is written to the audit trail with its outcome.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable

from nutriplan.core.audit.logger import AuditLogger
from nutriplan.core.storage.acknowledgments import AcknowledgmentStore
from nutriplan.core.storage.database import DatabaseError
from nutriplan.core.storage.models import HealthMetricsSnapshot
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.errors import (
    CacheUnavailableError,
    MetricsAcknowledgmentRequiredError,
    StaleAcknowledgmentError,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today(clock: Clock = utc_now) -> date:
    """Current calendar day in UTC, whatever offset ``clock`` reports."""
    return clock().astimezone(timezone.utc).date()


class GateDecision(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    NOT_ACKNOWLEDGED = "not_acknowledged"
    STALE_ACKNOWLEDGMENT = "stale_acknowledgment"
    NO_METRICS_YET = "no_metrics_yet"

    @property
    def allowed(self) -> bool:
        return self in (GateDecision.ACKNOWLEDGED, GateDecision.NO_METRICS_YET)


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    snapshot: HealthMetricsSnapshot | None = None

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


class MetricsAcknowledgmentGate:
    """Decides whether a user may generate or recompute a plan right now.

    Usage::

        gate = MetricsAcknowledgmentGate(repo, ack_store, audit)
        gate.require("user-1")          # raises when blocked
        if gate.can_generate_plan("user-1"):
            ...
    """

    def __init__(
        self,
        repository: PlanRepository,
        acknowledgments: AcknowledgmentStore,
        audit: AuditLogger | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repository
        self._acks = acknowledgments
        self._audit = audit
        self._clock = clock

    def check(self, user_id: str) -> GateResult:
        """Evaluate the gate for ``user_id``.

        Raises:
            CacheUnavailableError: If snapshot or acknowledgment storage fails.
        """
        today = utc_today(self._clock)
        try:
            snapshot = self._repo.get_snapshot_for_day(user_id, today)
            if snapshot is None:
                result = GateResult(GateDecision.NO_METRICS_YET)
            elif self._acks.find_for_snapshot(snapshot) is not None:
                result = GateResult(GateDecision.ACKNOWLEDGED, snapshot)
            elif self._acks.latest_for_user(user_id) is not None:
                result = GateResult(GateDecision.STALE_ACKNOWLEDGMENT, snapshot)
            else:
                result = GateResult(GateDecision.NOT_ACKNOWLEDGED, snapshot)
        except (sqlite3.Error, DatabaseError) as exc:
            logger.error("Gate storage failure for user %s: %s", user_id, exc)
            self._record(user_id, "storage_unavailable", {"error_type": type(exc).__name__})
            raise CacheUnavailableError() from exc

        metadata: dict = {"day": today.isoformat()}
        if result.snapshot is not None:
            metadata["version"] = result.snapshot.version
        self._record(user_id, result.decision.value, metadata)
        logger.info("Gate check for user %s: %s", user_id, result.decision.value)
        return result

    def can_generate_plan(self, user_id: str) -> bool:
        return self.check(user_id).allowed

    def require(self, user_id: str) -> GateResult:
        """Like :meth:`check`, but raise a user-actionable error when blocked."""
        result = self.check(user_id)
        if result.decision is GateDecision.STALE_ACKNOWLEDGMENT:
            raise StaleAcknowledgmentError()
        if result.decision is GateDecision.NOT_ACKNOWLEDGED:
            raise MetricsAcknowledgmentRequiredError()
        return result

    def _record(self, user_id: str, outcome: str, metadata: dict) -> None:
        if self._audit is not None:
            self._audit.log_gate_decision(user_id, outcome, metadata=metadata)
