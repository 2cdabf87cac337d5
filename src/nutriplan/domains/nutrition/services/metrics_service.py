"""Today's metrics and their acknowledgment."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

from nutriplan.core.audit.logger import AuditLogger
from nutriplan.core.storage.acknowledgments import AcknowledgmentStore
from nutriplan.core.storage.models import (
    Acknowledgment,
    HealthMetricsSnapshot,
    canonical_timestamp,
    parse_timestamp,
)
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.domain_logic.explanations import metrics_explanations
from nutriplan.domains.nutrition.errors import (
    InputValidationError,
    MetricsNotYetComputedError,
    StaleAcknowledgmentError,
)
from nutriplan.domains.nutrition.gate import Clock, utc_now, utc_today
from nutriplan.domains.nutrition.services.guards import storage_guard

logger = logging.getLogger(__name__)


def _ack_to_dict(ack: Acknowledgment) -> dict[str, Any]:
    return {
        "acknowledgedAt": canonical_timestamp(ack.acknowledged_at),
        "version": ack.version,
    }


def snapshot_to_dict(snapshot: HealthMetricsSnapshot) -> dict[str, Any]:
    return {
        "bmi": snapshot.bmi,
        "bmr": snapshot.bmr,
        "tdee": snapshot.tdee,
        "computedAt": snapshot.computed_at_iso,
        "version": snapshot.version,
    }


class MetricsService:
    """Reads today's snapshot and records acknowledgments of it."""

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

    def _today_snapshot(self, user_id: str) -> HealthMetricsSnapshot:
        snapshot = self._repo.get_snapshot_for_day(user_id, utc_today(self._clock))
        if snapshot is None:
            raise MetricsNotYetComputedError()
        return snapshot

    def get_today(self, user_id: str) -> dict[str, Any]:
        """Today's metrics, explanations and acknowledgment status.

        Raises:
            MetricsNotYetComputedError: No snapshot exists for today (UTC).
        """
        with storage_guard("metrics fetch"):
            snapshot = self._today_snapshot(user_id)
            ack = self._acks.find_for_snapshot(snapshot)

        return {
            "metrics": snapshot_to_dict(snapshot),
            "explanations": metrics_explanations(snapshot.bmi, snapshot.bmr, snapshot.tdee),
            "acknowledged": ack is not None,
            "acknowledgement": _ack_to_dict(ack) if ack is not None else None,
        }

    def acknowledge(
        self,
        user_id: str,
        version: Any,
        metrics_computed_at: Any,
    ) -> tuple[dict[str, Any], bool]:
        """Acknowledge today's snapshot, identified by its exact pair.

        Returns:
            ``(response_data, created)``; acknowledging the same pair again
            succeeds with ``created=False``.

        Raises:
            InputValidationError: Malformed version or timestamp.
            MetricsNotYetComputedError: No snapshot exists for today.
            StaleAcknowledgmentError: The pair is not today's current snapshot.
        """
        start = time.monotonic()
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise InputValidationError("version must be a positive integer.")
        computed_at = self._parse_computed_at(metrics_computed_at)

        with storage_guard("metrics acknowledgment"):
            snapshot = self._today_snapshot(user_id)
            if snapshot.version != version or snapshot.computed_at != computed_at:
                logger.info(
                    "Rejected acknowledgment for user %s: version %d does not match current %d",
                    user_id, version, snapshot.version,
                )
                raise StaleAcknowledgmentError(
                    "These metrics are no longer current. Reload today's metrics and "
                    "acknowledge the latest values."
                )
            ack, created = self._acks.acknowledge(snapshot, acknowledged_at=self._clock())

        if self._audit is not None:
            self._audit.log_operation(
                "metrics_acknowledge",
                user_id,
                outcome="created" if created else "already_acknowledged",
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                metadata={"version": version},
            )
        return {"acknowledged": True, "acknowledgement": _ack_to_dict(ack)}, created

    @staticmethod
    def _parse_computed_at(value: Any) -> datetime:
        if isinstance(value, datetime):
            return parse_timestamp(canonical_timestamp(value))
        if not isinstance(value, str) or not value.strip():
            raise InputValidationError("metricsComputedAt must be an ISO 8601 timestamp.")
        try:
            return parse_timestamp(value)
        except ValueError as exc:
            raise InputValidationError(
                "metricsComputedAt must be an ISO 8601 timestamp."
            ) from exc
