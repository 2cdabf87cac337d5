"""Audit logger: PHI-free trail of gate decisions and plan activity.

Records every acknowledgment-gate check, acknowledgment, plan generation,
profile update and MCP tool call. Entries never contain raw health inputs:

* ``user_id``         recorded so gate friction can be traced per user.
* ``outcome``         the gate result or operation result label.
* ``tool_input_hash`` SHA-256 of canonical JSON; tool input is never stored raw.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from nutriplan.core.storage.database import PlanDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input hashing
# ---------------------------------------------------------------------------

def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, so no health input lands in the log.

    Returns:
        Hex-encoded SHA-256 digest, or empty string on failure.
    """
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


# ---------------------------------------------------------------------------
# AuditEvent dataclass
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'gate_check' | 'metrics_acknowledge' | 'plan_generate' | ...
    user_id: str | None = None
    tool_name: str = ""
    tool_input_hash: str = ""
    outcome: str | None = None           # e.g. 'acknowledged', 'no_metrics_yet'
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------

class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately. A failed write is logged and
    swallowed: auditing never blocks the operation being audited.

    Usage::

        audit = AuditLogger(plan_db)
        audit.log_gate_decision("user-1", "not_acknowledged", metadata={"version": 3})
    """

    def __init__(self, database: PlanDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID (empty string on failure)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, user_id, tool_name, tool_input_hash,
                    outcome, duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.user_id,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.outcome,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event %s; event lost", event.action)
            return ""

        return event_id

    def log_gate_decision(
        self,
        user_id: str,
        outcome: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record the outcome of an acknowledgment-gate check.

        Args:
            user_id: User whose plan generation was gated.
            outcome: 'acknowledged', 'not_acknowledged', 'stale_acknowledgment',
                'no_metrics_yet' or 'storage_unavailable'.
            metadata: Non-PHI context such as the snapshot version.
        """
        blocked = outcome not in ("acknowledged", "no_metrics_yet")
        return self.log_event(AuditEvent(
            action="gate_check",
            user_id=user_id,
            outcome=outcome,
            status="failure" if blocked else "success",
            metadata=metadata or {},
        ))

    def log_operation(
        self,
        action: str,
        user_id: str,
        *,
        outcome: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a plan/metrics/profile operation."""
        return self.log_event(AuditEvent(
            action=action,
            user_id=user_id,
            outcome=outcome,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
    ) -> str:
        """Record an MCP tool invocation; the input is hashed, never stored."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            user_id=user_id,
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        """Count total audit events, optionally since a timestamp."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log"
            ).fetchone()
        return row[0]

    def count_gate_outcomes(self, *, since: str | None = None) -> dict[str, int]:
        """Tally gate outcomes, e.g. ``{"acknowledged": 12, "not_acknowledged": 3}``.

        A high ``not_acknowledged`` share points at UX friction in the
        acknowledgment step.
        """
        query = "SELECT outcome, COUNT(*) FROM audit_log WHERE action = 'gate_check'"
        params: list[Any] = []
        if since:
            query += " AND timestamp >= ?"
            params.append(since)
        query += " GROUP BY outcome"
        rows = self._db.connection.execute(query, params).fetchall()
        return {row[0]: row[1] for row in rows}
