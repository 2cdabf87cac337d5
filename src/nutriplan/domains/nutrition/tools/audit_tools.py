"""MCP tools for viewing the audit trail.

The audit log is PHI-free: it records gate outcomes, plan operations and
tool usage, never raw health inputs.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from nutriplan.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        user_id: str = "",
    ) -> str:
        """Summarize recent gate decisions and plan activity.

        A high share of ``not_acknowledged`` gate outcomes means users are
        getting stuck at the metrics acknowledgment step.

        Args:
            days: Number of days to look back (default: 30).
            user_id: Restrict recent events to one user (optional).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        recent_events = audit_logger.get_events(
            since=since, user_id=user_id or None, limit=20
        )
        display_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "user_id": event.get("user_id"),
                "tool_name": event.get("tool_name"),
                "outcome": event.get("outcome"),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            }
            for event in recent_events
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "gate_outcomes": audit_logger.count_gate_outcomes(since=since),
            "recent_events": display_events,
            "note": "This audit trail contains no health measurements.",
        }, indent=2)
