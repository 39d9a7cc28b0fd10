"""MCP tools for viewing the audit trail.

The audit log records which tools ran and when, and every deletion. Tool
inputs appear only as hashes, so no care data is repeated here.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from caretrack.core.audit.logger import AuditLogger

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
    ) -> str:
        """View recent tool usage, failures and deletions.

        Args:
            days: Number of days to look back (default: 30).
        """
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})

        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        total_events = audit_logger.count_events(since=since)
        failures = audit_logger.count_events(since=since, status="failure")
        deletions = audit_logger.count_deletions(since=since)
        recent_events = audit_logger.get_events(since=since, limit=20)

        display_events = []
        for event in recent_events:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "failures": failures,
            "deletions": deletions,
            "recent_events": display_events,
            "note": (
                "This audit trail contains no care data. "
                "Tool inputs are recorded only as hashes."
            ),
        }, indent=2)
