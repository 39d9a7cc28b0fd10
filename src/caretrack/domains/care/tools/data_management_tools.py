"""MCP tools for care data management (deletion, purge, retention).

All deletions are audit-logged. Obligation changes are followed by a
reschedule so no reminder outlives the data it was made from.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from caretrack.core.audit.logger import AuditLogger
    from caretrack.core.storage.preferences import PreferenceStore
    from caretrack.core.storage.repository import CareRepository
    from caretrack.domains.care.domain_logic.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


def register_data_management_tools(
    mcp: FastMCP,
    repository: CareRepository,
    preferences: PreferenceStore,
    scheduler: ReminderScheduler,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def delete_care_log(
        ctx: Context,
        log_id: str,
    ) -> str:
        """Permanently delete one care log entry.

        Args:
            log_id: The UUID of the log to delete.
        """
        start_time = time.monotonic()
        deleted = repository.delete_log(log_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "log_id": log_id,
                "message": "No log found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_care_log",
                record_id=log_id,
                count=1,
            )
        return json.dumps({
            "status": "deleted",
            "log_id": log_id,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def purge_old_logs(
        ctx: Context,
        older_than_days: int = 365,
    ) -> str:
        """Delete all care logs older than a number of days.

        Args:
            older_than_days: Delete logs older than this many days (default: 365).
        """
        if older_than_days < 1:
            return json.dumps({
                "status": "error",
                "message": "older_than_days must be at least 1.",
            })

        start_time = time.monotonic()
        count = repository.purge_before_days(older_than_days)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None and count > 0:
            audit_logger.log_data_delete(
                tool_name="purge_old_logs",
                count=count,
                metadata={"older_than_days": older_than_days},
            )

        return json.dumps({
            "status": "purged",
            "logs_deleted": count,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_all_care_data(
        ctx: Context,
        confirm: str = "",
    ) -> str:
        """Permanently delete ALL care logs, obligations and preferences.

        Every scheduled reminder is cancelled as well. It cannot be undone.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all care data, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        count = repository.delete_all_data()
        preferences_cleared = preferences.clear()
        scheduler.reschedule_all()
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_all_care_data",
                count=count,
                metadata={"confirmed": True, "preferences_cleared": preferences_cleared},
            )

        logger.warning("ALL care data deleted: %d logs removed", count)
        return json.dumps({
            "status": "all_deleted",
            "logs_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
            "message": "All care data has been permanently deleted.",
        })
