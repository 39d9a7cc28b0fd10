"""MCP tools for reminders: obligations, notification settings, quick actions.

Every obligation or settings change ends with a full reschedule so the
device triggers always match what is stored.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from caretrack.core.clock.calendar import parse_instant
from caretrack.core.storage.models import CareObligation
from caretrack.core.storage.repository import RepositoryError
from caretrack.domains.care.domain_logic.reminder_models import NOTIFICATION_ACTIONS
from caretrack.domains.care.notifier import NotificationContent

if TYPE_CHECKING:
    from caretrack.core.audit.logger import AuditLogger
    from caretrack.core.storage.repository import CareRepository
    from caretrack.domains.care.domain_logic.reminder_scheduler import ReminderScheduler
    from caretrack.domains.care.domain_logic.settings_store import SettingsStore

logger = logging.getLogger(__name__)


def register_reminder_tools(
    mcp: FastMCP,
    scheduler: ReminderScheduler,
    settings_store: SettingsStore,
    repository: CareRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register reminder and care-obligation tools on the MCP server."""

    def _audit(tool_name: str, tool_input: Any, start_time: float, **kwargs: Any) -> None:
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                tool_input,
                duration_ms=(time.monotonic() - start_time) * 1000,
                **kwargs,
            )

    def _reschedule() -> int:
        return len(scheduler.reschedule_all())

    @mcp.tool
    async def reschedule_reminders(ctx: Context) -> str:
        """Rebuild all recurring reminders from stored obligations and settings."""
        start_time = time.monotonic()
        triggers = scheduler.reschedule_all()
        _audit("reschedule_reminders", None, start_time, metadata={"triggers": len(triggers)})
        return json.dumps({
            "status": "ok",
            "triggers_scheduled": len(triggers),
            "triggers": [trigger.to_dict() for trigger in triggers],
        })

    @mcp.tool
    async def get_notification_settings(ctx: Context) -> str:
        """Return the current reminder settings."""
        return json.dumps({"status": "ok", "settings": settings_store.get_settings().to_dict()})

    @mcp.tool
    async def update_notification_settings(
        ctx: Context,
        changes: dict[str, Any],
    ) -> str:
        """Change reminder settings and reschedule.

        Args:
            changes: Fields to change, e.g. ``{"quiet_hours_enabled": true,
                "quiet_hours_start": "21:30"}``. Invalid values fall back to
                defaults; unknown fields are rejected.
        """
        start_time = time.monotonic()
        try:
            updated = settings_store.get_settings().merged(changes)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        settings_store.save_settings(updated)
        scheduled = _reschedule()
        _audit("update_notification_settings", changes, start_time)
        return json.dumps({
            "status": "saved",
            "settings": updated.to_dict(),
            "triggers_scheduled": scheduled,
        })

    @mcp.tool
    async def check_quiet_hours(ctx: Context, at: str = "") -> str:
        """Whether a moment falls inside quiet hours.

        Args:
            at: ISO 8601 instant. Defaults to now.
        """
        try:
            moment = parse_instant(at) if at else None
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        settings = settings_store.get_settings()
        return json.dumps({
            "status": "ok",
            "in_quiet_hours": scheduler.is_in_quiet_hours(moment, settings),
            "quiet_hours_enabled": settings.quiet_hours_enabled,
            "window": [settings.quiet_hours_start, settings.quiet_hours_end],
        })

    @mcp.tool
    async def schedule_appointment_reminder(
        ctx: Context,
        appointment_id: str,
        description: str,
        appointment_time: str,
        minutes_before: int = 60,
    ) -> str:
        """Schedule a one-time reminder ahead of an appointment.

        Args:
            appointment_id: Identifier of the appointment.
            description: Shown in the reminder, e.g. 'Cardiology follow-up'.
            appointment_time: ISO 8601 instant of the appointment.
            minutes_before: How long before the appointment to remind.
        """
        start_time = time.monotonic()
        try:
            when = parse_instant(appointment_time)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        if minutes_before < 0:
            return json.dumps({"status": "error", "message": "minutes_before must not be negative."})

        handle = scheduler.schedule_appointment_reminder(
            appointment_id, description, when, minutes_before=minutes_before
        )
        _audit("schedule_appointment_reminder", {"appointment_id": appointment_id}, start_time)
        if handle is None:
            return json.dumps({
                "status": "not_scheduled",
                "message": (
                    "Reminder not scheduled: notifications are off, permission "
                    "is missing, or the reminder time has passed."
                ),
            })
        return json.dumps({"status": "scheduled", "handle": handle})

    @mcp.tool
    async def handle_notification_action(
        ctx: Context,
        action: str,
        notification: dict[str, Any],
        delivered_handle: str = "",
    ) -> str:
        """Apply a quick action from a delivered notification.

        Args:
            action: One of mark-taken, snooze, snooze-appointment,
                view-details, dismiss, default.
            notification: The delivered content: title, body and data.
            delivered_handle: Handle of the delivered notification, if known.
        """
        start_time = time.monotonic()
        if action not in NOTIFICATION_ACTIONS:
            return json.dumps({
                "status": "error",
                "message": f"action must be one of: {', '.join(NOTIFICATION_ACTIONS)}",
            })
        outcome = scheduler.handle_action(
            action, NotificationContent.from_dict(notification), delivered_handle or None
        )
        _audit("handle_notification_action", {"action": action}, start_time)
        return json.dumps({"status": "ok", **outcome.to_dict()})

    @mcp.tool
    async def add_care_obligation(
        ctx: Context,
        name: str,
        time_of_day: str,
        dosage: str = "",
        category: str = "medication",
    ) -> str:
        """Add a recurring care obligation (e.g. a daily dose) and reschedule.

        Args:
            name: Display name, e.g. 'Lisinopril'.
            time_of_day: 'HH:MM' in 24-hour time.
            dosage: Dosage or description, e.g. '10mg'.
            category: Obligation category (default: medication).
        """
        start_time = time.monotonic()
        try:
            obligation_id = repository.save_obligation(CareObligation(
                id="", name=name, time_of_day=time_of_day, dosage=dosage, category=category
            ))
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        scheduled = _reschedule()
        _audit("add_care_obligation", {"name": name}, start_time, record_id=obligation_id)
        logger.info("Added care obligation %s at %s", obligation_id, time_of_day)
        return json.dumps({
            "status": "saved",
            "obligation_id": obligation_id,
            "triggers_scheduled": scheduled,
        })

    @mcp.tool
    async def list_care_obligations(ctx: Context, active_only: bool = False) -> str:
        """List care obligations, ordered by time of day."""
        obligations = repository.list_obligations(active_only=active_only)
        return json.dumps({
            "status": "ok",
            "count": len(obligations),
            "obligations": [o.to_dict() for o in obligations],
        })

    @mcp.tool
    async def set_care_obligation_active(
        ctx: Context,
        obligation_id: str,
        active: bool,
    ) -> str:
        """Pause or resume an obligation's reminders and reschedule."""
        start_time = time.monotonic()
        if not repository.set_obligation_active(obligation_id, active):
            return json.dumps({
                "status": "not_found",
                "obligation_id": obligation_id,
                "message": "No obligation found with that ID.",
            })
        scheduled = _reschedule()
        _audit("set_care_obligation_active", {"active": active}, start_time, record_id=obligation_id)
        return json.dumps({
            "status": "updated",
            "obligation_id": obligation_id,
            "active": active,
            "triggers_scheduled": scheduled,
        })

    @mcp.tool
    async def delete_care_obligation(ctx: Context, obligation_id: str) -> str:
        """Remove an obligation and its reminders."""
        start_time = time.monotonic()
        if not repository.delete_obligation(obligation_id):
            return json.dumps({
                "status": "not_found",
                "obligation_id": obligation_id,
                "message": "No obligation found with that ID.",
            })
        scheduled = _reschedule()
        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_care_obligation", record_id=obligation_id, count=1
            )
        _audit("delete_care_obligation", None, start_time, record_id=obligation_id)
        return json.dumps({
            "status": "deleted",
            "obligation_id": obligation_id,
            "triggers_scheduled": scheduled,
        })
