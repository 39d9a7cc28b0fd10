"""Data structures for reminder scheduling."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Literal

from caretrack.core.clock.calendar import parse_time_to_minutes
from caretrack.domains.care.notifier import NotificationContent

logger = logging.getLogger(__name__)

# Quick actions a delivered notification can carry
ACTION_MARK_TAKEN = "mark-taken"
ACTION_SNOOZE = "snooze"
ACTION_SNOOZE_APPOINTMENT = "snooze-appointment"
ACTION_VIEW_DETAILS = "view-details"
ACTION_DISMISS = "dismiss"
ACTION_DEFAULT = "default"

NOTIFICATION_ACTIONS: tuple[str, ...] = (
    ACTION_MARK_TAKEN,
    ACTION_SNOOZE,
    ACTION_SNOOZE_APPOINTMENT,
    ACTION_VIEW_DETAILS,
    ACTION_DISMISS,
    ACTION_DEFAULT,
)

# Payload "type" tags
TYPE_MEDICATION_REMINDER = "medication_reminder"
TYPE_MEDICATION_OVERDUE = "medication_overdue"
TYPE_APPOINTMENT_REMINDER = "appointment_reminder"
TYPE_CONFIRMATION = "confirmation"

NotificationState = Literal["delivered", "snoozed", "dismissed"]
TriggerTag = Literal["primary", "overdue", "one_time", "snooze", "confirmation"]


@dataclass
class NotificationSettings:
    """User reminder preferences. One per device profile."""

    enabled: bool = True
    reminder_minutes_before: int = 0
    sound_enabled: bool = True
    vibration_enabled: bool = True
    overdue_alerts_enabled: bool = True
    grace_period_minutes: int = 15
    overdue_alert_minutes: int = 30
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "07:00"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NotificationSettings:
        """Build settings from stored JSON.

        Missing keys take defaults. Values of the wrong type, negative
        grace or overdue intervals, and malformed quiet-hours times fall
        back to the default for that field with a warning.
        """
        defaults = cls()
        if not data:
            return defaults

        values: dict[str, Any] = {}
        for item in fields(cls):
            default = getattr(defaults, item.name)
            if item.name not in data:
                values[item.name] = default
                continue
            values[item.name] = _coerce(item.name, data[item.name], default)
        return cls(**values)

    def merged(self, changes: dict[str, Any]) -> NotificationSettings:
        """A copy with ``changes`` applied through the same validation."""
        unknown = set(changes) - {item.name for item in fields(self)}
        if unknown:
            raise ValueError(f"Unknown notification settings: {sorted(unknown)}")
        return NotificationSettings.from_dict({**self.to_dict(), **changes})


def _coerce(name: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            if name in ("grace_period_minutes", "overdue_alert_minutes") and value < 0:
                logger.warning("Negative %s=%d ignored; using %d", name, value, default)
                return default
            return value
    elif isinstance(default, str):
        if isinstance(value, str):
            try:
                parse_time_to_minutes(value)
                return value
            except ValueError:
                pass
    logger.warning("Invalid notification setting %s=%r; using %r", name, value, default)
    return default


@dataclass
class ScheduledTrigger:
    """A trigger the scheduler registered, with the notifier's handle."""

    handle: str
    tag: TriggerTag
    content: NotificationContent
    obligation_id: str | None = None
    hour: int | None = None
    minute: int | None = None
    fire_at: datetime | None = None

    @property
    def repeats(self) -> bool:
        return self.fire_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "tag": self.tag,
            "obligation_id": self.obligation_id,
            "repeats": self.repeats,
            "hour": self.hour,
            "minute": self.minute,
            "fire_at": self.fire_at.isoformat() if self.fire_at else None,
            "title": self.content.title,
            "body": self.content.body,
            "priority": self.content.priority,
        }


@dataclass
class ActionOutcome:
    """Result of processing one delivered-notification action."""

    action: str
    state: NotificationState
    handle: str | None = None
    fire_at: datetime | None = None
    confirmation_handle: str | None = None
    route: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["fire_at"] = self.fire_at.isoformat() if self.fire_at else None
        return data
