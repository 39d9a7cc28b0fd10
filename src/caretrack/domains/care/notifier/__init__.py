"""Device notifier boundary: where scheduled reminders leave the core."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


class NotifierError(Exception):
    """Raised by a notifier when a request cannot be registered."""


@dataclass
class NotificationContent:
    """What the device shows when a trigger fires."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    category_identifier: str | None = None
    priority: str = "default"  # 'default' | 'high'
    sound: bool = True
    vibrate: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationContent:
        return cls(
            title=str(data.get("title", "")),
            body=str(data.get("body", "")),
            data=dict(data.get("data") or {}),
            category_identifier=data.get("category_identifier"),
            priority=str(data.get("priority", "default")),
            sound=bool(data.get("sound", True)),
            vibrate=bool(data.get("vibrate", True)),
        )


@runtime_checkable
class DeviceNotifier(Protocol):
    """OS-level local notification service.

    Delivery timing is the notifier's contract, not the scheduler's.
    Handles are opaque strings.
    """

    def schedule_recurring(
        self, hour: int, minute: int, content: NotificationContent
    ) -> str:
        """Register a trigger that fires every day at hour:minute."""
        ...

    def schedule_once(self, instant: datetime, content: NotificationContent) -> str:
        """Register a trigger that fires once at ``instant``."""
        ...

    def cancel(self, handle: str) -> None:
        ...

    def cancel_all(self) -> None:
        ...

    def has_permission(self) -> bool:
        ...

    def request_permission(self) -> bool:
        ...
