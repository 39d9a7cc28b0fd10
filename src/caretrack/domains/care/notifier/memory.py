"""In-process notifier that records requests instead of showing them.

Used when no device bridge is attached to the server, and in tests.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from caretrack.domains.care.notifier import NotificationContent, NotifierError

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A trigger the notifier is holding."""

    handle: str
    kind: str  # 'recurring' | 'once'
    content: NotificationContent
    hour: int | None = None
    minute: int | None = None
    fire_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "kind": self.kind,
            "hour": self.hour,
            "minute": self.minute,
            "fire_at": self.fire_at.isoformat() if self.fire_at else None,
            "content": self.content.to_dict(),
        }


class InMemoryNotifier:
    """Dictionary-backed :class:`DeviceNotifier`.

    Args:
        permission_granted: Initial permission state.
        grant_on_request: What :meth:`request_permission` answers.
        fail_when: Optional predicate; matching content raises
            :class:`NotifierError` instead of being scheduled.
    """

    def __init__(
        self,
        *,
        permission_granted: bool = True,
        grant_on_request: bool = True,
        fail_when: Callable[[NotificationContent], bool] | None = None,
    ) -> None:
        self._permission = permission_granted
        self._grant_on_request = grant_on_request
        self._fail_when = fail_when
        self._pending: dict[str, PendingRequest] = {}
        self._lock = threading.Lock()
        self.cancelled: list[str] = []

    # --- DeviceNotifier ---

    def schedule_recurring(
        self, hour: int, minute: int, content: NotificationContent
    ) -> str:
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise NotifierError(f"Invalid trigger time {hour}:{minute}")
        return self._add(PendingRequest(
            handle="", kind="recurring", content=content, hour=hour, minute=minute
        ))

    def schedule_once(self, instant: datetime, content: NotificationContent) -> str:
        return self._add(PendingRequest(
            handle="", kind="once", content=content, fire_at=instant
        ))

    def cancel(self, handle: str) -> None:
        with self._lock:
            if self._pending.pop(handle, None) is not None:
                self.cancelled.append(handle)

    def cancel_all(self) -> None:
        with self._lock:
            self.cancelled.extend(self._pending)
            self._pending.clear()

    def has_permission(self) -> bool:
        return self._permission

    def request_permission(self) -> bool:
        self._permission = self._permission or self._grant_on_request
        return self._permission

    def revoke_permission(self) -> None:
        """Permission withdrawn from the device settings; pending triggers stay."""
        self._permission = False

    # --- Inspection ---

    @property
    def pending(self) -> list[PendingRequest]:
        with self._lock:
            return list(self._pending.values())

    def recurring(self) -> list[PendingRequest]:
        return [req for req in self.pending if req.kind == "recurring"]

    def one_time(self) -> list[PendingRequest]:
        return [req for req in self.pending if req.kind == "once"]

    def get(self, handle: str) -> PendingRequest | None:
        with self._lock:
            return self._pending.get(handle)

    def _add(self, request: PendingRequest) -> str:
        if not self._permission:
            raise NotifierError("Notification permission not granted")
        if self._fail_when is not None and self._fail_when(request.content):
            raise NotifierError(f"Notifier rejected {request.content.title!r}")
        request.handle = str(uuid.uuid4())
        with self._lock:
            self._pending[request.handle] = request
        logger.debug("Registered %s trigger %s", request.kind, request.handle)
        return request.handle
