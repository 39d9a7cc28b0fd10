"""Reminder scheduling for recurring care obligations.

Turns active obligations plus the user's notification settings into
recurring device triggers, and handles the quick actions (snooze, mark
taken) a delivered notification can carry.

Every settings or obligation change rebuilds the whole trigger set: cancel
everything, then recreate. Reminders are briefly absent during a rebuild,
and no trigger outlives the obligation it was made for.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any

from caretrack.core.clock.calendar import (
    Clock,
    SystemClock,
    in_daily_window,
    minute_of_day,
    minutes_to_hour_minute,
    parse_time_to_minutes,
    to_12_hour,
)
from caretrack.core.storage.models import CareObligation
from caretrack.domains.care.domain_logic.reminder_models import (
    ACTION_DEFAULT,
    ACTION_DISMISS,
    ACTION_MARK_TAKEN,
    ACTION_SNOOZE,
    ACTION_SNOOZE_APPOINTMENT,
    ACTION_VIEW_DETAILS,
    TYPE_APPOINTMENT_REMINDER,
    TYPE_CONFIRMATION,
    TYPE_MEDICATION_OVERDUE,
    TYPE_MEDICATION_REMINDER,
    ActionOutcome,
    NotificationSettings,
    ScheduledTrigger,
)
from caretrack.domains.care.domain_logic.settings_store import SettingsStore
from caretrack.domains.care.notifier import DeviceNotifier, NotificationContent, NotifierError
from caretrack.domains.care.sources import CompletionRecorder, ObligationSource

logger = logging.getLogger(__name__)

MEDICATION_CATEGORY = "medication"
APPOINTMENT_CATEGORY = "appointment"


# ---------------------------------------------------------------------------
# Pure trigger arithmetic
# ---------------------------------------------------------------------------

def primary_trigger_time(
    time_of_day: str, settings: NotificationSettings
) -> tuple[int, int]:
    """Hour and minute of the main reminder: ``time_of_day - minutes_before``."""
    minutes = parse_time_to_minutes(time_of_day) - settings.reminder_minutes_before
    return minutes_to_hour_minute(minutes)


def overdue_trigger_time(
    time_of_day: str, settings: NotificationSettings
) -> tuple[int, int]:
    """Hour and minute of the overdue alert: ``time_of_day + grace + overdue``."""
    minutes = (
        parse_time_to_minutes(time_of_day)
        + settings.grace_period_minutes
        + settings.overdue_alert_minutes
    )
    return minutes_to_hour_minute(minutes)


def is_in_quiet_hours(settings: NotificationSettings, now: datetime) -> bool:
    """Whether ``now`` falls inside the configured quiet-hours window.

    Disabled quiet hours, or a window with a malformed bound, never match.
    """
    if not settings.quiet_hours_enabled:
        return False
    try:
        start = parse_time_to_minutes(settings.quiet_hours_start)
        end = parse_time_to_minutes(settings.quiet_hours_end)
    except ValueError as exc:
        logger.warning("Ignoring quiet hours: %s", exc)
        return False
    return in_daily_window(minute_of_day(now), start, end)


def _reminder_content(
    obligation: CareObligation, settings: NotificationSettings
) -> NotificationContent:
    body = f"Time to take {obligation.name}"
    if obligation.dosage:
        body += f" ({obligation.dosage})"
    return NotificationContent(
        title="Medication Reminder",
        body=body,
        data={
            "type": TYPE_MEDICATION_REMINDER,
            "obligation_id": obligation.id,
            "medication_name": obligation.name,
            "medication_dosage": obligation.dosage,
            "scheduled_time": obligation.time_of_day,
        },
        category_identifier=MEDICATION_CATEGORY,
        sound=settings.sound_enabled,
        vibrate=settings.vibration_enabled,
    )


def _overdue_content(
    obligation: CareObligation, settings: NotificationSettings
) -> NotificationContent:
    due = to_12_hour(parse_time_to_minutes(obligation.time_of_day))
    return NotificationContent(
        title="Medication Overdue",
        body=f"{obligation.name} was due at {due}. Have you taken it?",
        data={
            "type": TYPE_MEDICATION_OVERDUE,
            "overdue": True,
            "obligation_id": obligation.id,
            "medication_name": obligation.name,
            "medication_dosage": obligation.dosage,
            "scheduled_time": obligation.time_of_day,
        },
        category_identifier=MEDICATION_CATEGORY,
        priority="high",
        sound=settings.sound_enabled,
        vibrate=settings.vibration_enabled,
    )


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class ReminderScheduler:
    """Keeps device triggers in step with obligations and settings.

    Usage::

        scheduler = ReminderScheduler(notifier, SettingsStore(prefs), obligations=repo)
        scheduler.reschedule_all()
        scheduler.handle_action("snooze", delivered_content, delivered_handle)
    """

    def __init__(
        self,
        notifier: DeviceNotifier,
        settings_store: SettingsStore,
        *,
        obligations: ObligationSource | None = None,
        completions: CompletionRecorder | None = None,
        clock: Clock | None = None,
        medication_snooze_minutes: int = 15,
        appointment_snooze_minutes: int = 30,
    ) -> None:
        self._notifier = notifier
        self._settings_store = settings_store
        self._obligations = obligations
        self._completions = completions
        self._clock = clock or SystemClock()
        self._medication_snooze = medication_snooze_minutes
        self._appointment_snooze = appointment_snooze_minutes
        self._lock = threading.Lock()
        self._recurring: dict[str, ScheduledTrigger] = {}

    @property
    def triggers(self) -> list[ScheduledTrigger]:
        """Recurring triggers from the most recent rebuild."""
        return list(self._recurring.values())

    def get_settings(self) -> NotificationSettings:
        return self._settings_store.get_settings()

    # ------------------------------------------------------------------
    # Recurring reminders
    # ------------------------------------------------------------------

    def reschedule_all(
        self,
        obligations: list[CareObligation] | None = None,
        settings: NotificationSettings | None = None,
    ) -> list[ScheduledTrigger]:
        """Cancel every trigger and recreate one set per active obligation.

        Without notification permission nothing is cancelled or created and
        no triggers are reported. With reminders disabled it only cancels. Concurrent calls are serialized so one
        rebuild never interleaves with another.

        Args:
            obligations: Obligations to schedule. Defaults to the active
                obligations from the obligation source.
            settings: Settings to apply. Defaults to the stored settings.

        Returns:
            The triggers that were registered.
        """
        with self._lock:
            if not self._notifier.has_permission():
                logger.debug("Notification permission not granted; reschedule skipped")
                self._recurring.clear()
                return []

            if settings is None:
                settings = self._settings_store.get_settings()
            if obligations is None:
                obligations = self._load_obligations()

            self._notifier.cancel_all()
            self._recurring.clear()

            if not settings.enabled:
                logger.info("Reminders disabled; all triggers cancelled")
                return []

            created: list[ScheduledTrigger] = []
            for obligation in obligations:
                if not obligation.active:
                    continue
                try:
                    created.extend(self._schedule_obligation(obligation, settings))
                except (ValueError, NotifierError) as exc:
                    logger.warning(
                        "Skipping reminders for obligation %s (%s): %s",
                        obligation.id,
                        obligation.name,
                        exc,
                    )

            logger.info(
                "Scheduled %d reminder triggers for %d obligations",
                len(created),
                sum(1 for o in obligations if o.active),
            )
            return created

    def _load_obligations(self) -> list[CareObligation]:
        if self._obligations is None:
            return []
        return self._obligations.list_obligations(active_only=True)

    def _schedule_obligation(
        self, obligation: CareObligation, settings: NotificationSettings
    ) -> list[ScheduledTrigger]:
        # Compute both times before registering anything so a malformed
        # time_of_day leaves no half-scheduled obligation behind.
        hour, minute = primary_trigger_time(obligation.time_of_day, settings)
        overdue_at = (
            overdue_trigger_time(obligation.time_of_day, settings)
            if settings.overdue_alerts_enabled
            else None
        )

        triggers = [
            self._register_recurring(
                obligation, "primary", hour, minute, _reminder_content(obligation, settings)
            )
        ]
        if overdue_at is not None:
            triggers.append(self._register_recurring(
                obligation, "overdue", *overdue_at, _overdue_content(obligation, settings)
            ))
        return triggers

    def _register_recurring(
        self,
        obligation: CareObligation,
        tag: str,
        hour: int,
        minute: int,
        content: NotificationContent,
    ) -> ScheduledTrigger:
        handle = self._notifier.schedule_recurring(hour, minute, content)
        trigger = ScheduledTrigger(
            handle=handle,
            tag=tag,  # type: ignore[arg-type]
            content=content,
            obligation_id=obligation.id,
            hour=hour,
            minute=minute,
        )
        self._recurring[handle] = trigger
        return trigger

    # ------------------------------------------------------------------
    # One-time reminders
    # ------------------------------------------------------------------

    def schedule_one_time(
        self,
        title: str,
        body: str,
        instant: datetime,
        payload: dict[str, Any] | None = None,
        *,
        category: str | None = None,
    ) -> str | None:
        """Register a non-recurring reminder.

        Quiet hours are not applied here; callers consult
        :meth:`is_in_quiet_hours` when a notification is delivered.

        Returns:
            The notifier handle, or None without permission, with
            reminders disabled, or if the notifier refuses the request.
        """
        settings = self._settings_store.get_settings()
        if not self._notifier.has_permission() or not settings.enabled:
            return None

        content = NotificationContent(
            title=title,
            body=body,
            data=dict(payload or {}),
            category_identifier=category,
            sound=settings.sound_enabled,
            vibrate=settings.vibration_enabled,
        )
        try:
            return self._notifier.schedule_once(instant, content)
        except NotifierError as exc:
            logger.warning("One-time reminder %r not scheduled: %s", title, exc)
            return None

    def schedule_appointment_reminder(
        self,
        appointment_id: str,
        description: str,
        appointment_time: datetime,
        *,
        minutes_before: int = 60,
    ) -> str | None:
        """One-time reminder ahead of an appointment.

        Returns None if the reminder time has already passed.
        """
        fire_at = appointment_time - timedelta(minutes=minutes_before)
        if fire_at <= self._clock.now():
            logger.info("Appointment %s reminder time already passed", appointment_id)
            return None
        when = to_12_hour(minute_of_day(appointment_time))
        return self.schedule_one_time(
            "Appointment Reminder",
            f"{description} at {when}",
            fire_at,
            {
                "type": TYPE_APPOINTMENT_REMINDER,
                "appointment_id": appointment_id,
                "appointment_time": appointment_time.isoformat(),
            },
            category=APPOINTMENT_CATEGORY,
        )

    # ------------------------------------------------------------------
    # Quiet hours and delivery-time checks
    # ------------------------------------------------------------------

    def is_in_quiet_hours(
        self,
        now: datetime | None = None,
        settings: NotificationSettings | None = None,
    ) -> bool:
        settings = settings or self._settings_store.get_settings()
        return is_in_quiet_hours(settings, now or self._clock.now())

    def should_surface(
        self,
        data: dict[str, Any],
        now: datetime | None = None,
        settings: NotificationSettings | None = None,
    ) -> bool:
        """Decide at delivery time whether a fired notification is shown.

        A medication reminder or overdue alert for a dose already marked
        taken today is dropped. Overdue alerts are high priority and still
        surface during quiet hours; everything else is held back then.
        """
        settings = settings or self._settings_store.get_settings()
        now = now or self._clock.now()
        if not settings.enabled:
            return False

        kind = data.get("type")
        obligation_id = data.get("obligation_id")
        if kind in (TYPE_MEDICATION_REMINDER, TYPE_MEDICATION_OVERDUE) and obligation_id:
            if self._already_completed(str(obligation_id), now.date()):
                return False

        if kind == TYPE_MEDICATION_OVERDUE:
            return True
        return not is_in_quiet_hours(settings, now)

    def _already_completed(self, obligation_id: str, on: date) -> bool:
        if self._completions is None:
            return False
        try:
            return self._completions.is_completed(obligation_id, on)
        except Exception:
            # Fail open: an unknown completion state still surfaces.
            logger.warning(
                "Completion check failed for %s; surfacing notification",
                obligation_id,
                exc_info=True,
            )
            return False

    # ------------------------------------------------------------------
    # Quick actions
    # ------------------------------------------------------------------

    def handle_action(
        self,
        action: str,
        content: NotificationContent,
        delivered_handle: str | None = None,
    ) -> ActionOutcome:
        """Process one action taken on a delivered notification.

        Actions are independent of each other and take no lock.

        Raises:
            ValueError: For an unknown action.
        """
        if action in (ACTION_SNOOZE, ACTION_SNOOZE_APPOINTMENT):
            minutes = (
                self._appointment_snooze
                if action == ACTION_SNOOZE_APPOINTMENT
                else self._medication_snooze
            )
            return self._snooze(action, content, delivered_handle, minutes)
        if action == ACTION_MARK_TAKEN:
            return self._mark_taken(content, delivered_handle)
        if action == ACTION_DISMISS:
            self._cancel_delivered(delivered_handle)
            return ActionOutcome(action=action, state="dismissed")
        if action in (ACTION_VIEW_DETAILS, ACTION_DEFAULT):
            return ActionOutcome(
                action=action, state="dismissed", route=_route_for(content.data)
            )
        raise ValueError(f"Unknown notification action: {action!r}")

    def _snooze(
        self,
        action: str,
        content: NotificationContent,
        delivered_handle: str | None,
        minutes: int,
    ) -> ActionOutcome:
        self._cancel_delivered(delivered_handle)
        now = self._clock.now()
        fire_at = now + timedelta(minutes=minutes)
        try:
            handle = self._notifier.schedule_once(fire_at, content)
        except NotifierError as exc:
            logger.warning("Snooze not scheduled: %s", exc)
            return ActionOutcome(action=action, state="delivered", message=str(exc))

        confirmation = self._confirm(
            "Reminder Snoozed", f"Will remind you again in {minutes} minutes", now
        )
        return ActionOutcome(
            action=action,
            state="snoozed",
            handle=handle,
            fire_at=fire_at,
            confirmation_handle=confirmation,
            message=f"Snoozed for {minutes} minutes",
        )

    def _mark_taken(
        self, content: NotificationContent, delivered_handle: str | None
    ) -> ActionOutcome:
        obligation_id = content.data.get("obligation_id")
        name = str(content.data.get("medication_name") or "Medication")
        if not obligation_id or self._completions is None:
            logger.warning("Mark-taken action without an obligation to record")
            return ActionOutcome(
                action=ACTION_MARK_TAKEN, state="delivered", message="Nothing to record"
            )

        now = self._clock.now()
        try:
            self._completions.mark_taken(
                str(obligation_id),
                now,
                name=name,
                dosage=str(content.data.get("medication_dosage") or ""),
            )
        except Exception as exc:
            logger.warning("Could not record %s as taken: %s", obligation_id, exc)
            return ActionOutcome(
                action=ACTION_MARK_TAKEN, state="delivered", message="Could not record dose"
            )

        self._cancel_delivered(delivered_handle)
        confirmation = self._confirm("Medication Logged", f"{name} marked as taken", now)
        return ActionOutcome(
            action=ACTION_MARK_TAKEN,
            state="dismissed",
            confirmation_handle=confirmation,
            message=f"{name} marked as taken",
        )

    def _confirm(self, title: str, body: str, now: datetime) -> str | None:
        try:
            return self._notifier.schedule_once(
                now,
                NotificationContent(title=title, body=body, data={"type": TYPE_CONFIRMATION}),
            )
        except NotifierError as exc:
            logger.debug("Confirmation %r not shown: %s", title, exc)
            return None

    def _cancel_delivered(self, handle: str | None) -> None:
        # Recurring triggers keep firing on later days; only one-shot
        # handles are cancelable.
        if not handle or handle in self._recurring:
            return
        try:
            self._notifier.cancel(handle)
        except NotifierError as exc:
            logger.debug("Delivered notification %s not cancelable: %s", handle, exc)


def _route_for(data: dict[str, Any]) -> str | None:
    kind = data.get("type")
    if kind in (TYPE_MEDICATION_REMINDER, TYPE_MEDICATION_OVERDUE):
        return "medications"
    if kind == TYPE_APPOINTMENT_REMINDER:
        return "appointments"
    return None
