"""Persistence of NotificationSettings in the preference store."""

from __future__ import annotations

from caretrack.core.storage.preferences import PreferenceStore
from caretrack.domains.care.domain_logic.reminder_models import NotificationSettings

NOTIFICATION_SETTINGS_KEY = "notifications.settings"


class SettingsStore:
    """``get_settings`` / ``save_settings`` over a :class:`PreferenceStore`."""

    def __init__(self, preferences: PreferenceStore) -> None:
        self._prefs = preferences

    def get_settings(self) -> NotificationSettings:
        return NotificationSettings.from_dict(self._prefs.get(NOTIFICATION_SETTINGS_KEY))

    def save_settings(self, settings: NotificationSettings) -> None:
        self._prefs.set(NOTIFICATION_SETTINGS_KEY, settings.to_dict())
