"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """CareTrack server configuration.

    These are process settings. The user's reminder preferences
    (quiet hours, grace period, ...) are data and live in the
    preference store instead.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the server holds caregiving health data and has
    # no auth layer of its own.
    caretrack_host: str = "127.0.0.1"
    caretrack_port: int = 8011
    caretrack_log_level: str = "info"
    caretrack_allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.caretrack/care.db"

    # Encryption. Several comma-separated keys enable rotation; the first
    # one encrypts, all of them decrypt.
    encryption_key: str = ""

    # Reminder quick actions
    medication_snooze_minutes: int = 15
    appointment_snooze_minutes: int = 30


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
