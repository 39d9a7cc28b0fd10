"""Key-value preference store.

Holds the small pieces of user state that are not logs: notification
settings, one-time "has this been shown" flags, and override sets such as
confirmed baselines or dismissed suggestions. Values are JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from caretrack.core.storage.database import CareDatabase

logger = logging.getLogger(__name__)


class PreferenceError(Exception):
    """Raised when the preference store cannot be read or written."""


class PreferenceStore:
    """JSON values keyed by dotted names, e.g. ``insights.sample_seen``."""

    def __init__(self, database: CareDatabase) -> None:
        self._db = database

    # ------------------------------------------------------------------
    # Raw values
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` if absent or unreadable."""
        try:
            row = self._db.connection.execute(
                "SELECT value_json FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise PreferenceError(f"Failed to read preference {key!r}: {exc}") from exc
        if row is None:
            return default
        try:
            return json.loads(row["value_json"])
        except ValueError:
            logger.warning("Preference %r holds invalid JSON; using default", key)
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            value_json = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise PreferenceError(f"Preference {key!r} is not JSON-serializable") from exc
        try:
            with self._db.write_lock:
                conn = self._db.connection
                conn.execute(
                    """INSERT INTO preferences (key, value_json, updated_at)
                       VALUES (?, ?, datetime('now'))
                       ON CONFLICT(key) DO UPDATE SET
                           value_json = excluded.value_json,
                           updated_at = excluded.updated_at""",
                    (key, value_json),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PreferenceError(f"Failed to write preference {key!r}: {exc}") from exc

    def delete(self, key: str) -> bool:
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0

    def clear(self) -> int:
        """Remove every preference. Returns the number removed."""
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM preferences")
        conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # One-time flags
    # ------------------------------------------------------------------

    def get_flag(self, key: str) -> bool:
        return bool(self.get(key, False))

    def set_flag(self, key: str, value: bool = True) -> None:
        self.set(key, bool(value))

    # ------------------------------------------------------------------
    # Override sets
    # ------------------------------------------------------------------

    def get_set(self, key: str) -> set[str]:
        value = self.get(key, [])
        if not isinstance(value, list):
            logger.warning("Preference %r is not a list; treating as empty", key)
            return set()
        return {str(member) for member in value}

    def add_to_set(self, key: str, member: str) -> None:
        with self._db.write_lock:
            members = self.get_set(key)
            if member not in members:
                members.add(member)
                self.set(key, sorted(members))

    def remove_from_set(self, key: str, member: str) -> None:
        with self._db.write_lock:
            members = self.get_set(key)
            if member in members:
                members.discard(member)
                self.set(key, sorted(members))
