"""SQLite database management for the CareTrack data store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Append-only daily records (meals, vitals, medications, mood, sleep, ...)
CREATE TABLE IF NOT EXISTS care_logs (
    id          TEXT PRIMARY KEY,
    category    TEXT NOT NULL,
    timestamp   TEXT NOT NULL,
    -- Calendar day of the timestamp, kept in clear for range queries
    log_date    TEXT NOT NULL,
    payload_enc TEXT,
    created_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Recurring reminder sources (one row per scheduled dose)
CREATE TABLE IF NOT EXISTS care_obligations (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    dosage      TEXT NOT NULL DEFAULT '',
    time_of_day TEXT NOT NULL,
    category    TEXT NOT NULL DEFAULT 'medication',
    active      INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Opaque key-value preferences: notification settings, one-time flags,
-- baseline confirmations, dismissed suggestions
CREATE TABLE IF NOT EXISTS preferences (
    key        TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_logs_category_date ON care_logs(category, log_date);
CREATE INDEX IF NOT EXISTS idx_logs_date          ON care_logs(log_date);
CREATE INDEX IF NOT EXISTS idx_obligations_active ON care_obligations(active);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (tool usage and deletions, no health data)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    record_id       TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class CareDatabase:
    """SQLite database manager for the CareTrack data store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing and for running without an
    encryption key.

    Usage::

        db = CareDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        # Held across read-modify-write sequences on the shared connection
        self.write_lock = threading.RLock()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_persistent(self) -> bool:
        return self._db_path != ":memory:"

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        # Tools run on the server's event loop thread while reschedules can
        # come from worker threads, so the connection is shared across threads.
        if self.is_persistent:
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Care database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: core tables (CREATE IF NOT EXISTS is idempotent)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Care database closed")

    def __enter__(self) -> CareDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
