"""Care data repository: the log store and care obligations.

The repository mediates between domain objects (DailyLog, CareObligation)
and the SQLite database, using FieldEncryptor for log payloads.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from caretrack.core.clock.calendar import Clock, SystemClock, local_date_of, parse_time_to_minutes
from caretrack.core.storage.database import CareDatabase
from caretrack.core.storage.encryption import EncryptionError, FieldEncryptor
from caretrack.core.storage.models import LOG_CATEGORIES, CareObligation, DailyLog

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class CareRepository:
    """Append-only log store plus care obligation CRUD.

    Usage::

        db = CareDatabase(":memory:")
        db.initialize()
        repo = CareRepository(db, FieldEncryptor(key))

        repo.append_log("mood", {"mood": 6})
        week = repo.list_logs("mood", start=date(2026, 3, 4), end=date(2026, 3, 10))
    """

    def __init__(
        self,
        database: CareDatabase,
        encryptor: FieldEncryptor,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._db = database
        self._enc = encryptor
        self._clock = clock or SystemClock()

    @property
    def database(self) -> CareDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _now_iso(self) -> str:
        return self._clock.now().isoformat()

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def append_log(
        self,
        category: str,
        payload: dict[str, Any],
        *,
        timestamp: str | None = None,
    ) -> DailyLog:
        """Append an immutable log entry.

        Args:
            category: One of :data:`LOG_CATEGORIES`.
            payload: Category-specific fields; stored encrypted.
            timestamp: ISO 8601 instant. Defaults to now.

        Returns:
            The stored log.

        Raises:
            RepositoryError: On an unknown category, a malformed timestamp,
                or a storage failure.
        """
        if category not in LOG_CATEGORIES:
            raise RepositoryError(f"Unknown log category: {category!r}")

        timestamp = timestamp or self._now_iso()
        try:
            log_date = local_date_of(timestamp)
        except ValueError as exc:
            raise RepositoryError(f"Malformed log timestamp {timestamp!r}: {exc}") from exc

        log = DailyLog(
            id=self._new_id(),
            category=category,
            timestamp=timestamp,
            payload=dict(payload),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO care_logs
                   (id, category, timestamp, log_date, payload_enc, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    log.id,
                    category,
                    timestamp,
                    log_date.isoformat(),
                    self._enc.encrypt(log.payload),
                    log.created_at,
                ),
            )
            conn.commit()
        except (sqlite3.Error, EncryptionError) as exc:
            raise RepositoryError(f"Failed to append {category} log: {exc}") from exc

        logger.debug("Appended %s log %s for %s", category, log.id, log_date)
        return log

    def get_log(self, log_id: str) -> DailyLog | None:
        row = self._query_one("SELECT * FROM care_logs WHERE id = ?", (log_id,))
        return self._row_to_log(row) if row is not None else None

    def list_logs(
        self,
        category: str | None = None,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DailyLog]:
        """Return logs in a category and inclusive date range, oldest first.

        Raises:
            RepositoryError: If the store cannot be read or a payload
                cannot be decrypted.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if category:
            conditions.append("category = ?")
            params.append(category)
        if start is not None:
            conditions.append("log_date >= ?")
            params.append(start.isoformat())
        if end is not None:
            conditions.append("log_date <= ?")
            params.append(end.isoformat())

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        rows = self._query_all(
            f"SELECT * FROM care_logs{where} ORDER BY log_date ASC, timestamp ASC",
            params,
        )
        return [self._row_to_log(row) for row in rows]

    def count_logs(self, category: str | None = None) -> int:
        if category:
            row = self._query_one(
                "SELECT COUNT(*) FROM care_logs WHERE category = ?", (category,)
            )
        else:
            row = self._query_one("SELECT COUNT(*) FROM care_logs", ())
        return row[0]

    def earliest_log_date(self) -> date | None:
        """Calendar day of the oldest log, or None for an empty store."""
        row = self._query_one("SELECT MIN(log_date) FROM care_logs", ())
        if row is None or row[0] is None:
            return None
        return date.fromisoformat(row[0])

    def count_log_days(self, category: str | None = None) -> int:
        """Number of distinct calendar days with at least one log."""
        if category:
            row = self._query_one(
                "SELECT COUNT(DISTINCT log_date) FROM care_logs WHERE category = ?",
                (category,),
            )
        else:
            row = self._query_one("SELECT COUNT(DISTINCT log_date) FROM care_logs", ())
        return row[0]

    # ------------------------------------------------------------------
    # Care obligations
    # ------------------------------------------------------------------

    def save_obligation(self, obligation: CareObligation) -> str:
        """Insert or update an obligation.

        If ``obligation.id`` is empty a new UUID is assigned.

        Raises:
            RepositoryError: If ``time_of_day`` is not a valid time.
        """
        try:
            parse_time_to_minutes(obligation.time_of_day)
        except ValueError as exc:
            raise RepositoryError(str(exc)) from exc

        obligation_id = obligation.id or self._new_id()
        now = datetime.now(timezone.utc).isoformat()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO care_obligations
               (id, name, dosage, time_of_day, category, active, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   dosage = excluded.dosage,
                   time_of_day = excluded.time_of_day,
                   category = excluded.category,
                   active = excluded.active,
                   updated_at = excluded.updated_at""",
            (
                obligation_id,
                obligation.name,
                obligation.dosage,
                obligation.time_of_day,
                obligation.category,
                1 if obligation.active else 0,
                obligation.created_at or now,
                now,
            ),
        )
        conn.commit()
        return obligation_id

    def get_obligation(self, obligation_id: str) -> CareObligation | None:
        row = self._query_one(
            "SELECT * FROM care_obligations WHERE id = ?", (obligation_id,)
        )
        return self._row_to_obligation(row) if row is not None else None

    def list_obligations(self, *, active_only: bool = False) -> list[CareObligation]:
        query = "SELECT * FROM care_obligations"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY time_of_day ASC, name ASC"
        return [self._row_to_obligation(row) for row in self._query_all(query, ())]

    def set_obligation_active(self, obligation_id: str, active: bool) -> bool:
        conn = self._db.connection
        cursor = conn.execute(
            "UPDATE care_obligations SET active = ?, updated_at = ? WHERE id = ?",
            (1 if active else 0, datetime.now(timezone.utc).isoformat(), obligation_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def delete_obligation(self, obligation_id: str) -> bool:
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM care_obligations WHERE id = ?", (obligation_id,)
        )
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Deletion / data retention
    # ------------------------------------------------------------------

    def delete_log(self, log_id: str) -> bool:
        """Delete a single log entry. Returns False if it did not exist."""
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM care_logs WHERE id = ?", (log_id,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Deleted care log %s", log_id)
        return cursor.rowcount > 0

    def purge_before(self, before: date) -> int:
        """Delete all logs dated strictly before ``before``.

        Returns:
            Number of logs deleted.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM care_logs WHERE log_date < ?", (before.isoformat(),)
        )
        conn.commit()
        logger.info("Purged %d care logs older than %s", cursor.rowcount, before)
        return cursor.rowcount

    def purge_before_days(self, days: int) -> int:
        """Delete all logs older than ``days`` calendar days."""
        cutoff = self._clock.now().date() - timedelta(days=days)
        return self.purge_before(cutoff)

    def delete_all_data(self) -> int:
        """Delete every log and obligation.

        Returns:
            Number of log rows deleted.
        """
        conn = self._db.connection
        count = conn.execute("SELECT COUNT(*) FROM care_logs").fetchone()[0]
        conn.execute("DELETE FROM care_logs")
        conn.execute("DELETE FROM care_obligations")
        conn.commit()
        logger.warning("Deleted ALL care data: %d logs removed", count)
        return count

    def reencrypt_all(self) -> int:
        """Re-encrypt every log payload under the primary key.

        Returns:
            Number of rows rewritten.
        """
        conn = self._db.connection
        rows = conn.execute(
            "SELECT id, payload_enc FROM care_logs WHERE payload_enc IS NOT NULL"
        ).fetchall()
        try:
            updates = [(self._enc.rotate(row["payload_enc"]), row["id"]) for row in rows]
        except EncryptionError as exc:
            raise RepositoryError(f"Key rotation failed: {exc}") from exc
        conn.executemany("UPDATE care_logs SET payload_enc = ? WHERE id = ?", updates)
        conn.commit()
        logger.info("Re-encrypted %d care logs", len(updates))
        return len(updates)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query_one(self, query: str, params: Any) -> Any:
        try:
            return self._db.connection.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Care store read failed: {exc}") from exc

    def _query_all(self, query: str, params: Any) -> list[Any]:
        try:
            return self._db.connection.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Care store read failed: {exc}") from exc

    def _row_to_log(self, row: Any) -> DailyLog:
        """Convert a database row to a DailyLog with decrypted payload."""
        try:
            payload = self._enc.decrypt(row["payload_enc"] or "")
        except EncryptionError as exc:
            raise RepositoryError(f"Cannot decrypt log {row['id']}: {exc}") from exc
        return DailyLog(
            id=row["id"],
            category=row["category"],
            timestamp=row["timestamp"],
            payload=payload or {},
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_obligation(row: Any) -> CareObligation:
        return CareObligation(
            id=row["id"],
            name=row["name"],
            dosage=row["dosage"],
            time_of_day=row["time_of_day"],
            active=bool(row["active"]),
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
