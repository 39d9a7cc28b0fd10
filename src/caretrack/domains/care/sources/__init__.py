"""Collaborator interfaces the care engines read from and write through.

Engines depend on these protocols, not on :class:`CareRepository`, so a
caller can back them with anything that answers the same questions.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol, runtime_checkable

from caretrack.core.storage.models import CareObligation, DailyLog


@runtime_checkable
class LogRepository(Protocol):
    """Read side of the append-only log store."""

    def list_logs(
        self,
        category: str | None = None,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DailyLog]:
        """Logs in ``[start, end]``, oldest first."""
        ...

    def earliest_log_date(self) -> date | None:
        ...


@runtime_checkable
class ObligationSource(Protocol):
    """Where the scheduler finds what to remind about."""

    def list_obligations(self, *, active_only: bool = False) -> list[CareObligation]:
        ...


@runtime_checkable
class CompletionRecorder(Protocol):
    """Domain write behind "mark done", and the check made at delivery time."""

    def mark_taken(
        self, obligation_id: str, when: datetime, *, name: str = "", dosage: str = ""
    ) -> None:
        ...

    def is_completed(self, obligation_id: str, on: date) -> bool:
        ...
