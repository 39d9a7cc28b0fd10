"""Completion tracking backed by medication logs."""

from __future__ import annotations

import logging
from datetime import date, datetime

from caretrack.core.storage.repository import CareRepository

logger = logging.getLogger(__name__)


class RepositoryCompletionRecorder:
    """Marks doses taken by appending a ``medications`` log.

    A dose counts as completed on a day when a medication log for that
    obligation with ``taken`` true exists on that calendar day.
    """

    def __init__(self, repository: CareRepository) -> None:
        self._repo = repository

    def mark_taken(
        self, obligation_id: str, when: datetime, *, name: str = "", dosage: str = ""
    ) -> None:
        self._repo.append_log(
            "medications",
            {
                "obligation_id": obligation_id,
                "name": name,
                "dosage": dosage,
                "taken": True,
                "source": "notification",
            },
            timestamp=when.isoformat(),
        )
        logger.info("Marked obligation %s taken from a notification", obligation_id)

    def is_completed(self, obligation_id: str, on: date) -> bool:
        logs = self._repo.list_logs("medications", start=on, end=on)
        return any(
            log.payload.get("obligation_id") == obligation_id and log.payload.get("taken")
            for log in logs
        )
