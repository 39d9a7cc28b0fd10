"""Data models for the care persistence layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Literal

from caretrack.core.clock.calendar import local_date_of

LogCategory = Literal[
    "meals", "vitals", "medications", "mood", "sleep", "symptoms", "hydration"
]

LOG_CATEGORIES: tuple[str, ...] = (
    "meals",
    "vitals",
    "medications",
    "mood",
    "sleep",
    "symptoms",
    "hydration",
)

# Fields of a vitals log that each count as one reading
VITAL_FIELDS: tuple[str, ...] = (
    "systolic",
    "diastolic",
    "heart_rate",
    "temperature",
    "glucose",
    "weight",
    "oxygen",
)


@dataclass(frozen=True)
class DailyLog:
    """One immutable record in the log repository.

    ``payload`` shape depends on ``category``::

        meals        {"meals": ["breakfast", "lunch"]}
        vitals       {"systolic": 128, "diastolic": 82, "heart_rate": 71}
        medications  {"obligation_id": "...", "name": "Lisinopril", "taken": true}
        mood         {"mood": 6}
        sleep        {"hours": 7.5}
        symptoms     {"symptom": "fatigue", "severity": 4}
        hydration    {"cups": 2}
    """

    id: str
    category: str
    timestamp: str  # ISO 8601 instant
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    @property
    def date(self) -> date:
        """Calendar day the entry belongs to."""
        return local_date_of(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class CareObligation:
    """A recurring reminder source, e.g. one scheduled medication dose."""

    id: str
    name: str
    time_of_day: str  # "HH:MM", 24h
    dosage: str = ""
    active: bool = True
    category: str = "medication"
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
