"""Pairwise correlations between tracked variables.

Builds one data point per day (symptom severities, mood, sleep, fluids,
vitals, medication adherence) and computes Pearson's r for a fixed list of
variable pairs. Wording stays associative: a correlation here never claims
that one thing causes another.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Literal, Protocol, runtime_checkable

from caretrack.core.storage.models import DailyLog
from caretrack.domains.care.domain_logic.daily_metrics import (
    daily_adherence,
    daily_mean,
    daily_symptom_severity,
    daily_total,
)
from caretrack.domains.care.sources import LogRepository, ObligationSource

logger = logging.getLogger(__name__)

CorrelationConfidence = Literal["low", "moderate", "high"]

MIN_PAIRED_DAYS = 7
MIN_ABS_COEFFICIENT = 0.3
HIGH_CONFIDENCE_POINTS = 20
MODERATE_CONFIDENCE_POINTS = 14
# Detection needs this many recent days with at least two tracked variables
MIN_QUALIFYING_DAYS = 14
MIN_VARIABLES_PER_DAY = 2
SUFFICIENCY_LOOKBACK_DAYS = 14

VARIABLE_LABELS: dict[str, str] = {
    "pain": "pain",
    "fatigue": "fatigue",
    "nausea": "nausea",
    "dizziness": "dizziness",
    "mood": "mood",
    "sleep": "sleep",
    "hydration": "fluid intake",
    "systolic": "systolic blood pressure",
    "diastolic": "diastolic blood pressure",
    "heart_rate": "heart rate",
    "med_adherence": "medication adherence",
}

VARIABLE_PAIRS: tuple[tuple[str, str], ...] = (
    ("pain", "hydration"),
    ("pain", "sleep"),
    ("pain", "med_adherence"),
    ("fatigue", "sleep"),
    ("fatigue", "hydration"),
    ("mood", "sleep"),
    ("mood", "med_adherence"),
    ("nausea", "med_adherence"),
    ("dizziness", "systolic"),
    ("heart_rate", "med_adherence"),
)

_SYMPTOMS = ("pain", "fatigue", "nausea", "dizziness")

_SUFFICIENCY_VARIABLES = ("pain", "fatigue", "nausea", "hydration", "mood", "sleep", "med_adherence")


@dataclass
class Correlation:
    id: str
    variable_a: str
    variable_b: str
    coefficient: float
    data_points: int
    confidence: CorrelationConfidence
    insight: str
    action: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class CorrelationSource(Protocol):
    def detect(self, start: date, end: date) -> list[Correlation]:
        ...


def confidence_for_points(points: int) -> CorrelationConfidence:
    if points >= HIGH_CONFIDENCE_POINTS:
        return "high"
    if points >= MODERATE_CONFIDENCE_POINTS:
        return "moderate"
    return "low"


def pearson(xs: list[float], ys: list[float]) -> float | None:
    """Pearson's r, or None when either series is constant or too short."""
    try:
        return statistics.correlation(xs, ys)
    except statistics.StatisticsError:
        return None


def build_daily_series(
    logs: dict[str, list[DailyLog]], active_doses: int
) -> dict[str, dict[date, float]]:
    """Variable name -> {day: value} for every variable with data."""
    series: dict[str, dict[date, float]] = {}
    symptoms = logs.get("symptoms", [])
    for symptom in _SYMPTOMS:
        series[symptom] = daily_symptom_severity(symptoms, symptom)
    series["mood"] = daily_mean(logs.get("mood", []), "mood")
    series["sleep"] = daily_total(logs.get("sleep", []), "hours")
    series["hydration"] = daily_total(logs.get("hydration", []), "cups")
    vitals = logs.get("vitals", [])
    for name in ("systolic", "diastolic", "heart_rate"):
        series[name] = daily_mean(vitals, name)
    series["med_adherence"] = daily_adherence(logs.get("medications", []), active_doses)
    return {name: values for name, values in series.items() if values}


def has_sufficient_data(series: dict[str, dict[date, float]], end: date) -> bool:
    """True when the lookback ending at ``end`` holds enough qualifying days.

    A day qualifies when at least two of the core tracked variables have a
    value for it.
    """
    start = end - timedelta(days=SUFFICIENCY_LOOKBACK_DAYS)
    tracked: dict[date, int] = {}
    for name in _SUFFICIENCY_VARIABLES:
        for day in series.get(name, {}):
            if start <= day <= end:
                tracked[day] = tracked.get(day, 0) + 1
    qualifying = sum(1 for count in tracked.values() if count >= MIN_VARIABLES_PER_DAY)
    return qualifying >= MIN_QUALIFYING_DAYS


def _within(
    series: dict[str, dict[date, float]], start: date, end: date
) -> dict[str, dict[date, float]]:
    return {
        name: {day: value for day, value in values.items() if start <= day <= end}
        for name, values in series.items()
    }


def describe_correlation(variable_a: str, variable_b: str, r: float) -> str:
    a, b = VARIABLE_LABELS[variable_a], VARIABLE_LABELS[variable_b]
    if r > 0:
        return f"Higher {a} may be associated with higher {b}."
    return f"Higher {a} may be associated with lower {b}."


def detect_correlations(series: dict[str, dict[date, float]]) -> list[Correlation]:
    """Correlations for every configured pair with enough paired days."""
    found: list[Correlation] = []
    for variable_a, variable_b in VARIABLE_PAIRS:
        a_values, b_values = series.get(variable_a, {}), series.get(variable_b, {})
        days = sorted(set(a_values) & set(b_values))
        if len(days) < MIN_PAIRED_DAYS:
            continue
        r = pearson([a_values[d] for d in days], [b_values[d] for d in days])
        if r is None or abs(r) < MIN_ABS_COEFFICIENT:
            continue
        found.append(Correlation(
            id=f"{variable_a}-{variable_b}",
            variable_a=variable_a,
            variable_b=variable_b,
            coefficient=round(r, 3),
            data_points=len(days),
            confidence=confidence_for_points(len(days)),
            insight=describe_correlation(variable_a, variable_b, r),
            action=(
                f"Keep logging {VARIABLE_LABELS[variable_a]} and "
                f"{VARIABLE_LABELS[variable_b]} to see whether this pattern holds."
            ),
        ))
    found.sort(key=lambda item: abs(item.coefficient), reverse=True)
    return found


class CorrelationDetector:
    """:class:`CorrelationSource` over the log repository."""

    def __init__(
        self,
        logs: LogRepository,
        obligations: ObligationSource | None = None,
    ) -> None:
        self._logs = logs
        self._obligations = obligations

    def detect(self, start: date, end: date) -> list[Correlation]:
        """Correlations in ``[start, end]``, or none without enough recent history."""
        lookback_start = min(start, end - timedelta(days=SUFFICIENCY_LOOKBACK_DAYS))
        logs: dict[str, list[DailyLog]] = {}
        for log in self._logs.list_logs(start=lookback_start, end=end):
            logs.setdefault(log.category, []).append(log)
        active_doses = 0
        if self._obligations is not None:
            active_doses = sum(
                1 for o in self._obligations.list_obligations(active_only=True)
                if o.category == "medication"
            )
        series = build_daily_series(logs, active_doses)
        if not has_sufficient_data(series, end):
            logger.debug("Not enough tracked days before %s for correlations", end)
            return []
        correlations = detect_correlations(_within(series, start, end))
        logger.debug("Detected %d correlations between %s and %s", len(correlations), start, end)
        return correlations
