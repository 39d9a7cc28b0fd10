"""Per-day reductions of raw logs, shared by the rule engine and correlation detector."""

from __future__ import annotations

import statistics
from collections import defaultdict
from datetime import date
from typing import Any, Iterable

from caretrack.core.storage.models import DailyLog


def as_number(value: Any) -> float | None:
    """Numeric payload value, or None for missing or non-numeric entries."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def payload_numbers(logs: Iterable[DailyLog], field: str) -> list[float]:
    """Every numeric ``field`` value across ``logs``, in log order."""
    found = []
    for log in logs:
        value = as_number(log.payload.get(field))
        if value is not None:
            found.append(value)
    return found


def group_by_day(logs: Iterable[DailyLog]) -> dict[date, list[DailyLog]]:
    grouped: dict[date, list[DailyLog]] = defaultdict(list)
    for log in logs:
        grouped[log.date].append(log)
    return dict(grouped)


def values_by_day(logs: Iterable[DailyLog], field: str) -> dict[date, list[float]]:
    found: dict[date, list[float]] = defaultdict(list)
    for log in logs:
        value = as_number(log.payload.get(field))
        if value is not None:
            found[log.date].append(value)
    return dict(found)


def daily_mean(logs: Iterable[DailyLog], field: str) -> dict[date, float]:
    return {day: statistics.fmean(vals) for day, vals in values_by_day(logs, field).items()}


def daily_total(logs: Iterable[DailyLog], field: str) -> dict[date, float]:
    return {day: sum(vals) for day, vals in values_by_day(logs, field).items()}


def daily_symptom_severity(logs: Iterable[DailyLog], symptom: str) -> dict[date, float]:
    """Worst reported severity of one symptom per day."""
    worst: dict[date, float] = {}
    for log in logs:
        if str(log.payload.get("symptom", "")).strip().lower() != symptom:
            continue
        severity = as_number(log.payload.get("severity"))
        if severity is None:
            continue
        worst[log.date] = max(severity, worst.get(log.date, severity))
    return worst


def taken_count(logs: Iterable[DailyLog]) -> int:
    return sum(1 for log in logs if log.payload.get("taken"))


def daily_adherence(logs: Iterable[DailyLog], active_doses: int) -> dict[date, float]:
    """Percent of scheduled doses taken each day that has medication logs."""
    if active_doses <= 0:
        return {}
    return {
        day: min(taken_count(day_logs) / active_doses * 100, 100.0)
        for day, day_logs in group_by_day(logs).items()
    }
