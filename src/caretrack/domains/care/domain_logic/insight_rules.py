"""Rule-based pattern insights keyed by category and time of day.

Each rule looks at a window of recent logs and either produces one
:class:`RuleInsight` or nothing. Rules are independent: one failing rule
is logged and the rest still run.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Literal, Protocol, runtime_checkable

from caretrack.core.clock.calendar import minute_of_day, parse_time_to_minutes
from caretrack.core.storage.models import CareObligation, DailyLog
from caretrack.domains.care.domain_logic.daily_metrics import (
    daily_mean,
    daily_total,
    payload_numbers,
    taken_count,
)

logger = logging.getLogger(__name__)

Severity = Literal["info", "warning", "alert"]

_SEVERITY_ORDER = {"alert": 0, "warning": 1, "info": 2}

DEFAULT_HYDRATION_TARGET_CUPS = 8.0
# Below this much history, adherence wording stays provisional
SETTLED_HISTORY_DAYS = 7


@dataclass
class RuleInsight:
    id: str
    category: str  # 'medication' | 'vitals' | 'mood' | 'sleep' | 'hydration'
    severity: Severity
    title: str
    message: str
    data_points: int = 0
    concern: bool = True
    related_to: list[str] = field(default_factory=list)
    link_route: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightContext:
    """Everything a rule may look at. ``logs`` is keyed by log category."""

    now: datetime
    logs: dict[str, list[DailyLog]] = field(default_factory=dict)
    active_obligations: list[CareObligation] = field(default_factory=list)
    hydration_target_cups: float = DEFAULT_HYDRATION_TARGET_CUPS
    days_of_data: int | None = None

    @property
    def today(self) -> date:
        return self.now.date()

    def recent(self, category: str, days: int) -> list[DailyLog]:
        """Logs of ``category`` from the last ``days`` days, today included."""
        start = self.today - timedelta(days=days - 1)
        return [
            log for log in self.logs.get(category, [])
            if start <= log.date <= self.today
        ]

    @property
    def medication_obligations(self) -> list[CareObligation]:
        return [o for o in self.active_obligations if o.category == "medication"]


@runtime_checkable
class RuleEngine(Protocol):
    def evaluate(self, context: InsightContext) -> list[RuleInsight]:
        ...


def adherence_window(context: InsightContext, days: int = 7) -> int:
    """Days of expected doses: the window, shortened to the user's history."""
    if context.days_of_data is None:
        return days
    return max(1, min(days, context.days_of_data))


def medication_adherence_percent(context: InsightContext, days: int = 7) -> int | None:
    """Doses taken over doses expected in the window, as a whole percent.

    Expected doses only count days the user has been tracking, so a new
    user is not judged against days before their first log. None when there
    is nothing scheduled or nothing logged to judge by.
    """
    expected = len(context.medication_obligations) * adherence_window(context, days)
    logs = context.recent("medications", days)
    if expected == 0 or not logs:
        return None
    return min(round(taken_count(logs) / expected * 100), 100)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _medication_adherence(context: InsightContext) -> RuleInsight | None:
    percent = medication_adherence_percent(context)
    if percent is None or percent >= 90:
        return None
    if percent < 60:
        severity: Severity = "alert"
    elif percent < 80:
        severity = "warning"
    else:
        severity = "info"
    if context.days_of_data is not None and context.days_of_data < SETTLED_HISTORY_DAYS:
        message = f"Medication adherence is at {percent}%. Keep tracking to establish a baseline."
    else:
        message = f"About {percent}% of scheduled doses were logged as taken this week."
    return RuleInsight(
        id="medication-adherence",
        category="medication",
        severity=severity,
        title="Medication adherence",
        message=message,
        data_points=len(context.recent("medications", 7)),
        related_to=["medications"],
        link_route="medications",
    )


def _blood_pressure(context: InsightContext) -> RuleInsight | None:
    logs = context.recent("vitals", 14)
    systolic = payload_numbers(logs, "systolic")
    diastolic = payload_numbers(logs, "diastolic")
    if len(systolic) < 3:
        return None

    avg_sys = statistics.fmean(systolic)
    avg_dia = statistics.fmean(diastolic) if diastolic else 0.0
    if avg_sys <= 130 and avg_dia <= 80:
        return None
    severity: Severity = "alert" if avg_sys > 140 or avg_dia > 90 else "warning"
    return RuleInsight(
        id="blood-pressure-elevated",
        category="vitals",
        severity=severity,
        title="Blood pressure trending higher",
        message=(
            f"Blood pressure has averaged {avg_sys:.0f}/{avg_dia:.0f} over the last "
            "two weeks. Worth mentioning to the care team."
        ),
        data_points=len(systolic),
        related_to=["vitals"],
        link_route="vitals",
    )


def _low_mood(context: InsightContext) -> RuleInsight | None:
    scores = payload_numbers(context.recent("mood", 14), "mood")
    if len(scores) < 5:
        return None
    low_share = sum(1 for score in scores if score < 4) / len(scores)
    if low_share < 0.4:
        return None
    return RuleInsight(
        id="mood-pattern-low",
        category="mood",
        severity="alert" if low_share > 0.6 else "warning",
        title="Mood has been low",
        message="Mood has been logged as low on many recent days.",
        data_points=len(scores),
        related_to=["mood"],
        link_route="mood",
    )


def _sleep_mood(context: InsightContext) -> RuleInsight | None:
    sleep = daily_total(context.recent("sleep", 14), "hours")
    mood = daily_mean(context.recent("mood", 14), "mood")
    days = sorted(set(sleep) & set(mood))
    if len(days) < 7:
        return None
    rough = sum(1 for day in days if sleep[day] < 6 and mood[day] < 4)
    if rough / len(days) < 0.3:
        return None
    return RuleInsight(
        id="sleep-mood-correlation",
        category="sleep",
        severity="info",
        title="Short sleep and low mood",
        message="Days with less than 6 hours of sleep often come with a lower mood.",
        data_points=len(days),
        related_to=["sleep", "mood"],
        link_route="sleep",
    )


def _low_hydration(context: InsightContext) -> RuleInsight | None:
    logs = context.recent("hydration", 7)
    if len(logs) < 5:
        return None
    totals = daily_total(logs, "cups")
    if not totals:
        return None
    average = statistics.fmean(totals.values())
    target = context.hydration_target_cups
    if average >= 0.8 * target:
        return None
    return RuleInsight(
        id="hydration-low",
        category="hydration",
        severity="warning" if average < 0.5 * target else "info",
        title="Hydration below target",
        message=f"Fluid intake has averaged {average:.1f} cups a day, under the {target:g}-cup goal.",
        data_points=len(logs),
        related_to=["hydration"],
        link_route="hydration",
    )


def _morning_medication_timing(context: InsightContext) -> RuleInsight | None:
    """Mid-morning check for morning doses not yet logged today."""
    now_minutes = minute_of_day(context.now)
    if not 9 * 60 <= now_minutes < 11 * 60:
        return None
    taken_today = {
        log.payload.get("obligation_id")
        for log in context.recent("medications", 1)
        if log.payload.get("taken")
    }
    missed = []
    for obligation in context.medication_obligations:
        try:
            due = parse_time_to_minutes(obligation.time_of_day)
        except ValueError:
            continue
        if due < 12 * 60 and due <= now_minutes and obligation.id not in taken_today:
            missed.append(obligation.name)
    if not missed:
        return None
    return RuleInsight(
        id="morning-med-timing",
        category="medication",
        severity="info",
        title="Morning doses",
        message=f"Morning dose not logged yet: {', '.join(missed)}.",
        data_points=len(missed),
        related_to=["medications"],
        link_route="medications",
    )


def _evening_wind_down(context: InsightContext) -> RuleInsight | None:
    """Evening nudge when recent nights have been short."""
    if not 20 * 60 <= minute_of_day(context.now) < 22 * 60:
        return None
    nightly = daily_total(context.recent("sleep", 7), "hours")
    if len(nightly) < 3:
        return None
    average = statistics.fmean(nightly.values())
    if average >= 6:
        return None
    return RuleInsight(
        id="evening-wind-down",
        category="sleep",
        severity="info",
        title="Winding down",
        message=f"Recent nights have averaged {average:.1f} hours. An earlier wind-down may help.",
        data_points=len(nightly),
        concern=False,
        related_to=["sleep"],
        link_route="sleep",
    )


Rule = Callable[[InsightContext], "RuleInsight | None"]

DEFAULT_RULES: tuple[tuple[str, Rule], ...] = (
    ("medication_adherence", _medication_adherence),
    ("blood_pressure", _blood_pressure),
    ("low_mood", _low_mood),
    ("sleep_mood", _sleep_mood),
    ("low_hydration", _low_hydration),
    ("morning_medication_timing", _morning_medication_timing),
    ("evening_wind_down", _evening_wind_down),
)


class InsightRuleEngine:
    """Runs every rule and returns their insights, most severe first."""

    def __init__(self, rules: tuple[tuple[str, Rule], ...] = DEFAULT_RULES) -> None:
        self._rules = rules

    def evaluate(self, context: InsightContext) -> list[RuleInsight]:
        insights: list[RuleInsight] = []
        for name, rule in self._rules:
            try:
                insight = rule(context)
            except (ArithmeticError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Insight rule %s failed: %s", name, exc)
                continue
            if insight is not None:
                insights.append(insight)
        insights.sort(key=lambda item: _SEVERITY_ORDER.get(item.severity, 3))
        return insights
