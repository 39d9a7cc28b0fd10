"""Per-category baselines: what a typical day looks like for this user.

A baseline is the statistical mode of the non-zero per-day counts over the
last 3 to 7 days, tagged with a confidence tier derived from how many days
qualified. Nothing is stored except the user's confirm/dismiss overrides;
every call recomputes from the log repository.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Literal, Sequence

from caretrack.core.clock.calendar import Clock, SystemClock, last_n_dates
from caretrack.core.storage.models import VITAL_FIELDS, DailyLog
from caretrack.core.storage.preferences import PreferenceError, PreferenceStore
from caretrack.core.storage.repository import RepositoryError
from caretrack.domains.care.sources import LogRepository

logger = logging.getLogger(__name__)

MIN_DAYS_FOR_BASELINE = 3
CONFIDENT_BASELINE = 5
MAX_LOOKBACK_DAYS = 7

BaselineCategory = Literal["meals", "vitals", "meds"]
Confidence = Literal["none", "tentative", "confident"]

# Prompt order for confirmation
BASELINE_CATEGORIES: tuple[str, ...] = ("meals", "vitals", "meds")

LOG_CATEGORY_FOR: dict[str, str] = {
    "meals": "meals",
    "vitals": "vitals",
    "meds": "medications",
}

_NOUNS = {
    "meals": ("meal", "meals"),
    "vitals": ("vitals reading", "vitals readings"),
    "meds": ("medication dose", "medication doses"),
}

FIRST_USE_KEY = "baseline.first_use_date"
CONFIRMED_KEY = "baseline.confirmed"
DISMISSED_KEY = "baseline.dismissed"

_READ_ERRORS = (RepositoryError, PreferenceError, sqlite3.Error)


@dataclass
class CategoryBaseline:
    category: str
    daily_count: int
    days_of_data: int
    confidence: Confidence
    confirmed: bool = False
    dismissed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BaselineData:
    days_of_data: int
    meals: CategoryBaseline | None = None
    vitals: CategoryBaseline | None = None
    meds: CategoryBaseline | None = None

    @property
    def has_any_baseline(self) -> bool:
        return any(self.get(category) for category in BASELINE_CATEGORIES)

    def get(self, category: str) -> CategoryBaseline | None:
        return getattr(self, category, None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "days_of_data": self.days_of_data,
            "has_any_baseline": self.has_any_baseline,
        }
        for category in BASELINE_CATEGORIES:
            baseline = self.get(category)
            data[category] = baseline.to_dict() if baseline else None
        return data


@dataclass
class TodayVsBaseline:
    category: str
    today_count: int
    baseline: CategoryBaseline
    matches_baseline: bool
    below_baseline: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "today_count": self.today_count,
            "baseline_count": self.baseline.daily_count,
            "confidence": self.baseline.confidence,
            "matches_baseline": self.matches_baseline,
            "below_baseline": self.below_baseline,
        }


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def calculate_mode(values: Iterable[int]) -> int | None:
    """Most frequent value; ties go to the value seen first."""
    counts = Counter(values)
    if not counts:
        return None
    # Counter keeps insertion order and most_common() is a stable sort.
    return counts.most_common(1)[0][0]


def confidence_for(days: int) -> Confidence:
    if days < MIN_DAYS_FOR_BASELINE:
        return "none"
    if days < CONFIDENT_BASELINE:
        return "tentative"
    return "confident"


def _meal_count(payload: dict[str, Any]) -> int:
    meals = payload.get("meals")
    if isinstance(meals, list):
        return len(meals)
    return 1


def count_for_day(category: str, logs: Iterable[DailyLog]) -> int:
    """How much of ``category`` one day's logs contain.

    meals: meals listed. vitals: non-null vitals fields. meds: doses
    logged as taken.
    """
    if category == "meals":
        return sum(_meal_count(log.payload) for log in logs)
    if category == "vitals":
        return sum(
            sum(1 for name in VITAL_FIELDS if log.payload.get(name) is not None)
            for log in logs
        )
    if category == "meds":
        return sum(1 for log in logs if log.payload.get("taken"))
    raise ValueError(f"Unknown baseline category: {category!r}")


def baseline_from_daily_counts(
    category: str, daily_counts: Sequence[int]
) -> CategoryBaseline | None:
    """Mode of the non-zero counts, in forward date order.

    Zero days are missing data, not evidence, and are dropped first.
    """
    qualifying = [count for count in daily_counts if count > 0]
    if len(qualifying) < MIN_DAYS_FOR_BASELINE:
        return None
    return CategoryBaseline(
        category=category,
        daily_count=calculate_mode(qualifying),  # type: ignore[arg-type]
        days_of_data=len(qualifying),
        confidence=confidence_for(len(qualifying)),
    )


def calculate_baseline(
    category: str,
    logs: Iterable[DailyLog],
    today: date,
    days_since_first_use: int,
) -> CategoryBaseline | None:
    """Baseline for one category from its logs.

    Args:
        category: ``meals``, ``vitals`` or ``meds``.
        logs: Logs of the matching log category; others are ignored by date.
        today: Last day of the lookback window.
        days_since_first_use: Elapsed days since first use, today included.

    Returns:
        The baseline, or None when fewer than 3 days have elapsed or fewer
        than 3 days in the window have any activity.
    """
    if days_since_first_use < MIN_DAYS_FOR_BASELINE:
        return None
    lookback = min(days_since_first_use, MAX_LOOKBACK_DAYS)

    by_day: dict[date, list[DailyLog]] = defaultdict(list)
    for log in logs:
        by_day[log.date].append(log)

    counts = [count_for_day(category, by_day.get(day, [])) for day in last_n_dates(today, lookback)]
    return baseline_from_daily_counts(category, counts)


def compare_to_baseline(
    baseline: CategoryBaseline, today_count: int
) -> TodayVsBaseline:
    """Meeting or exceeding the baseline counts as on track."""
    return TodayVsBaseline(
        category=baseline.category,
        today_count=today_count,
        baseline=baseline,
        matches_baseline=today_count >= baseline.daily_count,
        below_baseline=today_count < baseline.daily_count,
    )


def baseline_language(baseline: CategoryBaseline) -> dict[str, str]:
    """Prefix and adverb for describing a baseline to the user."""
    if baseline.confidence == "tentative" and not baseline.confirmed:
        return {"prefix": "So far", "adverb": "usually"}
    return {"prefix": "", "adverb": "typically"}


def describe_baseline(baseline: CategoryBaseline) -> str:
    """e.g. "So far, you usually log 3 meals a day." """
    words = baseline_language(baseline)
    singular, plural = _NOUNS[baseline.category]
    noun = singular if baseline.daily_count == 1 else plural
    sentence = f"you {words['adverb']} log {baseline.daily_count} {noun} a day."
    if words["prefix"]:
        return f"{words['prefix']}, {sentence}"
    return sentence[0].upper() + sentence[1:]


def category_noun(category: str, count: int) -> str:
    singular, plural = _NOUNS[category]
    return singular if count == 1 else plural


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class BaselineEngine:
    """Baselines over the log repository, with user overrides.

    Storage failures degrade to "no baseline" and are logged; no public
    method raises on a read error.
    """

    def __init__(
        self,
        logs: LogRepository,
        preferences: PreferenceStore,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._logs = logs
        self._prefs = preferences
        self._clock = clock or SystemClock()

    def _today(self) -> date:
        return self._clock.now().date()

    # --- first use ---

    def record_first_use(self, on: date | None = None) -> date:
        """Store the first-use date if none is stored yet; return it."""
        stored = self._stored_first_use()
        if stored is not None:
            return stored
        on = on or self._today()
        self._prefs.set(FIRST_USE_KEY, on.isoformat())
        return on

    def _stored_first_use(self) -> date | None:
        value = self._prefs.get(FIRST_USE_KEY)
        if not value:
            return None
        try:
            return date.fromisoformat(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed first-use date %r", value)
            return None

    def first_use_date(self) -> date | None:
        """Earlier of the stored first-use date and the oldest log."""
        candidates = [
            d for d in (self._stored_first_use(), self._logs.earliest_log_date()) if d
        ]
        return min(candidates) if candidates else None

    def days_of_data(self) -> int:
        """Elapsed days since first use, today included; 0 before any use."""
        try:
            first = self.first_use_date()
        except _READ_ERRORS as exc:
            logger.warning("Could not determine first use: %s", exc)
            return 0
        if first is None:
            return 0
        return max((self._today() - first).days + 1, 0)

    # --- baselines ---

    def get_baseline(self, category: str) -> CategoryBaseline | None:
        if category not in LOG_CATEGORY_FOR:
            raise ValueError(f"Unknown baseline category: {category!r}")

        today = self._today()
        days = self.days_of_data()
        if days < MIN_DAYS_FOR_BASELINE:
            return None
        lookback = min(days, MAX_LOOKBACK_DAYS)
        try:
            logs = self._logs.list_logs(
                LOG_CATEGORY_FOR[category],
                start=today - timedelta(days=lookback - 1),
                end=today,
            )
            confirmed = self._prefs.get_set(CONFIRMED_KEY)
            dismissed = self._prefs.get_set(DISMISSED_KEY)
        except _READ_ERRORS as exc:
            logger.warning("Baseline for %s unavailable: %s", category, exc)
            return None

        baseline = calculate_baseline(category, logs, today, days)
        if baseline is not None:
            baseline.confirmed = category in confirmed
            baseline.dismissed = category in dismissed
        return baseline

    def get_all_baselines(self) -> BaselineData:
        return BaselineData(
            days_of_data=self.days_of_data(),
            **{category: self.get_baseline(category) for category in BASELINE_CATEGORIES},
        )

    def today_count(self, category: str) -> int:
        today = self._today()
        logs = self._logs.list_logs(LOG_CATEGORY_FOR[category], start=today, end=today)
        return count_for_day(category, logs)

    def compare_today_to_baseline(self, category: str) -> TodayVsBaseline | None:
        baseline = self.get_baseline(category)
        if baseline is None:
            return None
        try:
            today_count = self.today_count(category)
        except _READ_ERRORS as exc:
            logger.warning("Today's %s count unavailable: %s", category, exc)
            return None
        return compare_to_baseline(baseline, today_count)

    def get_all_today_vs_baseline(self) -> list[TodayVsBaseline]:
        comparisons = []
        for category in BASELINE_CATEGORIES:
            comparison = self.compare_today_to_baseline(category)
            if comparison is not None:
                comparisons.append(comparison)
        return comparisons

    # --- confirmation workflow ---

    def confirm_baseline(self, category: str) -> None:
        self._check_category(category)
        self._prefs.add_to_set(CONFIRMED_KEY, category)

    def reject_baseline(self, category: str) -> None:
        """Drop a confirmation. The baseline keeps recomputing as before."""
        self._check_category(category)
        self._prefs.remove_from_set(CONFIRMED_KEY, category)

    def dismiss_baseline_prompt(self, category: str) -> None:
        self._check_category(category)
        self._prefs.add_to_set(DISMISSED_KEY, category)

    def should_show_baseline_prompt(self, category: str) -> bool:
        baseline = self.get_baseline(category)
        return (
            baseline is not None
            and baseline.confidence != "none"
            and not baseline.confirmed
            and not baseline.dismissed
        )

    def next_baseline_to_confirm(self) -> CategoryBaseline | None:
        for category in BASELINE_CATEGORIES:
            if self.should_show_baseline_prompt(category):
                return self.get_baseline(category)
        return None

    @staticmethod
    def _check_category(category: str) -> None:
        if category not in LOG_CATEGORY_FOR:
            raise ValueError(f"Unknown baseline category: {category!r}")
