"""Insight page assembly.

Combines correlation detections, rule-engine insights and baseline
comparisons into three lists: up to three stand-out insights, up to three
positive observations, and the correlation cards. Users without enough
history get a fixed, clearly flagged sample page instead.

Ranking rules:

* Stand-out: correlations take the first two slots, the rule engine one,
  then baseline comparisons; truncated to three.
* One claim per category: when the rule engine and a baseline comparison
  both speak about the same category, only the rule insight is kept.
* Cross-list: if a stand-out insight raises a medication concern, no
  medication positive appears in the same response.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import Iterable

from caretrack.core.clock.calendar import Clock, SystemClock
from caretrack.core.storage.models import CareObligation, DailyLog
from caretrack.core.storage.preferences import PreferenceError, PreferenceStore
from caretrack.core.storage.repository import RepositoryError
from caretrack.domains.care.domain_logic.baseline_engine import (
    BaselineEngine,
    TodayVsBaseline,
    category_noun,
)
from caretrack.domains.care.domain_logic.correlation_detector import (
    VARIABLE_LABELS,
    Correlation,
    CorrelationSource,
)
from caretrack.domains.care.domain_logic.daily_metrics import daily_mean, daily_total
from caretrack.domains.care.domain_logic.insight_models import (
    TIME_RANGES,
    CorrelationCard,
    InsightPageData,
    PositiveObservation,
    StandOutInsight,
    confidence_from_data_points,
    from_baseline_confidence,
    from_correlation_confidence,
    from_rule_severity,
    weaker_confidence,
)
from caretrack.domains.care.domain_logic.insight_rules import (
    InsightContext,
    RuleEngine,
    RuleInsight,
    medication_adherence_percent,
)
from caretrack.domains.care.domain_logic.sample_data import sample_insight_data
from caretrack.domains.care.sources import LogRepository, ObligationSource

logger = logging.getLogger(__name__)

MIN_DAYS_FOR_INSIGHTS = 5
MAX_STAND_OUT = 3
MAX_POSITIVE = 3
MAX_CORRELATION_SLOTS = 2
MAX_RULE_SLOTS = 1
RULE_WINDOW_DAYS = 14

SAMPLE_SEEN_KEY = "insights.sample_seen"
SAMPLE_DISMISSED_KEY = "insights.sample_dismissed"
CONFIDENCE_EXPLAINED_KEY = "insights.confidence_explained"
DISMISSED_SUGGESTIONS_KEY = "insights.dismissed_suggestions"

# Baseline categories speak about the same thing as these insight categories
_BASELINE_INSIGHT_CATEGORY = {"meals": "meals", "vitals": "vitals", "meds": "medication"}

_SUGGESTION_PREFIX = "If approved by your care team, you could try"

_SUGGESTIONS: dict[str, str] = {
    "pain-hydration": "keeping a water bottle nearby and noting pain levels alongside it",
    "pain-sleep": "a short wind-down routine before bed on high-pain days",
    "pain-med_adherence": "setting a reminder for doses that are most often missed",
    "fatigue-sleep": "keeping a consistent bedtime for the next week",
    "fatigue-hydration": "an extra glass of water in the early afternoon",
    "mood-sleep": "keeping a consistent bedtime for the next week",
    "mood-med_adherence": "pairing medication times with an existing daily routine",
}

_GENERIC_SUGGESTION = "bringing this pattern up at the next care team visit"

_STORAGE_ERRORS = (RepositoryError, PreferenceError, sqlite3.Error)


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def no_patterns_insight() -> StandOutInsight:
    return StandOutInsight(
        id="no-patterns",
        text="No clear patterns yet. Keep tracking to reveal insights.",
        confidence="early",
        category="general",
        source="fallback",
    )


def keep_logging_observation() -> PositiveObservation:
    return PositiveObservation(
        id="keep-logging",
        text="Keep logging to reveal what's going well.",
    )


def fallback_insight_data(time_range: int) -> InsightPageData:
    """The page returned when insight computation fails outright."""
    return InsightPageData(
        time_range=time_range,
        stand_out=[StandOutInsight(
            id="analysis-error",
            text="Unable to analyze patterns right now.",
            confidence="early",
            category="general",
            source="fallback",
        )],
        positive=[PositiveObservation(
            id="analysis-error-keep-tracking",
            text="Keep tracking to build insights.",
        )],
        correlations=[],
        has_enough_data=False,
        days_of_data=0,
    )


# ---------------------------------------------------------------------------
# Pure assembly
# ---------------------------------------------------------------------------

def correlation_headline(correlation: Correlation) -> str:
    a = VARIABLE_LABELS[correlation.variable_a].capitalize()
    b = VARIABLE_LABELS[correlation.variable_b]
    r = correlation.coefficient
    if r >= 0.5:
        return f"{a} and {b} have been closely linked recently."
    if r >= 0.3:
        return f"{a} and {b} tend to rise and fall together."
    if r <= -0.5:
        return f"When {a.lower()} is higher, {b} has often been lower."
    return f"Higher {a.lower()} may come with lower {b}."


def correlation_insight(correlation: Correlation) -> StandOutInsight:
    return StandOutInsight(
        id=f"correlation-{correlation.id}",
        text=correlation_headline(correlation),
        confidence=from_correlation_confidence(correlation.confidence),
        category="correlation",
        concern=False,
        source="correlation",
        related_to=[correlation.variable_a, correlation.variable_b],
        link_route="insights/correlations",
        link_label="See the pattern",
    )


def rule_stand_out(insight: RuleInsight, days_of_data: int = 0) -> StandOutInsight:
    """Rule insight as a stand-out; confidence is capped by the evidence behind it."""
    confidence = weaker_confidence(
        from_rule_severity(insight.severity),
        confidence_from_data_points(insight.data_points, days_of_data),
    )
    return StandOutInsight(
        id=insight.id,
        text=insight.message,
        confidence=confidence,
        category=insight.category,
        concern=insight.concern,
        source="rule",
        related_to=list(insight.related_to),
        link_route=insight.link_route,
        link_label=insight.title,
    )


def baseline_stand_out(comparison: TodayVsBaseline) -> StandOutInsight:
    baseline = comparison.baseline
    return StandOutInsight(
        id=f"baseline-{comparison.category}",
        text=(
            f"{comparison.today_count} {category_noun(comparison.category, comparison.today_count)} "
            f"logged so far today; {baseline.daily_count} is typical."
        ),
        confidence=from_baseline_confidence(baseline.confidence),
        category=_BASELINE_INSIGHT_CATEGORY[comparison.category],
        concern=True,
        source="baseline",
        related_to=[comparison.category],
    )


def baseline_positive(comparison: TodayVsBaseline) -> PositiveObservation:
    count = comparison.baseline.daily_count
    return PositiveObservation(
        id=f"baseline-{comparison.category}-on-track",
        text=f"On track today with the usual {count} {category_noun(comparison.category, count)}.",
        category=_BASELINE_INSIGHT_CATEGORY[comparison.category],
    )


def rank_stand_out(
    correlations: list[Correlation],
    rule_insights: list[RuleInsight],
    baseline_insights: list[StandOutInsight],
    *,
    days_of_data: int = 0,
) -> list[StandOutInsight]:
    """Merge the three sources into at most three stand-out insights."""
    ranked = [correlation_insight(c) for c in correlations[:MAX_CORRELATION_SLOTS]]
    ranked += [rule_stand_out(r, days_of_data) for r in rule_insights[:MAX_RULE_SLOTS]]

    claimed = {item.category for item in ranked if item.source == "rule"}
    for insight in baseline_insights:
        if insight.category in claimed:
            continue
        claimed.add(insight.category)
        ranked.append(insight)

    return ranked[:MAX_STAND_OUT] or [no_patterns_insight()]


def apply_cross_list_rule(
    stand_out: list[StandOutInsight], positive: list[PositiveObservation]
) -> list[PositiveObservation]:
    """Drop positives about a category the stand-out list flags as a concern."""
    concerns = {item.category for item in stand_out if item.concern}
    return [item for item in positive if item.category not in concerns]


def build_correlation_cards(
    correlations: Iterable[Correlation], dismissed_suggestions: set[str]
) -> list[CorrelationCard]:
    cards = []
    for correlation in correlations:
        suggestion_id = f"suggestion-{correlation.id}"
        suggestion = _suggestion_for(correlation)
        dismissed = suggestion is not None and suggestion_id in dismissed_suggestions
        a = VARIABLE_LABELS[correlation.variable_a]
        b = VARIABLE_LABELS[correlation.variable_b]
        cards.append(CorrelationCard(
            id=correlation.id,
            title=f"{a.capitalize()} & {b}",
            insight=correlation.insight,
            confidence=from_correlation_confidence(correlation.confidence),
            data_points=correlation.data_points,
            coefficient=round(correlation.coefficient, 2),
            action=correlation.action,
            suggestion_id=suggestion_id,
            suggestion=None if dismissed else suggestion,
            suggestion_dismissed=dismissed,
            related_to=[correlation.variable_a, correlation.variable_b],
        ))
    return cards


def _suggestion_for(correlation: Correlation) -> str | None:
    """Non-prescriptive suggestion, never offered on low confidence."""
    if correlation.confidence == "low":
        return None
    action = _SUGGESTIONS.get(correlation.id)
    if action is None and abs(correlation.coefficient) > 0.4:
        action = _GENERIC_SUGGESTION
    if action is None:
        return None
    return f"{_SUGGESTION_PREFIX} {action}."


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class InsightAggregator:
    """Builds :class:`InsightPageData` for the insights screen.

    Usage::

        aggregator = InsightAggregator(repo, prefs, baseline_engine,
                                       rule_engine=InsightRuleEngine(),
                                       correlation_source=CorrelationDetector(repo, repo),
                                       obligations=repo)
        page = aggregator.load_insight_data(14)
    """

    def __init__(
        self,
        logs: LogRepository,
        preferences: PreferenceStore,
        baselines: BaselineEngine,
        *,
        rule_engine: RuleEngine | None = None,
        correlation_source: CorrelationSource | None = None,
        obligations: ObligationSource | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._logs = logs
        self._prefs = preferences
        self._baselines = baselines
        self._rules = rule_engine
        self._correlations = correlation_source
        self._obligations = obligations
        self._clock = clock or SystemClock()

    def load_insight_data(self, time_range: int = 7) -> InsightPageData:
        """Compute the insight page for the last ``time_range`` days.

        Never raises for a valid range: any failure returns the fixed
        "Unable to analyze patterns right now" page.

        Raises:
            ValueError: If ``time_range`` is not 7, 14 or 30.
        """
        if time_range not in TIME_RANGES:
            raise ValueError(f"time_range must be one of {TIME_RANGES}, got {time_range!r}")
        try:
            return self._build(time_range)
        except Exception:
            logger.exception("Insight computation failed; returning fallback")
            return fallback_insight_data(time_range)

    def _build(self, time_range: int) -> InsightPageData:
        now = self._clock.now()
        today = now.date()
        days_of_data = self._baselines.days_of_data()

        range_start = today - timedelta(days=time_range - 1)
        logs = self._load_logs(min(range_start, today - timedelta(days=RULE_WINDOW_DAYS - 1)), today)
        obligations = self._active_obligations()

        context = InsightContext(
            now=now, logs=logs, active_obligations=obligations, days_of_data=days_of_data
        )

        correlations = self._detect(range_start, today)
        rule_insights = self._evaluate(context)
        has_signal = bool(correlations or rule_insights)

        if (
            days_of_data < MIN_DAYS_FOR_INSIGHTS
            and not has_signal
            and not self._prefs.get_flag(SAMPLE_DISMISSED_KEY)
        ):
            previously_seen = self._prefs.get_flag(SAMPLE_SEEN_KEY)
            self._prefs.set_flag(SAMPLE_SEEN_KEY)
            logger.debug("Showing sample insights (%d days of data)", days_of_data)
            return sample_insight_data(time_range, days_of_data, previously_seen)

        comparisons = self._baselines.get_all_today_vs_baseline()
        stand_out = rank_stand_out(
            correlations,
            rule_insights,
            [baseline_stand_out(c) for c in comparisons if c.below_baseline],
            days_of_data=days_of_data,
        )

        positive = self._positive_observations(
            context,
            rule_insights,
            [c for c in comparisons if c.matches_baseline],
        )
        positive = apply_cross_list_rule(stand_out, positive)[:MAX_POSITIVE]
        if not positive:
            positive = [keep_logging_observation()]

        cards = build_correlation_cards(
            correlations, self._prefs.get_set(DISMISSED_SUGGESTIONS_KEY)
        )
        return InsightPageData(
            time_range=time_range,
            stand_out=stand_out,
            positive=positive,
            correlations=cards,
            has_enough_data=days_of_data >= MIN_DAYS_FOR_INSIGHTS or has_signal,
            days_of_data=days_of_data,
            show_confidence_explanation=bool(cards)
            and not self._prefs.get_flag(CONFIDENCE_EXPLAINED_KEY),
        )

    # ------------------------------------------------------------------
    # Signal sources (storage failures degrade to "no signal")
    # ------------------------------------------------------------------

    def _load_logs(self, start: date, end: date) -> dict[str, list[DailyLog]]:
        try:
            found = self._logs.list_logs(start=start, end=end)
        except _STORAGE_ERRORS as exc:
            logger.warning("Logs unavailable for insights: %s", exc)
            return {}
        grouped: dict[str, list[DailyLog]] = {}
        for log in found:
            grouped.setdefault(log.category, []).append(log)
        return grouped

    def _active_obligations(self) -> list[CareObligation]:
        if self._obligations is None:
            return []
        try:
            return self._obligations.list_obligations(active_only=True)
        except _STORAGE_ERRORS as exc:
            logger.warning("Obligations unavailable for insights: %s", exc)
            return []

    def _detect(self, start: date, end: date) -> list[Correlation]:
        if self._correlations is None:
            return []
        try:
            return self._correlations.detect(start, end)
        except _STORAGE_ERRORS as exc:
            logger.warning("Correlation detection unavailable: %s", exc)
            return []

    def _evaluate(self, context: InsightContext) -> list[RuleInsight]:
        if self._rules is None:
            return []
        return self._rules.evaluate(context)

    # ------------------------------------------------------------------
    # Positive observations
    # ------------------------------------------------------------------

    def _positive_observations(
        self,
        context: InsightContext,
        rule_insights: list[RuleInsight],
        on_track: list[TodayVsBaseline],
    ) -> list[PositiveObservation]:
        found: list[PositiveObservation] = []

        adherence = medication_adherence_percent(context)
        if adherence is not None and adherence >= 90:
            found.append(PositiveObservation(
                id="med-adherence-good",
                text="Medication adherence has been excellent this week.",
                category="medication",
            ))

        found += [baseline_positive(c) for c in on_track]

        hydration_logs = context.recent("hydration", 7)
        hydration = daily_total(hydration_logs, "cups")
        if len(hydration_logs) >= 3 and hydration:
            average = sum(hydration.values()) / len(hydration)
            if average >= 7:
                found.append(PositiveObservation(
                    id="hydration-good",
                    text="Fluid intake has been close to the daily goal.",
                    category="hydration",
                ))

        mood_logs = context.recent("mood", 7)
        mood = daily_mean(mood_logs, "mood")
        if len(mood_logs) >= 5 and mood:
            if sum(mood.values()) / len(mood) >= 6:
                found.append(PositiveObservation(
                    id="mood-steady",
                    text="Mood has been generally good this week.",
                    category="mood",
                ))

        if any(context.logs.values()) and not any(r.severity == "alert" for r in rule_insights):
            found.append(PositiveObservation(
                id="no-red-flags",
                text="No urgent patterns detected in recent logs.",
            ))
        return found

    # ------------------------------------------------------------------
    # One-time flags and dismissals
    # ------------------------------------------------------------------

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        """Hide a suggestion on future pages; its card stays."""
        if not suggestion_id.startswith("suggestion-"):
            suggestion_id = f"suggestion-{suggestion_id}"
        self._prefs.add_to_set(DISMISSED_SUGGESTIONS_KEY, suggestion_id)

    def restore_suggestion(self, suggestion_id: str) -> None:
        if not suggestion_id.startswith("suggestion-"):
            suggestion_id = f"suggestion-{suggestion_id}"
        self._prefs.remove_from_set(DISMISSED_SUGGESTIONS_KEY, suggestion_id)

    def dismiss_sample_data(self) -> None:
        self._prefs.set_flag(SAMPLE_DISMISSED_KEY)

    def reset_sample_data_dismissal(self) -> None:
        self._prefs.set_flag(SAMPLE_DISMISSED_KEY, False)

    def has_seen_sample_data(self) -> bool:
        return self._prefs.get_flag(SAMPLE_SEEN_KEY)

    def mark_confidence_explained(self) -> None:
        self._prefs.set_flag(CONFIDENCE_EXPLAINED_KEY)
