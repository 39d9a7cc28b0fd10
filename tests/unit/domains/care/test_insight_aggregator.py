"""Tests for insight page assembly."""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta

import pytest

from caretrack.core.storage.models import CareObligation
from caretrack.domains.care.domain_logic.correlation_detector import Correlation, CorrelationDetector
from caretrack.domains.care.domain_logic.insight_aggregator import (
    InsightAggregator,
    apply_cross_list_rule,
    build_correlation_cards,
    correlation_headline,
    rank_stand_out,
    rule_stand_out,
)
from caretrack.domains.care.domain_logic.insight_models import (
    PositiveObservation,
    StandOutInsight,
    confidence_from_data_points,
)
from caretrack.domains.care.domain_logic.insight_rules import InsightRuleEngine, RuleInsight

TODAY = date(2026, 3, 10)


def _correlation(cid: str = "mood-sleep", r: float = 0.72, confidence: str = "moderate") -> Correlation:
    a, b = cid.split("-", 1)
    return Correlation(
        id=cid, variable_a=a, variable_b=b, coefficient=r, data_points=16,
        confidence=confidence, insight="Higher mood may be associated with higher sleep.",
        action="Keep logging.",
    )


def _med_rule(concern: bool = True) -> RuleInsight:
    return RuleInsight(
        id="medication-adherence", category="medication", severity="warning",
        title="Medication adherence", message="About 70% of scheduled doses were logged.",
        concern=concern,
    )


class _StubRules:
    def __init__(self, insights: list[RuleInsight]):
        self._insights = insights

    def evaluate(self, context):
        return list(self._insights)


class _StubCorrelations:
    def __init__(self, correlations: list[Correlation] | None = None, error: Exception | None = None):
        self._correlations = correlations or []
        self._error = error

    def detect(self, start, end):
        if self._error is not None:
            raise self._error
        return list(self._correlations)


def _log_doses(repository, offsets, obligation_id: str = "o1") -> None:
    for offset in offsets:
        day = (TODAY - timedelta(days=offset)).isoformat()
        repository.append_log(
            "medications",
            {"obligation_id": obligation_id, "name": "Lisinopril", "taken": True},
            timestamp=f"{day}T08:00:00+00:00",
        )


@pytest.fixture
def build(care_repository, preferences, baseline_engine, fixed_clock):
    def _build(**kwargs) -> InsightAggregator:
        kwargs.setdefault("rule_engine", InsightRuleEngine())
        kwargs.setdefault("correlation_source", CorrelationDetector(care_repository, care_repository))
        return InsightAggregator(
            care_repository, preferences, baseline_engine,
            obligations=care_repository, clock=fixed_clock, **kwargs,
        )
    return _build


# ---------------------------------------------------------------------------
# Pure assembly
# ---------------------------------------------------------------------------

class TestRankStandOut:
    def test_empty_gives_no_patterns(self):
        assert [i.id for i in rank_stand_out([], [], [])] == ["no-patterns"]

    def test_slot_order_and_cap(self):
        correlations = [_correlation("mood-sleep"), _correlation("fatigue-sleep"), _correlation("pain-sleep")]
        baseline = StandOutInsight(id="baseline-meals", text="t", confidence="strong", category="meals", concern=True)
        ranked = rank_stand_out(correlations, [_med_rule()], [baseline])
        assert [i.id for i in ranked] == [
            "correlation-mood-sleep", "correlation-fatigue-sleep", "medication-adherence",
        ]

    def test_rule_claims_category_over_baseline(self):
        baseline = StandOutInsight(id="baseline-meds", text="t", confidence="emerging", category="medication", concern=True)
        ranked = rank_stand_out([], [_med_rule()], [baseline])
        assert [i.id for i in ranked] == ["medication-adherence"]

    def test_baselines_fill_remaining_slots(self):
        baselines = [
            StandOutInsight(id="baseline-meals", text="t", confidence="strong", category="meals", concern=True, source="baseline"),
            StandOutInsight(id="baseline-vitals", text="t", confidence="strong", category="vitals", concern=True, source="baseline"),
        ]
        ranked = rank_stand_out([_correlation()], [], baselines)
        assert [i.source for i in ranked] == ["correlation", "baseline", "baseline"]
        assert len(ranked) == 3


class TestRuleConfidence:
    def _rule(self, severity: str, data_points: int) -> RuleInsight:
        return RuleInsight(
            id="blood-pressure-elevated", category="vitals", severity=severity,
            title="t", message="m", data_points=data_points,
        )

    def test_alert_with_long_history_is_strong(self):
        assert rule_stand_out(self._rule("alert", 25), 30).confidence == "strong"

    def test_alert_on_short_history_is_early(self):
        assert rule_stand_out(self._rule("alert", 3), 3).confidence == "early"

    def test_warning_never_above_emerging(self):
        assert rule_stand_out(self._rule("warning", 25), 30).confidence == "emerging"

    def test_points_without_history_stay_early(self):
        assert rule_stand_out(self._rule("alert", 12), 9).confidence == "early"

    def test_ranking_passes_history_through(self):
        ranked = rank_stand_out([], [self._rule("alert", 12)], [], days_of_data=12)
        assert ranked[0].confidence == "emerging"


class TestDataPointConfidence:
    @pytest.mark.parametrize("points,days,level", [
        (20, 20, "strong"), (25, 19, "emerging"), (19, 30, "emerging"),
        (10, 10, "emerging"), (9, 30, "early"), (30, 9, "early"),
    ])
    def test_tiers(self, points, days, level):
        assert confidence_from_data_points(points, days) == level


class TestCrossList:
    def test_concern_removes_positive_in_category(self):
        stand_out = [StandOutInsight(id="r", text="t", confidence="emerging", category="medication", concern=True)]
        positive = [
            PositiveObservation(id="med-adherence-good", text="t", category="medication"),
            PositiveObservation(id="no-red-flags", text="t"),
        ]
        assert [p.id for p in apply_cross_list_rule(stand_out, positive)] == ["no-red-flags"]

    def test_non_concern_keeps_positive(self):
        stand_out = [StandOutInsight(id="r", text="t", confidence="emerging", category="medication", concern=False)]
        positive = [PositiveObservation(id="med-adherence-good", text="t", category="medication")]
        assert apply_cross_list_rule(stand_out, positive) == positive


class TestCorrelationCards:
    def test_specific_suggestion(self):
        card = build_correlation_cards([_correlation()], set())[0]
        assert card.suggestion_id == "suggestion-mood-sleep"
        assert card.suggestion == (
            "If approved by your care team, you could try keeping a consistent bedtime for the next week."
        )
        assert card.title == "Mood & sleep"
        assert card.confidence == "emerging"

    def test_no_suggestion_on_low_confidence(self):
        card = build_correlation_cards([_correlation(confidence="low")], set())[0]
        assert card.suggestion is None
        assert card.suggestion_dismissed is False

    def test_generic_suggestion_needs_stronger_link(self):
        strong = build_correlation_cards([_correlation("nausea-med_adherence", r=0.5)], set())[0]
        weak = build_correlation_cards([_correlation("nausea-med_adherence", r=0.35)], set())[0]
        assert strong.suggestion.endswith("bringing this pattern up at the next care team visit.")
        assert weak.suggestion is None

    def test_card_carries_next_step(self):
        card = build_correlation_cards([_correlation()], set())[0]
        assert card.action == "Keep logging."
        assert card.to_dict()["action"] == "Keep logging."

    def test_dismissed_suggestion_hidden(self):
        card = build_correlation_cards([_correlation()], {"suggestion-mood-sleep"})[0]
        assert card.suggestion is None
        assert card.suggestion_dismissed is True

    def test_headline(self):
        assert correlation_headline(_correlation(r=0.72)) == "Mood and sleep have been closely linked recently."
        assert correlation_headline(_correlation("fatigue-hydration", r=-0.6)) == (
            "When fatigue is higher, fluid intake has often been lower."
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TestSampleData:
    def test_fresh_user_gets_sample(self, build):
        aggregator = build()
        first = aggregator.load_insight_data(7)
        assert first.is_sample_data is True
        assert first.sample_data_previously_seen is False
        assert {i.id for i in first.stand_out} >= {"sample-sleep-mood"}

        second = aggregator.load_insight_data(7)
        assert second.sample_data_previously_seen is True
        assert aggregator.has_seen_sample_data() is True

    def test_enough_history_never_sample(self, build, care_repository):
        oid = care_repository.save_obligation(CareObligation(id="", name="Lisinopril", time_of_day="08:00"))
        _log_doses(care_repository, range(6), oid)
        page = build().load_insight_data(7)
        assert page.is_sample_data is False
        assert page.has_enough_data is True
        assert page.days_of_data == 6

    def test_short_full_adherence_still_gets_sample(self, build, care_repository):
        oid = care_repository.save_obligation(CareObligation(id="", name="Lisinopril", time_of_day="08:00"))
        _log_doses(care_repository, range(3), oid)
        page = build().load_insight_data(7)
        assert page.is_sample_data is True
        assert page.days_of_data == 3

    def test_short_history_adherence_is_provisional(self, build, care_repository):
        oid = care_repository.save_obligation(CareObligation(id="", name="Lisinopril", time_of_day="08:00"))
        _log_doses(care_repository, [0, 2], oid)
        page = build().load_insight_data(7)
        assert page.is_sample_data is False
        adherence = next(i for i in page.stand_out if i.id == "medication-adherence")
        assert adherence.text == "Medication adherence is at 67%. Keep tracking to establish a baseline."
        assert adherence.confidence == "early"

    def test_signal_overrides_sample(self, build):
        page = build(correlation_source=_StubCorrelations([_correlation()])).load_insight_data(14)
        assert page.is_sample_data is False
        assert page.stand_out[0].id == "correlation-mood-sleep"

    def test_dismissed_sample_gives_real_page(self, build):
        aggregator = build()
        aggregator.dismiss_sample_data()
        page = aggregator.load_insight_data(7)
        assert page.is_sample_data is False
        assert [i.id for i in page.stand_out] == ["no-patterns"]
        assert [p.id for p in page.positive] == ["keep-logging"]
        assert page.has_enough_data is False

        aggregator.reset_sample_data_dismissal()
        assert aggregator.load_insight_data(7).is_sample_data is True


class TestFailures:
    def test_invalid_range(self, build):
        with pytest.raises(ValueError):
            build().load_insight_data(10)

    def test_unexpected_failure_returns_fallback(self, build):
        page = build(correlation_source=_StubCorrelations(error=RuntimeError("boom"))).load_insight_data(30)
        assert page.stand_out[0].id == "analysis-error"
        assert page.stand_out[0].text == "Unable to analyze patterns right now."
        assert page.time_range == 30
        assert page.correlations == []

    def test_storage_failure_is_no_signal(self, build):
        page = build(
            correlation_source=_StubCorrelations(error=sqlite3.OperationalError("locked"))
        ).load_insight_data(7)
        assert page.is_sample_data is True


class TestRanking:
    def test_rule_and_baseline_never_both_speak_for_medication(self, build, care_repository):
        # Baseline of one dose a day, nothing logged yet today.
        _log_doses(care_repository, range(1, 5))
        control = build(rule_engine=None).load_insight_data(7)
        assert [i.id for i in control.stand_out] == ["baseline-meds"]

        page = build(rule_engine=_StubRules([_med_rule()])).load_insight_data(7)
        medication = [i for i in page.stand_out if i.category == "medication"]
        assert [i.id for i in medication] == ["medication-adherence"]

    def test_medication_concern_removes_medication_positives(self, build, care_repository):
        oid = care_repository.save_obligation(CareObligation(id="", name="Lisinopril", time_of_day="08:00"))
        _log_doses(care_repository, range(7), oid)

        control = build(rule_engine=None).load_insight_data(7)
        assert "med-adherence-good" in [p.id for p in control.positive]

        page = build(rule_engine=_StubRules([_med_rule()])).load_insight_data(7)
        assert [p.id for p in page.positive] == ["no-red-flags"]

    def test_positive_capped(self, build, care_repository):
        oid = care_repository.save_obligation(CareObligation(id="", name="Lisinopril", time_of_day="08:00"))
        _log_doses(care_repository, range(7), oid)
        for offset in range(7):
            day = (TODAY - timedelta(days=offset)).isoformat()
            care_repository.append_log("hydration", {"cups": 8}, timestamp=f"{day}T12:00:00+00:00")
        page = build(rule_engine=None).load_insight_data(7)
        assert len(page.positive) == 3


class TestSuggestionsAndFlags:
    def test_dismiss_and_restore(self, build):
        aggregator = build(correlation_source=_StubCorrelations([_correlation()]))
        aggregator.dismiss_suggestion("mood-sleep")
        card = aggregator.load_insight_data(14).correlations[0]
        assert card.suggestion is None
        assert card.suggestion_dismissed is True

        aggregator.restore_suggestion("suggestion-mood-sleep")
        assert aggregator.load_insight_data(14).correlations[0].suggestion is not None

    def test_confidence_explanation_shown_once(self, build):
        aggregator = build(correlation_source=_StubCorrelations([_correlation()]))
        assert aggregator.load_insight_data(7).show_confidence_explanation is True
        aggregator.mark_confidence_explained()
        assert aggregator.load_insight_data(7).show_confidence_explanation is False

    def test_no_explanation_without_cards(self, build):
        aggregator = build()
        aggregator.dismiss_sample_data()
        assert aggregator.load_insight_data(7).show_confidence_explanation is False

    def test_framing_follows_range(self, build):
        page = build(correlation_source=_StubCorrelations([_correlation()])).load_insight_data(14)
        assert page.to_dict()["framing"]["heading"] == "What's stabilizing"
