"""Fixed example insights shown before a user has enough history.

Every builder returns fresh objects so callers may mutate the result.
"""

from __future__ import annotations

from caretrack.domains.care.domain_logic.insight_models import (
    CorrelationCard,
    InsightPageData,
    PositiveObservation,
    StandOutInsight,
)


def sample_stand_out() -> list[StandOutInsight]:
    return [
        StandOutInsight(
            id="sample-sleep-mood",
            text="Mood tends to be higher on days after 7 or more hours of sleep.",
            confidence="strong",
            category="sleep",
            source="sample",
            related_to=["sleep", "mood"],
        ),
        StandOutInsight(
            id="sample-hydration-fatigue",
            text="Fatigue may be lower on days with more fluid intake.",
            confidence="emerging",
            category="hydration",
            source="sample",
            related_to=["hydration", "symptoms"],
        ),
        StandOutInsight(
            id="sample-med-timing",
            text="Evening doses are logged later on weekends.",
            confidence="emerging",
            category="medication",
            source="sample",
            related_to=["medications"],
        ),
    ]


def sample_positive() -> list[PositiveObservation]:
    return [
        PositiveObservation(
            id="sample-med-adherence",
            text="Medication adherence has been excellent this week.",
            category="medication",
        ),
        PositiveObservation(
            id="sample-hydration",
            text="Fluid intake has met the daily goal on most days.",
            category="hydration",
        ),
        PositiveObservation(
            id="sample-no-alerts",
            text="No urgent patterns detected in recent logs.",
            category="general",
        ),
    ]


def sample_correlation_cards() -> list[CorrelationCard]:
    return [
        CorrelationCard(
            id="sample-sleep-mood-card",
            title="Sleep & mood",
            insight="Higher sleep may be associated with higher mood.",
            confidence="emerging",
            data_points=14,
            coefficient=0.72,
            action="Keep logging sleep and mood to see whether this pattern holds.",
            suggestion_id="suggestion-sample-sleep-mood-card",
            suggestion=(
                "If approved by your care team, you could try keeping a "
                "consistent bedtime this week."
            ),
            related_to=["sleep", "mood"],
        ),
        CorrelationCard(
            id="sample-hydration-energy-card",
            title="Fluid intake & fatigue",
            insight="Higher fluid intake may be associated with lower fatigue.",
            confidence="early",
            data_points=10,
            coefficient=-0.45,
            action="Keep logging fluid intake and fatigue to see whether this pattern holds.",
            suggestion_id="suggestion-sample-hydration-energy-card",
            suggestion=(
                "If approved by your care team, you could try keeping a water "
                "bottle within reach during the afternoon."
            ),
            related_to=["hydration", "fatigue"],
        ),
    ]


def sample_insight_data(
    time_range: int, days_of_data: int, previously_seen: bool
) -> InsightPageData:
    return InsightPageData(
        time_range=time_range,
        stand_out=sample_stand_out(),
        positive=sample_positive(),
        correlations=sample_correlation_cards(),
        has_enough_data=False,
        days_of_data=days_of_data,
        is_sample_data=True,
        sample_data_previously_seen=previously_seen,
    )
