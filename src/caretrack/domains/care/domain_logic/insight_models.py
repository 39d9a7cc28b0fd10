"""User-facing insight structures and the shared confidence vocabulary."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

InsightConfidence = Literal["early", "emerging", "strong"]
TimeRange = Literal[7, 14, 30]

TIME_RANGES: tuple[int, ...] = (7, 14, 30)

TIME_RANGE_FRAMING: dict[int, dict[str, str]] = {
    7: {"label": "Last 7 days", "heading": "What's changed recently"},
    14: {"label": "Last 14 days", "heading": "What's stabilizing"},
    30: {"label": "Last 30 days", "heading": "What's becoming consistent"},
}

_CORRELATION_TO_INSIGHT: dict[str, InsightConfidence] = {
    "low": "early",
    "moderate": "emerging",
    "high": "strong",
}

_BASELINE_TO_INSIGHT: dict[str, InsightConfidence] = {
    "none": "early",
    "tentative": "emerging",
    "confident": "strong",
}


def from_correlation_confidence(level: str) -> InsightConfidence:
    return _CORRELATION_TO_INSIGHT.get(level, "early")


def from_baseline_confidence(level: str) -> InsightConfidence:
    return _BASELINE_TO_INSIGHT.get(level, "early")


def from_rule_severity(severity: str) -> InsightConfidence:
    return "strong" if severity == "alert" else "emerging"


def confidence_from_data_points(points: int, days_of_data: int) -> InsightConfidence:
    """Strong needs 20 points over 20 days of history; emerging needs 10 of each."""
    if points >= 20 and days_of_data >= 20:
        return "strong"
    if points >= 10 and days_of_data >= 10:
        return "emerging"
    return "early"


_CONFIDENCE_RANK: dict[str, int] = {"early": 0, "emerging": 1, "strong": 2}


def weaker_confidence(a: InsightConfidence, b: InsightConfidence) -> InsightConfidence:
    return a if _CONFIDENCE_RANK[a] <= _CONFIDENCE_RANK[b] else b


@dataclass
class StandOutInsight:
    id: str
    text: str
    confidence: InsightConfidence
    category: str
    concern: bool = False
    source: str = ""  # 'correlation' | 'rule' | 'baseline' | 'sample' | 'fallback'
    related_to: list[str] = field(default_factory=list)
    link_route: str | None = None
    link_label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PositiveObservation:
    id: str
    text: str
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CorrelationCard:
    id: str
    title: str
    insight: str
    confidence: InsightConfidence
    data_points: int
    coefficient: float
    suggestion_id: str
    suggestion: str | None = None
    suggestion_dismissed: bool = False
    action: str = ""
    related_to: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightPageData:
    time_range: int
    stand_out: list[StandOutInsight]
    positive: list[PositiveObservation]
    correlations: list[CorrelationCard]
    has_enough_data: bool
    days_of_data: int
    is_sample_data: bool = False
    sample_data_previously_seen: bool = False
    show_confidence_explanation: bool = False

    @property
    def framing(self) -> dict[str, str]:
        return TIME_RANGE_FRAMING.get(self.time_range, TIME_RANGE_FRAMING[7])

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_range": self.time_range,
            "framing": self.framing,
            "stand_out": [item.to_dict() for item in self.stand_out],
            "positive": [item.to_dict() for item in self.positive],
            "correlations": [card.to_dict() for card in self.correlations],
            "has_enough_data": self.has_enough_data,
            "days_of_data": self.days_of_data,
            "is_sample_data": self.is_sample_data,
            "sample_data_previously_seen": self.sample_data_previously_seen,
            "show_confidence_explanation": self.show_confidence_explanation,
        }
