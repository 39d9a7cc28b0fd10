"""Tests for per-category baselines."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from caretrack.core.storage.models import DailyLog
from caretrack.domains.care.domain_logic.baseline_engine import (
    CategoryBaseline,
    baseline_from_daily_counts,
    baseline_language,
    calculate_baseline,
    calculate_mode,
    compare_to_baseline,
    confidence_for,
    count_for_day,
    describe_baseline,
)

TODAY = date(2026, 3, 10)
_MEALS = ["breakfast", "lunch", "dinner", "snack", "snack", "snack"]


def _log(category: str, payload: dict, day: date, hour: int = 12) -> DailyLog:
    return DailyLog(
        id=f"{category}-{day}-{hour}",
        category=category,
        timestamp=datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc).isoformat(),
        payload=payload,
    )


def _seed_meals(repository, counts: list[int]) -> None:
    """One meals log per day, ``counts[-1]`` landing on TODAY."""
    for offset, count in enumerate(reversed(counts)):
        if count:
            day = TODAY - timedelta(days=offset)
            repository.append_log(
                "meals", {"meals": _MEALS[:count]}, timestamp=f"{day.isoformat()}T12:00:00+00:00"
            )


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

class TestMode:
    def test_most_frequent(self):
        assert calculate_mode([3, 3, 4, 3, 2]) == 3

    def test_tie_goes_to_first_seen(self):
        assert calculate_mode([2, 4, 4, 2]) == 2
        assert calculate_mode([4, 2, 2, 4]) == 4

    def test_empty(self):
        assert calculate_mode([]) is None


class TestConfidence:
    @pytest.mark.parametrize("days,tier", [(0, "none"), (2, "none"), (3, "tentative"), (4, "tentative"), (5, "confident"), (7, "confident")])
    def test_tiers(self, days, tier):
        assert confidence_for(days) == tier


class TestCountForDay:
    def test_meals_listed(self):
        logs = [_log("meals", {"meals": ["breakfast", "lunch"]}, TODAY), _log("meals", {"meals": ["dinner"]}, TODAY)]
        assert count_for_day("meals", logs) == 3

    def test_meal_log_without_list_counts_once(self):
        assert count_for_day("meals", [_log("meals", {"notes": "soup"}, TODAY)]) == 1

    def test_vitals_count_non_null_fields(self):
        logs = [_log("vitals", {"systolic": 120, "diastolic": 80, "heart_rate": None}, TODAY)]
        assert count_for_day("vitals", logs) == 2

    def test_meds_count_taken(self):
        logs = [_log("medications", {"taken": True}, TODAY), _log("medications", {"taken": False}, TODAY)]
        assert count_for_day("meds", logs) == 1

    def test_unknown_category(self):
        with pytest.raises(ValueError):
            count_for_day("steps", [])


class TestBaselineFromCounts:
    def test_confident_mode(self):
        baseline = baseline_from_daily_counts("meals", [3, 3, 4, 3, 2])
        assert baseline.daily_count == 3
        assert baseline.days_of_data == 5
        assert baseline.confidence == "confident"

    def test_zero_days_are_missing_data(self):
        assert baseline_from_daily_counts("meals", [0, 0, 2]) is None

    def test_zero_days_do_not_count_toward_the_minimum(self):
        baseline = baseline_from_daily_counts("meals", [2, 0, 3, 0, 3])
        assert baseline.days_of_data == 3
        assert baseline.confidence == "tentative"
        assert baseline.daily_count == 3


class TestCalculateBaseline:
    def test_requires_three_days_since_first_use(self):
        logs = [_log("meals", {"meals": ["breakfast"]}, TODAY - timedelta(days=i)) for i in range(3)]
        assert calculate_baseline("meals", logs, TODAY, 2) is None
        assert calculate_baseline("meals", logs, TODAY, 3).daily_count == 1

    def test_lookback_capped_at_seven_days(self):
        old = [_log("meals", {"meals": _MEALS[:4]}, TODAY - timedelta(days=i)) for i in range(7, 12)]
        recent = [_log("meals", {"meals": _MEALS[:2]}, TODAY - timedelta(days=i)) for i in range(3)]
        baseline = calculate_baseline("meals", old + recent, TODAY, 30)
        assert baseline.daily_count == 2
        assert baseline.days_of_data == 3


class TestComparison:
    def test_meeting_baseline_is_on_track(self):
        baseline = CategoryBaseline("meals", 3, 5, "confident")
        result = compare_to_baseline(baseline, 3)
        assert result.matches_baseline is True
        assert result.below_baseline is False

    def test_below_baseline(self):
        baseline = CategoryBaseline("meals", 3, 5, "confident")
        result = compare_to_baseline(baseline, 2)
        assert result.matches_baseline is False
        assert result.below_baseline is True

    def test_exceeding_counts_as_match(self):
        baseline = CategoryBaseline("meals", 3, 5, "confident")
        assert compare_to_baseline(baseline, 5).matches_baseline is True


class TestLanguage:
    def test_tentative_is_hedged(self):
        baseline = CategoryBaseline("meals", 3, 3, "tentative")
        assert baseline_language(baseline) == {"prefix": "So far", "adverb": "usually"}
        assert describe_baseline(baseline) == "So far, you usually log 3 meals a day."

    def test_confirmed_tentative_is_plain(self):
        baseline = CategoryBaseline("meds", 1, 3, "tentative", confirmed=True)
        assert describe_baseline(baseline) == "You typically log 1 medication dose a day."

    def test_confident(self):
        baseline = CategoryBaseline("vitals", 2, 6, "confident")
        assert describe_baseline(baseline) == "You typically log 2 vitals readings a day."


# ---------------------------------------------------------------------------
# Engine over the repository
# ---------------------------------------------------------------------------

class TestBaselineEngine:
    def test_no_data(self, baseline_engine):
        assert baseline_engine.days_of_data() == 0
        data = baseline_engine.get_all_baselines()
        assert data.has_any_baseline is False
        assert data.to_dict()["meals"] is None

    def test_first_use_is_earliest_of_stored_and_logs(self, baseline_engine, care_repository):
        baseline_engine.record_first_use(TODAY)
        care_repository.append_log("meals", {"meals": ["lunch"]}, timestamp="2026-03-06T12:00:00+00:00")
        assert baseline_engine.first_use_date() == date(2026, 3, 6)
        assert baseline_engine.days_of_data() == 5

    def test_record_first_use_only_once(self, baseline_engine):
        assert baseline_engine.record_first_use(date(2026, 3, 1)) == date(2026, 3, 1)
        assert baseline_engine.record_first_use(date(2026, 3, 5)) == date(2026, 3, 1)

    def test_confident_meal_baseline(self, baseline_engine, care_repository):
        _seed_meals(care_repository, [3, 3, 4, 3, 2])
        baseline = baseline_engine.get_baseline("meals")
        assert baseline.daily_count == 3
        assert baseline.confidence == "confident"
        assert baseline.days_of_data == 5

    def test_sparse_meals_have_no_baseline(self, baseline_engine, care_repository):
        # First use three days ago, but only one day with meals.
        baseline_engine.record_first_use(TODAY - timedelta(days=2))
        _seed_meals(care_repository, [2])
        assert baseline_engine.get_baseline("meals") is None

    def test_meds_baseline_uses_medication_logs(self, baseline_engine, care_repository):
        for offset in range(4):
            day = TODAY - timedelta(days=offset)
            care_repository.append_log(
                "medications", {"obligation_id": "o1", "taken": True}, timestamp=f"{day}T08:00:00+00:00"
            )
        baseline = baseline_engine.get_baseline("meds")
        assert baseline.daily_count == 1
        assert baseline.confidence == "tentative"

    def test_unknown_category(self, baseline_engine):
        with pytest.raises(ValueError):
            baseline_engine.get_baseline("steps")

    def test_today_vs_baseline(self, baseline_engine, care_repository):
        _seed_meals(care_repository, [3, 3, 3, 3, 2])
        comparison = baseline_engine.compare_today_to_baseline("meals")
        assert comparison.today_count == 2
        assert comparison.below_baseline is True
        assert [c.category for c in baseline_engine.get_all_today_vs_baseline()] == ["meals"]

    def test_confirmation_workflow(self, baseline_engine, care_repository):
        _seed_meals(care_repository, [3, 3, 3])
        assert baseline_engine.should_show_baseline_prompt("meals")
        assert baseline_engine.next_baseline_to_confirm().category == "meals"

        baseline_engine.confirm_baseline("meals")
        assert baseline_engine.get_baseline("meals").confirmed is True
        assert not baseline_engine.should_show_baseline_prompt("meals")

        baseline_engine.reject_baseline("meals")
        assert baseline_engine.should_show_baseline_prompt("meals")

        baseline_engine.dismiss_baseline_prompt("meals")
        assert baseline_engine.next_baseline_to_confirm() is None
        # Dismissing hides the prompt, not the baseline.
        assert baseline_engine.get_baseline("meals").daily_count == 3

    def test_read_failure_degrades_to_no_baseline(self, baseline_engine, care_repository, care_db):
        _seed_meals(care_repository, [3, 3, 3])
        care_db.connection.execute("DROP TABLE care_logs")
        assert baseline_engine.get_baseline("meals") is None
        assert baseline_engine.days_of_data() == 0
