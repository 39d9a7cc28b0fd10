"""Tests for calendar and time-of-day arithmetic."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from caretrack.core.clock.calendar import (
    MINUTES_PER_DAY,
    FixedClock,
    SystemClock,
    days_between,
    format_hhmm,
    hours_since,
    in_daily_window,
    is_same_day,
    last_n_dates,
    local_date_of,
    minutes_to_hour_minute,
    normalize_minute_of_day,
    parse_instant,
    parse_time_to_minutes,
    shift_time_of_day,
    time_slot,
    to_12_hour,
)


class TestParseTime:
    def test_24_hour(self):
        assert parse_time_to_minutes("08:00") == 480
        assert parse_time_to_minutes("23:59") == 1439
        assert parse_time_to_minutes("0:05") == 5

    def test_12_hour(self):
        assert parse_time_to_minutes("8:30 AM") == 510
        assert parse_time_to_minutes("12:00 AM") == 0
        assert parse_time_to_minutes("12:15 pm") == 735
        assert parse_time_to_minutes("9:00 PM") == 1260

    @pytest.mark.parametrize("text", ["", "8", "24:00", "07:60", "13:00 PM", "noon", "8:5"])
    def test_malformed_raises(self, text):
        with pytest.raises(ValueError):
            parse_time_to_minutes(text)

    def test_non_string_raises(self):
        with pytest.raises(ValueError):
            parse_time_to_minutes(800)  # type: ignore[arg-type]


class TestShift:
    def test_rollover_before_midnight(self):
        assert shift_time_of_day(0, 3, -5) == (23, 58)

    def test_rollover_after_midnight(self):
        assert shift_time_of_day(23, 50, 20) == (0, 10)

    def test_no_rollover(self):
        assert shift_time_of_day(8, 0, 30) == (8, 30)

    @given(
        hour=st.integers(min_value=0, max_value=23),
        minute=st.integers(min_value=0, max_value=59),
        delta=st.integers(min_value=-10_000, max_value=10_000),
    )
    def test_always_a_valid_wall_clock_time(self, hour, minute, delta):
        new_hour, new_minute = shift_time_of_day(hour, minute, delta)
        assert 0 <= new_hour <= 23
        assert 0 <= new_minute <= 59
        assert (new_hour * 60 + new_minute - (hour * 60 + minute + delta)) % MINUTES_PER_DAY == 0

    @given(minutes=st.integers(min_value=-100_000, max_value=100_000))
    def test_normalize_range(self, minutes):
        assert 0 <= normalize_minute_of_day(minutes) < MINUTES_PER_DAY

    def test_minutes_to_hour_minute(self):
        assert minutes_to_hour_minute(-1) == (23, 59)
        assert minutes_to_hour_minute(1440) == (0, 0)


class TestDailyWindow:
    def test_same_day_window(self):
        assert in_daily_window(600, 540, 1020)
        assert not in_daily_window(1020, 540, 1020)
        assert in_daily_window(540, 540, 1020)

    def test_overnight_window(self):
        start, end = 22 * 60, 7 * 60
        assert in_daily_window(23 * 60, start, end)
        assert in_daily_window(3 * 60, start, end)
        assert in_daily_window(start, start, end)
        assert not in_daily_window(end, start, end)
        assert not in_daily_window(12 * 60, start, end)

    def test_empty_window(self):
        assert not in_daily_window(600, 600, 600)

    @given(
        now=st.integers(min_value=0, max_value=MINUTES_PER_DAY - 1),
        start=st.integers(min_value=0, max_value=MINUTES_PER_DAY - 1),
        end=st.integers(min_value=0, max_value=MINUTES_PER_DAY - 1),
    )
    def test_window_and_complement_partition_the_day(self, now, start, end):
        if start == end:
            return
        assert in_daily_window(now, start, end) != in_daily_window(now, end, start)


class TestFormatting:
    def test_format_hhmm(self):
        assert format_hhmm(7, 5) == "07:05"

    def test_to_12_hour(self):
        assert to_12_hour(0) == "12:00 AM"
        assert to_12_hour(480) == "8:00 AM"
        assert to_12_hour(720) == "12:00 PM"
        assert to_12_hour(1305) == "9:45 PM"

    @pytest.mark.parametrize(
        "minutes,slot",
        [(300, "morning"), (719, "morning"), (720, "afternoon"), (1020, "evening"),
         (1260, "night"), (120, "night")],
    )
    def test_time_slot(self, minutes, slot):
        assert time_slot(minutes) == slot


class TestInstants:
    def test_parse_z_suffix(self):
        parsed = parse_instant("2026-03-10T09:00:00Z")
        assert parsed.tzinfo is not None
        assert parsed.utcoffset() == timedelta(0)

    def test_naive_is_utc(self):
        assert parse_instant("2026-03-10T09:00:00").tzinfo == timezone.utc

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_instant("yesterday")
        with pytest.raises(ValueError):
            parse_instant("")

    def test_local_date_uses_recorded_offset(self):
        # 23:30 in UTC-5 is already the next day in UTC.
        assert local_date_of("2026-03-10T23:30:00-05:00") == date(2026, 3, 10)

    def test_is_same_day(self):
        first = datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc)
        assert is_same_day(first, datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc))
        assert not is_same_day(first, datetime(2026, 3, 11, 0, 0, tzinfo=timezone.utc))

    def test_hours_since(self):
        earlier = datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc)
        now = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
        assert hours_since(earlier, now) == 24.0

    def test_days_between(self):
        assert days_between(date(2026, 3, 1), date(2026, 3, 10)) == 9

    def test_last_n_dates_oldest_first(self):
        days = last_n_dates(date(2026, 3, 10), 3)
        assert days == [date(2026, 3, 8), date(2026, 3, 9), date(2026, 3, 10)]


class TestClocks:
    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None

    def test_fixed_clock_advance(self):
        clock = FixedClock(datetime(2026, 3, 10, 9, 0))
        assert clock.now().tzinfo == timezone.utc
        moved = clock.advance(minutes=15)
        assert moved == clock.now()
        assert clock.now().minute == 15

    def test_fixed_clock_set(self):
        clock = FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
        clock.set(datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert clock.now().year == 2026
        assert clock.now().month == 1
