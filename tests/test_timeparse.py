"""Tests for schedule time parsing and formatting."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from train_tracker.services.prediction.timeparse import (
    elapsed,
    format_24_hour_time,
    format_clock,
    parse_time_to_today,
    shift,
)

from fixtures.network_fixture import DAY, at


class TestParseTimeToToday:
    def test_later_time_stays_on_same_day(self) -> None:
        result = parse_time_to_today("14:30", now=at(10, 0))
        assert result == at(14, 30)

    def test_early_morning_time_late_at_night_rolls_to_next_day(self) -> None:
        result = parse_time_to_today("02:00", now=at(21, 0))
        assert result == at(2, 0, day=DAY + timedelta(days=1))

    def test_recent_past_time_is_not_rolled(self) -> None:
        result = parse_time_to_today("09:15", now=at(10, 0))
        assert result == at(9, 15)

    def test_exactly_at_threshold_is_not_rolled(self) -> None:
        result = parse_time_to_today("08:00", now=at(14, 0))
        assert result == at(8, 0)

    def test_just_past_threshold_is_rolled(self) -> None:
        result = parse_time_to_today("08:00", now=at(14, 1))
        assert result == at(8, 0, day=DAY + timedelta(days=1))

    def test_add_day_adds_exactly_one_day(self) -> None:
        result = parse_time_to_today("14:30", True, now=at(10, 0))
        assert result == at(14, 30, day=DAY + timedelta(days=1))

    def test_custom_threshold(self) -> None:
        result = parse_time_to_today("08:00", now=at(10, 0), rollover_threshold=timedelta(hours=1))
        assert result == at(8, 0, day=DAY + timedelta(days=1))

    def test_keeps_timezone_of_now(self) -> None:
        result = parse_time_to_today("11:00", now=at(10, 0))
        assert result is not None
        assert result.tzinfo == at(10, 0).tzinfo

    @pytest.mark.parametrize("value", [None, "", "noon", "25:00", "12:60", "ab:cd", "7"])
    def test_invalid_input_returns_none(self, value: str | None) -> None:
        assert parse_time_to_today(value, now=at(10, 0)) is None


class TestFormatting:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("13:10", "01:10 PM"),
            ("00:05", "12:05 AM"),
            ("12:00", "12:00 PM"),
            ("09:45", "09:45 AM"),
        ],
    )
    def test_format_24_hour_time(self, value: str, expected: str) -> None:
        assert format_24_hour_time(value) == expected

    def test_format_24_hour_time_placeholder_for_empty(self) -> None:
        assert format_24_hour_time("") == "--:-- --"

    def test_format_24_hour_time_echoes_garbage(self) -> None:
        assert format_24_hour_time("soon") == "soon"

    def test_format_clock(self) -> None:
        assert format_clock(at(8, 5)) == "08:05"
        assert format_clock(None) == "--:-- --"


class TestDaylightSaving:
    """Europe/Berlin moves from UTC+1 to UTC+2 at 02:00 on 2026-03-29."""

    BERLIN = ZoneInfo("Europe/Berlin")

    def _local(self, hour: int, minute: int = 0) -> datetime:
        return datetime(2026, 3, 29, hour, minute, tzinfo=self.BERLIN)

    def test_elapsed_counts_real_time(self) -> None:
        assert elapsed(self._local(4, 0), self._local(1, 0)) == timedelta(hours=2)

    def test_shift_keeps_zone_and_skips_missing_hour(self) -> None:
        moved = shift(self._local(1, 30), timedelta(hours=1))
        assert moved.tzinfo is self.BERLIN
        assert (moved.hour, moved.minute) == (3, 30)

    def test_rollover_threshold_uses_real_time(self) -> None:
        result = parse_time_to_today("01:45", now=self._local(8, 30))
        assert result == self._local(1, 45)
