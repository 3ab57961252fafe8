"""Tests for observed and schedule-derived travel times."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from train_tracker.services.prediction.cache import InMemoryTTLCache
from train_tracker.services.prediction.travel_time import (
    average_travel_time,
    default_travel_time,
    travel_time_cache_key,
)
from train_tracker.services.prediction.types import TrainStoppage

from fixtures.network_fixture import DAY, at, history_day


def _day(offset: int):
    return DAY - timedelta(days=offset)


def _hist(offset: int, a_minute: int, b_minute: int):
    day = _day(offset)
    return history_day(day, ("A", at(8, a_minute, day=day)), ("B", at(8, b_minute, day=day)))


class TestAverageTravelTime:
    def test_mean_of_observed_durations(self) -> None:
        history = [_hist(1, 0, 10), _hist(2, 0, 12), _hist(3, 0, 14)]
        assert average_travel_time(history, "A", "B") == timedelta(minutes=12)

    def test_day_where_b_precedes_a_is_excluded(self) -> None:
        history = [_hist(1, 0, 10), _hist(2, 0, 12), _hist(3, 0, 14), _hist(4, 30, 5)]
        assert average_travel_time(history, "A", "B") == timedelta(minutes=12)

    def test_uses_first_arrival_at_each_station(self) -> None:
        day = _day(1)
        record = history_day(
            day,
            ("A", at(8, 0, day=day)),
            ("B", at(8, 10, day=day)),
            ("C", at(8, 30, day=day)),
            ("B", at(8, 50, day=day)),
            ("A", at(9, 10, day=day)),
        )
        assert average_travel_time([record], "A", "B") == timedelta(minutes=10)
        assert average_travel_time([record], "C", "B") is None

    def test_long_gaps_are_excluded(self) -> None:
        day = _day(1)
        stale = history_day(day, ("A", at(6, 0, day=day)), ("B", at(18, 0, day=day)))
        assert average_travel_time([stale], "A", "B") is None
        assert average_travel_time([stale, _hist(2, 0, 20)], "A", "B") == timedelta(minutes=20)

    def test_no_samples_returns_none(self) -> None:
        assert average_travel_time([], "A", "B") is None
        assert average_travel_time([history_day(_day(1))], "A", "B") is None

    def test_result_is_cached_under_namespaced_key(self) -> None:
        cache = InMemoryTTLCache()
        history = [_hist(1, 0, 10)]
        average_travel_time(history, "A", "B", cache=cache, namespace="train-7")

        assert cache.get(travel_time_cache_key("A", "B", "train-7")) == timedelta(minutes=10)

    def test_cached_value_short_circuits(self) -> None:
        cache = InMemoryTTLCache()
        cache.set(travel_time_cache_key("A", "B"), timedelta(minutes=3), timedelta(hours=1))
        assert average_travel_time([_hist(1, 0, 10)], "A", "B", cache=cache) == timedelta(minutes=3)

    def test_absence_is_not_cached(self) -> None:
        cache = InMemoryTTLCache()
        assert average_travel_time([], "A", "B", cache=cache) is None
        assert len(cache) == 0

    def test_cache_key_is_direction_sensitive(self) -> None:
        assert travel_time_cache_key("A", "B") != travel_time_cache_key("B", "A")
        assert travel_time_cache_key("A", "B", "train-1") == "train-1:avg-travel:A:B"


    def test_observed_hop_across_dst_change_uses_real_time(self) -> None:
        berlin = ZoneInfo("Europe/Berlin")
        day = date(2026, 3, 29)
        record = history_day(
            day,
            ("A", datetime(2026, 3, 29, 1, 40, tzinfo=berlin)),
            ("B", datetime(2026, 3, 29, 3, 10, tzinfo=berlin)),
        )
        assert average_travel_time([record], "A", "B") == timedelta(minutes=30)


class TestDefaultTravelTime:
    STOPPAGES = (
        TrainStoppage("A", "08:00", "09:10"),
        TrainStoppage("B", "08:20", "08:50"),
    )

    def test_same_day_from_origin(self) -> None:
        result = default_travel_time(
            self.STOPPAGES, "A", "B", "up", is_first_station=True, now=at(7, 0)
        )
        assert result == timedelta(minutes=20)

    def test_dwell_is_subtracted_after_origin(self) -> None:
        result = default_travel_time(
            self.STOPPAGES, "A", "B", "up", is_first_station=False, now=at(7, 0)
        )
        assert result == timedelta(minutes=15)

    def test_uses_leg_direction_times(self) -> None:
        result = default_travel_time(
            self.STOPPAGES, "B", "A", "down", is_first_station=False, now=at(7, 0)
        )
        assert result == timedelta(minutes=15)

    def test_midnight_wrap_moves_b_to_next_day(self) -> None:
        stoppages = (TrainStoppage("A", "23:50", ""), TrainStoppage("B", "00:20", ""))
        result = default_travel_time(stoppages, "A", "B", "up", is_first_station=True, now=at(4, 0))
        assert result == timedelta(minutes=30)

    def test_falls_back_to_opposite_direction(self) -> None:
        stoppages = (TrainStoppage("A", "", "23:30"), TrainStoppage("B", "", "00:10"))
        result = default_travel_time(stoppages, "A", "B", "up", is_first_station=True, now=at(4, 0))
        assert result == timedelta(minutes=40)

    def test_missing_stoppage_returns_none(self) -> None:
        result = default_travel_time(
            self.STOPPAGES, "A", "Z", "up", is_first_station=True, now=at(7, 0)
        )
        assert result is None

    def test_unparsable_times_return_none(self) -> None:
        stoppages = (TrainStoppage("A", "", ""), TrainStoppage("B", "later", ""))
        result = default_travel_time(stoppages, "A", "B", "up", is_first_station=True, now=at(7, 0))
        assert result is None

    def test_duration_over_limit_returns_none(self) -> None:
        stoppages = (TrainStoppage("A", "06:00", ""), TrainStoppage("B", "05:00", ""))
        result = default_travel_time(
            stoppages,
            "A",
            "B",
            "up",
            is_first_station=True,
            now=at(5, 30),
            max_duration=timedelta(hours=12),
        )
        assert result is None

    def test_schedule_across_dst_change_uses_real_time(self) -> None:
        berlin = ZoneInfo("Europe/Berlin")
        stoppages = (TrainStoppage("A", "01:30", ""), TrainStoppage("B", "03:30", ""))
        result = default_travel_time(
            stoppages,
            "A",
            "B",
            "up",
            is_first_station=True,
            now=datetime(2026, 3, 29, 1, 0, tzinfo=berlin),
        )
        assert result == timedelta(hours=1)
