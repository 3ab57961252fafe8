"""Travel-time estimation between two stations.

Two sources, tried in order by the engine:

1. The observed average over the trailing history window.
2. A schedule-derived default from the stoppages' ``HH:MM`` times.

Both return ``None`` when they cannot produce a sane duration; that is an
expected outcome and the caller falls through to the next source.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from train_tracker.logging import get_logger
from train_tracker.services.prediction.cache import TravelTimeCache
from train_tracker.services.prediction.timeparse import elapsed, parse_time_to_today, shift
from train_tracker.services.prediction.types import (
    ArrivalRecord,
    TrainHistoryRecord,
    TrainStoppage,
    opposite_direction,
)

logger = get_logger(__name__)

MAX_LEG_DURATION = timedelta(hours=12)
DWELL_TIME = timedelta(minutes=5)
CACHE_TTL = timedelta(hours=1)


def _first_arrival(arrivals: Iterable[ArrivalRecord], station_id: str) -> Optional[datetime]:
    for arrival in arrivals:
        if arrival.station_id == station_id:
            return arrival.arrived_at
    return None


def travel_time_cache_key(station_a: str, station_b: str, namespace: str = "") -> str:
    prefix = f"{namespace}:" if namespace else ""
    return f"{prefix}avg-travel:{station_a}:{station_b}"


def average_travel_time(
    history: Sequence[TrainHistoryRecord],
    station_a: str,
    station_b: str,
    *,
    cache: Optional[TravelTimeCache] = None,
    namespace: str = "",
    ttl: timedelta = CACHE_TTL,
    max_duration: timedelta = MAX_LEG_DURATION,
) -> Optional[timedelta]:
    """Mean observed A -> B duration across the history window.

    Per day, the first arrival at A and the first arrival at B are compared;
    days where B does not follow A, or the gap reaches ``max_duration``, are
    skipped. Returns ``None`` when no day yields a sample.
    """
    key = travel_time_cache_key(station_a, station_b, namespace)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    samples: list[timedelta] = []
    for record in history:
        time_a = _first_arrival(record.arrivals, station_a)
        time_b = _first_arrival(record.arrivals, station_b)
        if time_a is None or time_b is None:
            continue
        duration = elapsed(time_b, time_a)
        if timedelta(0) < duration < max_duration:
            samples.append(duration)

    if not samples:
        return None

    average = sum(samples, timedelta()) / len(samples)
    if cache is not None:
        cache.set(key, average, ttl)
    logger.debug(
        "Computed average travel time",
        station_a=station_a,
        station_b=station_b,
        samples=len(samples),
        average_sec=average.total_seconds(),
    )
    return average


def default_travel_time(
    stoppages: Sequence[TrainStoppage],
    station_a: str,
    station_b: str,
    leg_direction: str,
    *,
    is_first_station: bool,
    now: datetime,
    dwell: timedelta = DWELL_TIME,
    max_duration: timedelta = MAX_LEG_DURATION,
    rollover_threshold: timedelta = timedelta(hours=6),
) -> Optional[timedelta]:
    """Scheduled duration from departing A to arriving at B.

    Departure from A is its scheduled arrival plus ``dwell``, except at the
    journey origin. Candidates are evaluated in order and the first one with
    ``0 < duration <= max_duration`` wins:

    * leg direction, both times on the same day
    * leg direction, B on the following day (midnight wrap)
    * opposite direction, B on the following day
    """
    stoppage_a = next((s for s in stoppages if s.station_id == station_a), None)
    stoppage_b = next((s for s in stoppages if s.station_id == station_b), None)
    if stoppage_a is None or stoppage_b is None:
        return None

    def candidate(direction: str, b_next_day: bool) -> Callable[[], Optional[timedelta]]:
        def compute() -> Optional[timedelta]:
            arrival_a = parse_time_to_today(
                stoppage_a.scheduled_time(direction),
                now=now,
                rollover_threshold=rollover_threshold,
            )
            arrival_b = parse_time_to_today(
                stoppage_b.scheduled_time(direction),
                b_next_day,
                now=now,
                rollover_threshold=rollover_threshold,
            )
            if arrival_a is None or arrival_b is None:
                return None
            departure_a = arrival_a if is_first_station else shift(arrival_a, dwell)
            return elapsed(arrival_b, departure_a)

        return compute

    alternate = opposite_direction(leg_direction)
    candidates = (
        candidate(leg_direction, False),
        candidate(leg_direction, True),
        candidate(alternate, True),
    )
    for compute in candidates:
        duration = compute()
        if duration is not None and timedelta(0) < duration <= max_duration:
            return duration
    return None
