"""Journey-state classification and arrival prediction.

``predict_journey`` is a pure function of its inputs and the supplied ``now``:
it owns no state, performs no I/O and never raises for missing or stale data.
The only side effect is through the optional travel-time cache, which is
advisory.

State precedence:

1. completed      ``lap_completed`` is set
2. pending        no arrivals recorded today
3. at station     more arrivals than departures (turnaround or ordinary stop)
4. en route       as many departures as arrivals
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Sequence

from train_tracker.services.prediction.journey import (
    build_full_journey,
    leg_direction,
    turnaround_index,
)
from train_tracker.services.prediction.timeparse import (
    elapsed,
    format_clock,
    parse_time_to_today,
    shift,
)
from train_tracker.services.prediction.travel_time import (
    average_travel_time,
    default_travel_time,
)
from train_tracker.services.prediction.types import (
    DailyTrainStatus,
    Prediction,
    PredictionType,
    Route,
    Station,
    Train,
    TrainHistoryRecord,
    opposite_direction,
)

if TYPE_CHECKING:
    from train_tracker.config import Settings
    from train_tracker.services.prediction.cache import TravelTimeCache

RUNNING_LATE_WARNING = "Train is running late. Predictions may be inaccurate."


class JourneyState(str, Enum):
    UNAVAILABLE = "unavailable"
    PENDING = "pending"
    EN_ROUTE = "en_route"
    AT_STATION = "at_station"
    AT_TURNAROUND = "at_turnaround"
    COMPLETED = "completed"


STATE_LABELS: dict[JourneyState, str] = {
    JourneyState.UNAVAILABLE: "Status Unavailable",
    JourneyState.PENDING: "Pending Departure",
    JourneyState.EN_ROUTE: "En Route",
    JourneyState.AT_STATION: "At Station",
    JourneyState.AT_TURNAROUND: "At Turnaround",
    JourneyState.COMPLETED: "Journey Completed",
}


@dataclass(frozen=True)
class PredictionConfig:
    """Tunable durations; the dwell time doubles as the lateness grace."""

    dwell: timedelta = timedelta(minutes=5)
    fallback_travel: timedelta = timedelta(minutes=30)
    max_leg: timedelta = timedelta(hours=12)
    rollover_threshold: timedelta = timedelta(hours=6)
    cache_ttl: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> PredictionConfig:
        return cls(
            dwell=timedelta(minutes=settings.dwell_minutes),
            fallback_travel=timedelta(minutes=settings.fallback_travel_minutes),
            max_leg=timedelta(hours=settings.max_leg_hours),
            rollover_threshold=timedelta(hours=settings.rollover_threshold_hours),
            cache_ttl=timedelta(seconds=settings.travel_time_cache_ttl_sec),
        )


@dataclass(frozen=True)
class StationStop:
    """Where the train is standing and when it is scheduled to leave."""

    station_id: str
    station_name: str
    arrived_at: datetime
    scheduled_departure: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stationId": self.station_id,
            "stationName": self.station_name,
            "arrivedAt": self.arrived_at.isoformat(),
            "scheduledDeparture": (
                self.scheduled_departure.isoformat() if self.scheduled_departure else None
            ),
        }


@dataclass(frozen=True)
class TravelLeg:
    """The hop currently being travelled, for progress displays."""

    from_station: str
    to_station: str
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_station,
            "to": self.to_station,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
        }


@dataclass(frozen=True)
class JourneySnapshot:
    state: JourneyState
    evaluated_at: datetime
    journey: tuple[Station, ...] = ()
    predictions: tuple[Prediction, ...] = ()
    warning: Optional[str] = None
    current_station: Optional[str] = None
    at_station: Optional[StationStop] = None
    current_leg: Optional[TravelLeg] = None
    is_at_final_station: bool = False

    @property
    def label(self) -> str:
        return STATE_LABELS[self.state]

    def same_outcome(self, other: Optional[JourneySnapshot]) -> bool:
        """Equal apart from the evaluation timestamp."""
        if other is None:
            return False
        return self == _with_evaluated_at(other, self.evaluated_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "label": self.label,
            "evaluatedAt": self.evaluated_at.isoformat(),
            "journey": [s.to_dict() for s in self.journey],
            "predictions": [p.to_dict() for p in self.predictions],
            "warning": self.warning,
            "currentStation": self.current_station,
            "atStation": self.at_station.to_dict() if self.at_station else None,
            "currentLeg": self.current_leg.to_dict() if self.current_leg else None,
            "isAtFinalStation": self.is_at_final_station,
        }


def _with_evaluated_at(snapshot: JourneySnapshot, moment: datetime) -> JourneySnapshot:
    return replace(snapshot, evaluated_at=moment)


@dataclass
class _HopEstimator:
    """Resolves hop durations through the average -> schedule -> fixed chain."""

    train: Train
    history: Sequence[TrainHistoryRecord]
    config: PredictionConfig
    now: datetime
    cache: Optional[TravelTimeCache] = None
    namespace: str = field(init=False)

    def __post_init__(self) -> None:
        self.namespace = f"train-{self.train.id}"

    def duration(
        self, previous: Station, current: Station, index: int, journey_length: int
    ) -> tuple[timedelta, PredictionType]:
        average = average_travel_time(
            self.history,
            previous.station_id,
            current.station_id,
            cache=self.cache,
            namespace=self.namespace,
            ttl=self.config.cache_ttl,
            max_duration=self.config.max_leg,
        )
        if average is not None:
            return average, PredictionType.AVERAGE

        scheduled = default_travel_time(
            self.train.stoppages,
            previous.station_id,
            current.station_id,
            leg_direction(self.train.direction, index, journey_length),
            is_first_station=index - 1 == 0,
            now=self.now,
            dwell=self.config.dwell,
            max_duration=self.config.max_leg,
            rollover_threshold=self.config.rollover_threshold,
        )
        if scheduled is not None:
            return scheduled, PredictionType.DEFAULT

        return self.config.fallback_travel, PredictionType.DEFAULT

    def walk(
        self, journey: Sequence[Station], start_index: int, start_time: datetime
    ) -> list[Prediction]:
        """Chain predictions from ``journey[start_index]`` to the end."""
        predictions: list[Prediction] = []
        event_time = start_time
        for index in range(max(start_index, 1), len(journey)):
            previous, current = journey[index - 1], journey[index]
            travel, provenance = self.duration(previous, current, index, len(journey))
            predicted = shift(event_time, travel)
            predictions.append(
                Prediction(
                    station_id=current.station_id,
                    station_name=current.station_name,
                    predicted_time=predicted,
                    type=provenance,
                )
            )
            event_time = shift(predicted, self.config.dwell)
        return predictions


def _minutes_late(overdue: timedelta) -> int:
    return max(1, math.ceil(overdue.total_seconds() / 60))


def _parse(value: str, config: PredictionConfig, now: datetime) -> Optional[datetime]:
    return parse_time_to_today(value, now=now, rollover_threshold=config.rollover_threshold)


def predict_journey(
    train: Optional[Train],
    route: Optional[Route],
    status: Optional[DailyTrainStatus],
    history: Sequence[TrainHistoryRecord] = (),
    *,
    now: datetime,
    cache: Optional[TravelTimeCache] = None,
    config: Optional[PredictionConfig] = None,
) -> JourneySnapshot:
    """Classify the train's current state and predict its remaining arrivals.

    ``status`` of ``None`` means nothing has been recorded today. A missing
    train or route, or a train that serves none of its route's stations,
    yields an ``unavailable`` snapshot with no predictions and no warning.
    """
    config = config or PredictionConfig()
    if train is None or route is None:
        return JourneySnapshot(state=JourneyState.UNAVAILABLE, evaluated_at=now)

    journey = tuple(build_full_journey(route.stations, train.stoppages, train.direction))
    if not journey:
        return JourneySnapshot(state=JourneyState.UNAVAILABLE, evaluated_at=now)

    if status is not None and status.lap_completed:
        return JourneySnapshot(
            state=JourneyState.COMPLETED,
            evaluated_at=now,
            journey=journey,
            is_at_final_station=True,
        )

    estimator = _HopEstimator(train=train, history=history, config=config, now=now, cache=cache)
    if status is None or not status.arrivals:
        return _pending(train, journey, estimator, config, now)
    if status.is_at_station:
        return _at_station(train, journey, status, estimator, config, now)
    return _en_route(journey, status, estimator, config, now)


def _pending(
    train: Train,
    journey: tuple[Station, ...],
    estimator: _HopEstimator,
    config: PredictionConfig,
    now: datetime,
) -> JourneySnapshot:
    origin = journey[0]
    stoppage = train.stoppage_for(origin.station_id)
    scheduled = _parse(stoppage.scheduled_time(train.direction), config, now) if stoppage else None

    warning: Optional[str] = None
    if scheduled is None:
        start = now
    elif elapsed(now, scheduled) > timedelta(0):
        warning = (
            "Train is late to begin its journey. "
            f"Scheduled start was {format_clock(scheduled)}."
        )
        start = now
    else:
        start = scheduled

    predictions = [
        Prediction(
            station_id=origin.station_id,
            station_name=origin.station_name,
            predicted_time=start,
            type=PredictionType.DEFAULT,
        ),
        *estimator.walk(journey, 1, start),
    ]
    return JourneySnapshot(
        state=JourneyState.PENDING,
        evaluated_at=now,
        journey=journey,
        predictions=tuple(predictions),
        warning=warning,
    )


def _at_station(
    train: Train,
    journey: tuple[Station, ...],
    status: DailyTrainStatus,
    estimator: _HopEstimator,
    config: PredictionConfig,
    now: datetime,
) -> JourneySnapshot:
    index = len(status.arrivals) - 1
    last = status.arrivals[-1]
    station_name = last.station_name or (
        journey[index].station_name if index < len(journey) else last.station_id
    )
    is_final = index >= len(journey) - 1
    at_turnaround = (
        len(journey) > 1
        and index == turnaround_index(journey)
        and journey[index].station_id == last.station_id
    )

    if is_final:
        return JourneySnapshot(
            state=JourneyState.AT_STATION,
            evaluated_at=now,
            journey=journey,
            current_station=station_name,
            at_station=StationStop(last.station_id, station_name, last.arrived_at, None),
            is_at_final_station=True,
        )

    scheduled_departure = shift(last.arrived_at, config.dwell)
    if at_turnaround:
        stoppage = train.stoppage_for(last.station_id)
        reverse_arrival = (
            _parse(stoppage.scheduled_time(opposite_direction(train.direction)), config, now)
            if stoppage
            else None
        )
        if reverse_arrival is not None:
            scheduled_departure = shift(reverse_arrival, config.dwell)

    warning: Optional[str] = None
    start = scheduled_departure
    overdue = elapsed(now, shift(scheduled_departure, config.dwell))
    if overdue > timedelta(0):
        minutes = _minutes_late(overdue)
        unit = "minute" if minutes == 1 else "minutes"
        warning = f"Train is getting late at {station_name}, by {minutes} {unit}."
        start = now

    return JourneySnapshot(
        state=JourneyState.AT_TURNAROUND if at_turnaround else JourneyState.AT_STATION,
        evaluated_at=now,
        journey=journey,
        predictions=tuple(estimator.walk(journey, index + 1, start)),
        warning=warning,
        current_station=station_name,
        at_station=StationStop(last.station_id, station_name, last.arrived_at, scheduled_departure),
    )


def _en_route(
    journey: tuple[Station, ...],
    status: DailyTrainStatus,
    estimator: _HopEstimator,
    config: PredictionConfig,
    now: datetime,
) -> JourneySnapshot:
    last_departure = status.departures[-1]
    predictions = estimator.walk(journey, len(status.arrivals), last_departure.departed_at)
    if not predictions:
        # Every stop recorded but the lap has not been closed yet.
        return JourneySnapshot(
            state=JourneyState.EN_ROUTE,
            evaluated_at=now,
            journey=journey,
            current_station=last_departure.station_name,
        )

    next_stop = predictions[0]
    overdue = elapsed(now, shift(next_stop.predicted_time, config.dwell))
    warning = RUNNING_LATE_WARNING if overdue > timedelta(0) else None
    return JourneySnapshot(
        state=JourneyState.EN_ROUTE,
        evaluated_at=now,
        journey=journey,
        predictions=tuple(predictions),
        warning=warning,
        current_station=last_departure.station_name,
        current_leg=TravelLeg(
            from_station=last_departure.station_name,
            to_station=next_stop.station_name,
            start_time=last_departure.departed_at,
            end_time=next_stop.predicted_time,
        ),
    )


def build_timeline(
    status: Optional[DailyTrainStatus], snapshot: JourneySnapshot
) -> list[Prediction]:
    """Recorded arrivals (``arrived``) followed by the remaining predictions."""
    arrived = [
        Prediction(
            station_id=a.station_id,
            station_name=a.station_name,
            predicted_time=a.arrived_at,
            type=PredictionType.ARRIVED,
        )
        for a in (status.arrivals if status is not None else ())
    ]
    return [*arrived, *snapshot.predictions]
