"""Admin write path for a train's live daily status.

The pure ``record_*`` / ``complete_lap`` functions take the current status
(or ``None`` for a day with nothing recorded) and return a new one, raising
``StatusTransitionError`` for anything that would break the ordering
invariants the prediction engine relies on:

* ``len(departures) <= len(arrivals) <= len(departures) + 1``
* arrivals follow the round-trip journey order
* a lap closes only after every stop of the journey has an arrival
* a completed lap is final for the day
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from train_tracker.logging import get_logger
from train_tracker.services import repository
from train_tracker.services.prediction.journey import build_full_journey
from train_tracker.services.prediction.types import (
    ArrivalRecord,
    DailyTrainStatus,
    DepartureRecord,
    Station,
)

logger = get_logger(__name__)


class StatusTransitionError(ValueError):
    """Requested change would violate the daily status invariants."""


class TrainNotFoundError(LookupError):
    """Train (or its route) does not exist."""


def _new_record_id() -> str:
    return str(uuid.uuid4())


def record_arrival(
    status: Optional[DailyTrainStatus],
    journey: Sequence[Station],
    station_id: str,
    at: datetime,
    *,
    train_id: int,
    day: date,
) -> DailyTrainStatus:
    """Append an arrival; the day's status is created on the first one."""
    current = status or DailyTrainStatus(train_id=train_id, date=day)
    if current.lap_completed:
        raise StatusTransitionError("Lap already completed for today")
    if current.is_at_station:
        raise StatusTransitionError("Train must depart before arriving at another station")

    index = len(current.arrivals)
    if index >= len(journey):
        raise StatusTransitionError("All stations of the journey already have an arrival")

    expected = journey[index]
    if expected.station_id != station_id:
        raise StatusTransitionError(
            f"Next station in the journey is '{expected.station_id}', not '{station_id}'"
        )
    if current.departures and at < current.departures[-1].departed_at:
        raise StatusTransitionError("Arrival cannot precede the previous departure")

    arrival = ArrivalRecord(
        id=_new_record_id(),
        station_id=expected.station_id,
        station_name=expected.station_name,
        arrived_at=at,
    )
    last_completed = current.last_completed_station_id
    if index == len(journey) - 1:
        last_completed = expected.station_id
    return replace(
        current,
        arrivals=(*current.arrivals, arrival),
        last_completed_station_id=last_completed,
    )


def record_departure(status: Optional[DailyTrainStatus], at: datetime) -> DailyTrainStatus:
    """Close the current stop with a departure."""
    if status is None or not status.is_at_station:
        raise StatusTransitionError("Train is not at a station")
    if status.lap_completed:
        raise StatusTransitionError("Lap already completed for today")

    arrival = status.arrivals[-1]
    if at < arrival.arrived_at:
        raise StatusTransitionError("Departure cannot precede the arrival")

    departure = DepartureRecord(
        id=_new_record_id(),
        station_id=arrival.station_id,
        station_name=arrival.station_name,
        departed_at=at,
    )
    return replace(
        status,
        departures=(*status.departures, departure),
        last_completed_station_id=arrival.station_id,
    )


def complete_lap(
    status: Optional[DailyTrainStatus], journey: Sequence[Station]
) -> DailyTrainStatus:
    """Mark the round trip finished; requires an arrival at every stop."""
    if status is None or len(status.arrivals) < len(journey):
        raise StatusTransitionError("Cannot complete the lap before reaching the final station")
    if status.lap_completed:
        return status
    return replace(
        status,
        lap_completed=True,
        last_completed_station_id=status.arrivals[-1].station_id,
    )


def validate_status(
    status: DailyTrainStatus, journey: Optional[Sequence[Station]] = None
) -> None:
    """Check a whole record submitted through the legacy upsert endpoint.

    Without a journey only the record's internal consistency is checked.
    """
    arrivals, departures = status.arrivals, status.departures
    if not len(departures) <= len(arrivals) <= len(departures) + 1:
        raise StatusTransitionError(
            "Departures must trail arrivals by at most one station"
        )

    if journey is not None:
        if len(arrivals) > len(journey):
            raise StatusTransitionError("More arrivals than stations in the journey")
        for index, record in enumerate(arrivals):
            if record.station_id != journey[index].station_id:
                raise StatusTransitionError(
                    f"Arrival {index + 1} must be at '{journey[index].station_id}', "
                    f"not '{record.station_id}'"
                )
        if status.lap_completed and len(arrivals) < len(journey):
            raise StatusTransitionError(
                "Cannot complete the lap before reaching the final station"
            )

    previous: Optional[datetime] = None
    for index, record in enumerate(arrivals):
        if previous is not None and record.arrived_at < previous:
            raise StatusTransitionError("Arrival cannot precede the previous departure")
        if index < len(departures):
            leaving = departures[index]
            if leaving.station_id != record.station_id:
                raise StatusTransitionError(
                    f"Departure {index + 1} must be from '{record.station_id}', "
                    f"not '{leaving.station_id}'"
                )
            if leaving.departed_at < record.arrived_at:
                raise StatusTransitionError("Departure cannot precede the arrival")
            previous = leaving.departed_at


class DailyStatusService:
    """Loads a train's journey and today's status, applies a transition, saves."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _journey(self, train_id: int) -> list[Station]:
        train_row = await repository.get_train(self._session, train_id)
        if train_row is None:
            raise TrainNotFoundError(f"Train '{train_id}' not found")
        route_row = await repository.get_route(self._session, train_row.route_id)
        if route_row is None:
            raise TrainNotFoundError(f"Route '{train_row.route_id}' not found")
        train = repository.train_to_domain(train_row)
        route = repository.route_to_domain(route_row)
        return build_full_journey(route.stations, train.stoppages, train.direction)

    async def arrive(
        self, train_id: int, station_id: str, at: datetime, day: date
    ) -> DailyTrainStatus:
        journey = await self._journey(train_id)
        status = await repository.get_daily_status(self._session, train_id, day)
        updated = record_arrival(status, journey, station_id, at, train_id=train_id, day=day)
        await repository.save_daily_status(self._session, updated)
        logger.info("Arrival recorded", train_id=train_id, station_id=station_id)
        return updated

    async def depart(self, train_id: int, at: datetime, day: date) -> DailyTrainStatus:
        await self._journey(train_id)
        status = await repository.get_daily_status(self._session, train_id, day)
        updated = record_departure(status, at)
        await repository.save_daily_status(self._session, updated)
        logger.info(
            "Departure recorded",
            train_id=train_id,
            station_id=updated.departures[-1].station_id,
        )
        return updated

    async def complete(self, train_id: int, day: date) -> DailyTrainStatus:
        journey = await self._journey(train_id)
        status = await repository.get_daily_status(self._session, train_id, day)
        updated = complete_lap(status, journey)
        await repository.save_daily_status(self._session, updated)
        logger.info("Lap completed", train_id=train_id, date=day.isoformat())
        return updated

    async def replace_status(self, status: DailyTrainStatus) -> DailyTrainStatus:
        journey = await self._journey(status.train_id)
        validate_status(status, journey)
        return await repository.save_daily_status(self._session, status)
