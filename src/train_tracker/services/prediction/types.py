"""Domain types consumed and produced by the prediction core.

These are plain frozen dataclasses, independent of SQLAlchemy and FastAPI.
The ``from_dict`` constructors accept the camelCase JSON shape stored in the
JSONB columns (``stationId``, ``arrivedAt`` ...) as well as snake_case keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Literal, Mapping, Optional

Direction = Literal["up", "down"]

DIRECTIONS: tuple[str, ...] = ("up", "down")


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime.

    Values without an offset are read as wall-clock time in ``tz`` (UTC when
    not given).
    """
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz or timezone.utc)
    return moment


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def opposite_direction(direction: str) -> Direction:
    return "down" if direction == "up" else "up"


@dataclass(frozen=True)
class Station:
    """A station, referenced everywhere by its opaque ``station_id``."""

    station_id: str
    station_name: str
    station_location: str = ""
    station_location_url: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Station:
        return cls(
            station_id=str(_pick(data, "stationId", "station_id", default="")),
            station_name=str(_pick(data, "stationName", "station_name", default="")),
            station_location=str(_pick(data, "stationLocation", "station_location", default="")),
            station_location_url=str(
                _pick(data, "stationLocationURL", "station_location_url", default="")
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stationId": self.station_id,
            "stationName": self.station_name,
            "stationLocation": self.station_location,
            "stationLocationURL": self.station_location_url,
        }


@dataclass(frozen=True)
class Route:
    """Ordered stations defining the canonical outbound order."""

    id: int
    name: str
    stations: tuple[Station, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Route:
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            stations=tuple(Station.from_dict(s) for s in data.get("stations") or ()),
        )

    def station_name(self, station_id: str) -> str:
        for station in self.stations:
            if station.station_id == station_id:
                return station.station_name
        return "Unknown"


@dataclass(frozen=True)
class TrainStoppage:
    """A scheduled stop with one ``HH:MM`` time per direction of travel."""

    station_id: str
    up_arrival_time: str = ""
    down_arrival_time: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrainStoppage:
        return cls(
            station_id=str(_pick(data, "stationId", "station_id", default="")),
            up_arrival_time=str(_pick(data, "upArrivalTime", "up_arrival_time", default="")),
            down_arrival_time=str(
                _pick(data, "downArrivalTime", "down_arrival_time", default="")
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stationId": self.station_id,
            "upArrivalTime": self.up_arrival_time,
            "downArrivalTime": self.down_arrival_time,
        }

    def scheduled_time(self, direction: str) -> str:
        return self.up_arrival_time if direction == "up" else self.down_arrival_time


@dataclass(frozen=True)
class Train:
    id: int
    name: str
    code: str
    direction: Direction
    route_id: int
    stoppages: tuple[TrainStoppage, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Train:
        direction = str(data.get("direction", "up"))
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            code=str(data.get("code", "")),
            direction="down" if direction == "down" else "up",
            route_id=int(_pick(data, "routeId", "route_id", default=0)),
            stoppages=tuple(TrainStoppage.from_dict(s) for s in data.get("stoppages") or ()),
        )

    def stoppage_for(self, station_id: str) -> Optional[TrainStoppage]:
        for stoppage in self.stoppages:
            if stoppage.station_id == station_id:
                return stoppage
        return None


@dataclass(frozen=True)
class ArrivalRecord:
    id: str
    station_id: str
    station_name: str
    arrived_at: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], tz: Optional[tzinfo] = None) -> ArrivalRecord:
        return cls(
            id=str(data.get("id", "")),
            station_id=str(_pick(data, "stationId", "station_id", default="")),
            station_name=str(_pick(data, "stationName", "station_name", default="")),
            arrived_at=parse_timestamp(_pick(data, "arrivedAt", "arrived_at"), tz),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stationId": self.station_id,
            "stationName": self.station_name,
            "arrivedAt": self.arrived_at.isoformat(),
        }


@dataclass(frozen=True)
class DepartureRecord:
    id: str
    station_id: str
    station_name: str
    departed_at: datetime

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], tz: Optional[tzinfo] = None
    ) -> DepartureRecord:
        return cls(
            id=str(data.get("id", "")),
            station_id=str(_pick(data, "stationId", "station_id", default="")),
            station_name=str(_pick(data, "stationName", "station_name", default="")),
            departed_at=parse_timestamp(_pick(data, "departedAt", "departed_at"), tz),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stationId": self.station_id,
            "stationName": self.station_name,
            "departedAt": self.departed_at.isoformat(),
        }


@dataclass(frozen=True)
class DailyTrainStatus:
    """Per (train, date) aggregate of the day's arrivals and departures.

    Invariant: ``len(departures) <= len(arrivals) <= len(departures) + 1``.
    """

    train_id: int
    date: date
    arrivals: tuple[ArrivalRecord, ...] = ()
    departures: tuple[DepartureRecord, ...] = ()
    lap_completed: bool = False
    last_completed_station_id: Optional[str] = None

    @property
    def is_at_station(self) -> bool:
        return len(self.arrivals) > len(self.departures)

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], tz: Optional[tzinfo] = None
    ) -> DailyTrainStatus:
        return cls(
            train_id=int(_pick(data, "train_id", "trainId", default=0)),
            date=parse_date(data["date"]),
            arrivals=tuple(ArrivalRecord.from_dict(a, tz) for a in data.get("arrivals") or ()),
            departures=tuple(
                DepartureRecord.from_dict(d, tz) for d in data.get("departures") or ()
            ),
            lap_completed=bool(data.get("lap_completed", False)),
            last_completed_station_id=data.get("last_completed_station_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "train_id": self.train_id,
            "date": self.date.isoformat(),
            "lap_completed": self.lap_completed,
            "arrivals": [a.to_dict() for a in self.arrivals],
            "departures": [d.to_dict() for d in self.departures],
            "last_completed_station_id": self.last_completed_station_id,
        }


@dataclass(frozen=True)
class TrainHistoryRecord:
    """A past day's log, read-only input to the travel-time estimator."""

    date: date
    arrivals: tuple[ArrivalRecord, ...] = ()
    departures: tuple[DepartureRecord, ...] = field(default=())

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], tz: Optional[tzinfo] = None
    ) -> TrainHistoryRecord:
        return cls(
            date=parse_date(data["date"]),
            arrivals=tuple(ArrivalRecord.from_dict(a, tz) for a in data.get("arrivals") or ()),
            departures=tuple(
                DepartureRecord.from_dict(d, tz) for d in data.get("departures") or ()
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "arrivals": [a.to_dict() for a in self.arrivals],
            "departures": [d.to_dict() for d in self.departures],
        }


class PredictionType(str, Enum):
    """Provenance of a predicted time."""

    DEFAULT = "default"
    AVERAGE = "average"
    ARRIVED = "arrived"


@dataclass(frozen=True)
class Prediction:
    station_id: str
    station_name: str
    predicted_time: datetime
    type: PredictionType

    def to_dict(self) -> dict[str, Any]:
        return {
            "stationId": self.station_id,
            "stationName": self.station_name,
            "predictedTime": self.predicted_time.isoformat(),
            "type": self.type.value,
        }
