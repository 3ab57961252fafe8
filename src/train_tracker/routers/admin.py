"""Admin routes: network CRUD, live status writes, feedback triage, dashboard.

Every endpoint requires a signed-in user with the ``admin`` role.
"""

from __future__ import annotations

import uuid
import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import IntegrityError

from train_tracker.config import get_settings
from train_tracker.database import get_session_context
from train_tracker.logging import get_logger
from train_tracker.routers.deps import require_admin
from train_tracker.services import repository
from train_tracker.services.daily_status import (
    DailyStatusService,
    StatusTransitionError,
    TrainNotFoundError,
)
from train_tracker.services.prediction.monitor import get_monitor
from train_tracker.services.prediction.types import DailyTrainStatus
from train_tracker.services.prediction.service import service_now, service_today

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

TIME_PATTERN = r"^$|^([01]?\d|2[0-3]):[0-5]\d$"


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class StationIn(BaseModel):
    """Request body for creating or replacing a station."""

    model_config = ConfigDict(populate_by_name=True)

    station_id: Optional[str] = Field(
        default=None,
        alias="stationId",
        max_length=64,
        description="Public station identifier. Generated when omitted.",
    )
    station_name: str = Field(alias="stationName", min_length=1, max_length=255)
    station_location: Optional[str] = Field(default=None, alias="stationLocation")
    station_location_url: Optional[str] = Field(default=None, alias="stationLocationURL")


class StationPatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    station_name: Optional[str] = Field(default=None, alias="stationName", min_length=1)
    station_location: Optional[str] = Field(default=None, alias="stationLocation")
    station_location_url: Optional[str] = Field(default=None, alias="stationLocationURL")


class RouteStation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    station_id: str = Field(alias="stationId", min_length=1)
    station_name: str = Field(alias="stationName", min_length=1)
    station_location: Optional[str] = Field(default=None, alias="stationLocation")
    station_location_url: Optional[str] = Field(default=None, alias="stationLocationURL")


def _unique_station_ids(items: Optional[List[RouteStation]]) -> Optional[List[RouteStation]]:
    if items is None:
        return items
    seen = [item.station_id for item in items]
    if len(seen) != len(set(seen)):
        raise ValueError("A station may appear only once")
    return items


class RouteIn(BaseModel):
    """Request body for creating a route. Station order is travel order."""

    name: str = Field(min_length=1, max_length=255)
    stations: List[RouteStation] = Field(default_factory=list)

    @field_validator("stations")
    @classmethod
    def check_stations(cls, value: Any) -> Any:
        return _unique_station_ids(value)


class RoutePatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    stations: Optional[List[RouteStation]] = None

    @field_validator("stations")
    @classmethod
    def check_stations(cls, value: Any) -> Any:
        return _unique_station_ids(value)


class StoppageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    station_id: str = Field(alias="stationId", min_length=1)
    up_arrival_time: str = Field(default="", alias="upArrivalTime", pattern=TIME_PATTERN)
    down_arrival_time: str = Field(default="", alias="downArrivalTime", pattern=TIME_PATTERN)


class TrainIn(BaseModel):
    """Request body for creating a train."""

    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=64)
    direction: Literal["up", "down"] = "up"
    route_id: int
    stoppages: List[StoppageIn] = Field(default_factory=list)


class TrainPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    direction: Optional[Literal["up", "down"]] = None
    route_id: Optional[int] = None
    stoppages: Optional[List[StoppageIn]] = None


class StatusUpdateRequest(BaseModel):
    """Whole-record upsert of a train's status for one day."""

    train_id: int
    date: Optional[dt.date] = Field(default=None, description="Defaults to today.")
    lap_completed: bool = False
    arrivals: List[Dict[str, Any]] = Field(default_factory=list)
    departures: List[Dict[str, Any]] = Field(default_factory=list)
    last_completed_station_id: Optional[str] = None


class ArrivalRequest(BaseModel):
    station_id: str = Field(min_length=1)
    arrived_at: Optional[datetime] = Field(default=None, description="Defaults to now.")


class DepartureRequest(BaseModel):
    departed_at: Optional[datetime] = Field(default=None, description="Defaults to now.")


class FeedbackStatusRequest(BaseModel):
    status: Literal["new", "read", "archived"]


def _patch_values(body: BaseModel) -> Dict[str, Any]:
    values = body.model_dump(exclude_unset=True, by_alias=False)
    return {k: v for k, v in values.items() if v is not None}


def _aware(moment: Optional[datetime]) -> datetime:
    settings = get_settings()
    if moment is None:
        return service_now(settings)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=settings.tzinfo)
    return moment


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


@router.post("/stations", status_code=201, summary="Create a station")
async def create_station(body: StationIn) -> Dict[str, Any]:
    values = body.model_dump()
    values["station_id"] = values["station_id"] or str(uuid.uuid4())
    async with get_session_context() as session:
        try:
            row = await repository.create_station(session, **values)
            await session.commit()
        except IntegrityError as exc:
            raise HTTPException(
                status_code=409, detail=f"Station '{values['station_id']}' already exists"
            ) from exc
        return repository.station_to_dict(row)


@router.put("/stations/{pk}", summary="Update a station")
async def update_station(pk: int, body: StationPatch) -> Dict[str, Any]:
    async with get_session_context() as session:
        row = await repository.update_station(session, pk, **_patch_values(body))
        if row is None:
            raise HTTPException(status_code=404, detail=f"Station '{pk}' not found")
        await session.commit()
        return repository.station_to_dict(row)


@router.delete("/stations/{pk}", summary="Delete a station")
async def delete_station(pk: int) -> Dict[str, str]:
    async with get_session_context() as session:
        if not await repository.delete_station(session, pk):
            raise HTTPException(status_code=404, detail=f"Station '{pk}' not found")
        await session.commit()
    return {"message": "Station deleted"}


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/routes", status_code=201, summary="Create a route")
async def create_route(body: RouteIn) -> Dict[str, Any]:
    stations = [s.model_dump(by_alias=True) for s in body.stations]
    async with get_session_context() as session:
        row = await repository.create_route(session, body.name, stations)
        await session.commit()
        return repository.route_to_dict(row)


@router.put("/routes/{route_id}", summary="Update a route")
async def update_route(route_id: int, body: RoutePatch) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if body.name is not None:
        values["name"] = body.name
    if body.stations is not None:
        values["stations"] = [s.model_dump(by_alias=True) for s in body.stations]

    async with get_session_context() as session:
        row = await repository.update_route(session, route_id, **values)
        if row is None:
            raise HTTPException(status_code=404, detail=f"Route '{route_id}' not found")
        await session.commit()
        return repository.route_to_dict(row)


@router.delete("/routes/{route_id}", summary="Delete a route and its trains")
async def delete_route(route_id: int) -> Dict[str, str]:
    async with get_session_context() as session:
        if not await repository.delete_route(session, route_id):
            raise HTTPException(status_code=404, detail=f"Route '{route_id}' not found")
        await session.commit()
    return {"message": "Route deleted"}


# ---------------------------------------------------------------------------
# Trains
# ---------------------------------------------------------------------------


@router.post("/trains", status_code=201, summary="Create a train")
async def create_train(body: TrainIn) -> Dict[str, Any]:
    async with get_session_context() as session:
        if await repository.get_route(session, body.route_id) is None:
            raise HTTPException(status_code=400, detail=f"Route '{body.route_id}' not found")
        row = await repository.create_train(
            session,
            name=body.name,
            code=body.code,
            direction=body.direction,
            route_id=body.route_id,
            stoppages=[s.model_dump(by_alias=True) for s in body.stoppages],
        )
        await session.commit()
        return repository.train_to_dict(row)


@router.put("/trains/{train_id}", summary="Update a train")
async def update_train(train_id: int, body: TrainPatch) -> Dict[str, Any]:
    values = _patch_values(body)
    if body.stoppages is not None:
        values["stoppages"] = [s.model_dump(by_alias=True) for s in body.stoppages]

    async with get_session_context() as session:
        if body.route_id is not None and await repository.get_route(session, body.route_id) is None:
            raise HTTPException(status_code=400, detail=f"Route '{body.route_id}' not found")
        row = await repository.update_train(session, train_id, **values)
        if row is None:
            raise HTTPException(status_code=404, detail=f"Train '{train_id}' not found")
        await session.commit()
        result = repository.train_to_dict(row)

    await get_monitor().notify(train_id)
    return result


@router.delete("/trains/{train_id}", summary="Delete a train")
async def delete_train(train_id: int) -> Dict[str, str]:
    async with get_session_context() as session:
        if not await repository.delete_train(session, train_id):
            raise HTTPException(status_code=404, detail=f"Train '{train_id}' not found")
        await session.commit()
    get_monitor().unwatch(train_id)
    return {"message": "Train deleted"}


# ---------------------------------------------------------------------------
# Live daily status
# ---------------------------------------------------------------------------


async def _apply_transition(train_id: int, action: str, **kwargs: Any) -> Dict[str, Any]:
    async with get_session_context() as session:
        service = DailyStatusService(session)
        try:
            status: DailyTrainStatus = await getattr(service, action)(train_id, **kwargs)
        except TrainNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except StatusTransitionError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        await session.commit()

    await get_monitor().notify(train_id)
    return status.to_dict()


@router.post(
    "/status/update",
    summary="Replace a train's daily status",
    description=(
        "Upserts the whole record for (train_id, date). "
        "Arrivals and departures are replaced."
    ),
)
async def update_status(body: StatusUpdateRequest) -> Dict[str, Any]:
    settings = get_settings()
    try:
        status = DailyTrainStatus.from_dict(
            {
                "train_id": body.train_id,
                "date": body.date or service_today(settings),
                "lap_completed": body.lap_completed,
                "arrivals": body.arrivals,
                "departures": body.departures,
                "last_completed_station_id": body.last_completed_station_id,
            },
            tz=settings.tzinfo,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=f"Invalid status record: {exc}") from exc

    async with get_session_context() as session:
        try:
            await DailyStatusService(session).replace_status(status)
        except TrainNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except StatusTransitionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await session.commit()

    await get_monitor().notify(body.train_id)
    return status.to_dict()


@router.post("/status/{train_id}/arrivals", summary="Record an arrival")
async def record_arrival(train_id: int, body: ArrivalRequest) -> Dict[str, Any]:
    return await _apply_transition(
        train_id,
        "arrive",
        station_id=body.station_id,
        at=_aware(body.arrived_at),
        day=service_today(),
    )


@router.post("/status/{train_id}/departures", summary="Record a departure")
async def record_departure(train_id: int, body: DepartureRequest) -> Dict[str, Any]:
    return await _apply_transition(
        train_id, "depart", at=_aware(body.departed_at), day=service_today()
    )


@router.post("/status/{train_id}/complete", summary="Mark today's lap completed")
async def complete_lap(train_id: int) -> Dict[str, Any]:
    return await _apply_transition(train_id, "complete", day=service_today())


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


@router.get("/feedback", summary="List feedback")
async def list_feedback(
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    search: Optional[str] = Query(default=None, max_length=255),
    filter: Literal["all", "today", "week", "month"] = Query(default="all"),
) -> Dict[str, Any]:
    settings = get_settings()
    limit = min(limit or settings.default_page_size, settings.max_page_size)
    async with get_session_context() as session:
        rows, total = await repository.list_feedback(
            session,
            page=page,
            limit=limit,
            search=search,
            window=filter,
            now=service_now(settings),
        )
    return {
        "feedback": [repository.feedback_to_dict(r) for r in rows],
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit,
    }


@router.patch("/feedback/{feedback_id}/status", summary="Update feedback status")
async def update_feedback_status(feedback_id: str, body: FeedbackStatusRequest) -> Dict[str, Any]:
    async with get_session_context() as session:
        row = await repository.update_feedback_status(session, feedback_id, body.status)
        if row is None:
            raise HTTPException(status_code=404, detail=f"Feedback '{feedback_id}' not found")
        await session.commit()
        return repository.feedback_to_dict(row)


# ---------------------------------------------------------------------------
# Dashboard and prediction monitor
# ---------------------------------------------------------------------------


@router.get("/dashboard/stats", summary="Dashboard headline counts")
async def dashboard_stats() -> Dict[str, int]:
    async with get_session_context() as session:
        return await repository.dashboard_stats(session, service_today())


@router.get("/predictions/monitor", summary="Prediction monitor status")
async def monitor_status() -> Dict[str, Any]:
    return await get_monitor().get_status()


@router.post(
    "/predictions/run-once",
    summary="Refresh all watched predictions now",
    description="Runs a single monitor tick regardless of whether the background loop is running.",
)
async def run_predictions_once() -> Dict[str, Any]:
    report = await get_monitor().run_once()
    logger.info("Manual prediction tick", tick_id=report["tick_id"], trains=len(report["trains"]))
    return report
