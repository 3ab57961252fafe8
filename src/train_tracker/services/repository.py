"""Data-access layer over the tracker tables.

Every function takes an open ``AsyncSession``; write helpers flush but leave
the commit to the caller so a request can group several writes.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional, Sequence

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from train_tracker.config import get_settings
from train_tracker.logging import get_logger
from train_tracker.models import DailyStatus, Feedback
from train_tracker.models import Route as RouteRow
from train_tracker.models import Station as StationRow
from train_tracker.models import Train as TrainRow
from train_tracker.services.prediction.types import (
    DailyTrainStatus,
    Route,
    Train,
    TrainHistoryRecord,
)

logger = get_logger(__name__)

FEEDBACK_WINDOWS: dict[str, Optional[timedelta]] = {
    "all": None,
    "today": timedelta(days=0),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


# ---------------------------------------------------------------------------
# Row -> domain / wire conversions
# ---------------------------------------------------------------------------


def station_to_dict(row: StationRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "station_id": row.station_id,
        "station_name": row.station_name,
        "station_location": row.station_location,
        "station_location_url": row.station_location_url,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def route_to_dict(row: RouteRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "stations": list(row.stations or []),
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def train_to_dict(row: TrainRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "code": row.code,
        "direction": row.direction,
        "route_id": row.route_id,
        "stoppages": list(row.stoppages or []),
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def feedback_to_dict(row: Feedback) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "name": row.name,
        "email": row.email,
        "reason": row.reason,
        "message": row.message,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def route_to_domain(row: RouteRow) -> Route:
    return Route.from_dict({"id": row.id, "name": row.name, "stations": row.stations or []})


def train_to_domain(row: TrainRow) -> Train:
    return Train.from_dict(train_to_dict(row))


def status_to_domain(row: DailyStatus) -> DailyTrainStatus:
    return DailyTrainStatus.from_dict(
        {
            "train_id": row.train_id,
            "date": row.date,
            "arrivals": row.arrivals or [],
            "departures": row.departures or [],
            "lap_completed": row.lap_completed,
            "last_completed_station_id": row.last_completed_station_id,
        },
        tz=get_settings().tzinfo,
    )


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


async def list_stations(session: AsyncSession) -> Sequence[StationRow]:
    result = await session.execute(
        select(StationRow).order_by(StationRow.created_at, StationRow.id)
    )
    return result.scalars().all()


async def create_station(session: AsyncSession, **values: Any) -> StationRow:
    row = StationRow(**values)
    session.add(row)
    await session.flush()
    await session.refresh(row)
    return row


async def update_station(session: AsyncSession, pk: int, **values: Any) -> Optional[StationRow]:
    row = await session.get(StationRow, pk)
    if row is None:
        return None
    for key, value in values.items():
        setattr(row, key, value)
    await session.flush()
    return row


async def delete_station(session: AsyncSession, pk: int) -> bool:
    result = await session.execute(delete(StationRow).where(StationRow.id == pk))
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


async def list_routes(session: AsyncSession) -> Sequence[RouteRow]:
    result = await session.execute(select(RouteRow).order_by(RouteRow.created_at, RouteRow.id))
    return result.scalars().all()


async def get_route(session: AsyncSession, route_id: int) -> Optional[RouteRow]:
    return await session.get(RouteRow, route_id)


async def create_route(
    session: AsyncSession, name: str, stations: list[dict[str, Any]]
) -> RouteRow:
    row = RouteRow(name=name, stations=stations)
    session.add(row)
    await session.flush()
    await session.refresh(row)
    return row


async def update_route(session: AsyncSession, route_id: int, **values: Any) -> Optional[RouteRow]:
    row = await session.get(RouteRow, route_id)
    if row is None:
        return None
    for key, value in values.items():
        setattr(row, key, value)
    await session.flush()
    return row


async def delete_route(session: AsyncSession, route_id: int) -> bool:
    result = await session.execute(delete(RouteRow).where(RouteRow.id == route_id))
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Trains
# ---------------------------------------------------------------------------


async def list_trains(session: AsyncSession) -> Sequence[TrainRow]:
    result = await session.execute(select(TrainRow).order_by(TrainRow.created_at, TrainRow.id))
    return result.scalars().all()


async def get_train(session: AsyncSession, train_id: int) -> Optional[TrainRow]:
    return await session.get(TrainRow, train_id)


async def create_train(session: AsyncSession, **values: Any) -> TrainRow:
    row = TrainRow(**values)
    session.add(row)
    await session.flush()
    await session.refresh(row)
    return row


async def update_train(session: AsyncSession, train_id: int, **values: Any) -> Optional[TrainRow]:
    row = await session.get(TrainRow, train_id)
    if row is None:
        return None
    for key, value in values.items():
        setattr(row, key, value)
    await session.flush()
    return row


async def delete_train(session: AsyncSession, train_id: int) -> bool:
    result = await session.execute(delete(TrainRow).where(TrainRow.id == train_id))
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Daily status and history
# ---------------------------------------------------------------------------


async def get_daily_status(
    session: AsyncSession, train_id: int, day: date
) -> Optional[DailyTrainStatus]:
    """Status for ``(train_id, day)`` or ``None`` when nothing was recorded."""
    result = await session.execute(
        select(DailyStatus).where(DailyStatus.train_id == train_id, DailyStatus.date == day)
    )
    row = result.scalar_one_or_none()
    return status_to_domain(row) if row is not None else None


async def save_daily_status(session: AsyncSession, status: DailyTrainStatus) -> DailyTrainStatus:
    """Upsert the whole record keyed by ``(train_id, date)``."""
    payload = status.to_dict()
    values = {
        "train_id": status.train_id,
        "date": status.date,
        "lap_completed": status.lap_completed,
        "arrivals": payload["arrivals"],
        "departures": payload["departures"],
        "last_completed_station_id": status.last_completed_station_id,
    }
    stmt = insert(DailyStatus).values(**values)
    stmt = stmt.on_conflict_do_update(
        constraint="uq_daily_status_train_date",
        set_={
            "lap_completed": stmt.excluded.lap_completed,
            "arrivals": stmt.excluded.arrivals,
            "departures": stmt.excluded.departures,
            "last_completed_station_id": stmt.excluded.last_completed_station_id,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)
    logger.info(
        "Daily status saved",
        train_id=status.train_id,
        date=status.date.isoformat(),
        arrivals=len(status.arrivals),
        departures=len(status.departures),
        lap_completed=status.lap_completed,
    )
    return status


async def get_train_history(
    session: AsyncSession, train_id: int, today: date, days: int = 7
) -> list[TrainHistoryRecord]:
    """Records from the trailing ``days`` window up to and including today, newest first."""
    since = today - timedelta(days=days)
    result = await session.execute(
        select(DailyStatus)
        .where(
            DailyStatus.train_id == train_id,
            DailyStatus.date >= since,
            DailyStatus.date <= today,
        )
        .order_by(DailyStatus.date.desc())
    )
    tz = get_settings().tzinfo
    return [
        TrainHistoryRecord.from_dict(
            {"date": row.date, "arrivals": row.arrivals or [], "departures": row.departures or []},
            tz,
        )
        for row in result.scalars().all()
    ]


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


async def create_feedback(session: AsyncSession, **values: Any) -> Feedback:
    row = Feedback(**values)
    session.add(row)
    await session.flush()
    return row


def _feedback_query(search: Optional[str], window: str, now: datetime) -> Select[Any]:
    query = select(Feedback)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Feedback.name.ilike(pattern),
                Feedback.email.ilike(pattern),
                Feedback.message.ilike(pattern),
            )
        )
    span = FEEDBACK_WINDOWS.get(window)
    if span is not None:
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        query = query.where(Feedback.created_at >= start_of_today - span)
    return query


async def list_feedback(
    session: AsyncSession,
    *,
    page: int,
    limit: int,
    search: Optional[str],
    window: str,
    now: datetime,
) -> tuple[Sequence[Feedback], int]:
    """Newest-first page of feedback plus the total matching count."""
    query = _feedback_query(search, window, now)
    count_result = await session.execute(select(func.count()).select_from(query.subquery()))
    total = int(count_result.scalar_one())

    result = await session.execute(
        query.order_by(Feedback.created_at.desc()).limit(limit).offset((page - 1) * limit)
    )
    return result.scalars().all(), total


async def update_feedback_status(
    session: AsyncSession, feedback_id: str, status: str
) -> Optional[Feedback]:
    row = await session.get(Feedback, feedback_id)
    if row is None:
        return None
    row.status = status
    await session.flush()
    return row


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def _count(session: AsyncSession, query: Select[Any]) -> int:
    result = await session.execute(select(func.count()).select_from(query.subquery()))
    return int(result.scalar_one())


async def dashboard_stats(session: AsyncSession, today: date) -> dict[str, int]:
    """Headline counts for the admin dashboard."""
    todays = select(DailyStatus).where(DailyStatus.date == today)
    return {
        "stations": await _count(session, select(StationRow)),
        "routes": await _count(session, select(RouteRow)),
        "trains": await _count(session, select(TrainRow)),
        "trains_running_today": await _count(
            session, todays.where(DailyStatus.lap_completed.is_(False))
        ),
        "trains_completed_today": await _count(
            session, todays.where(DailyStatus.lap_completed.is_(True))
        ),
        "new_feedback": await _count(session, select(Feedback).where(Feedback.status == "new")),
    }
