"""Glue between the data-access layer and the pure prediction engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from train_tracker.config import Settings

from train_tracker.config import get_settings
from train_tracker.database import get_session_context
from train_tracker.services import repository
from train_tracker.services.prediction.cache import TravelTimeCache, get_travel_time_cache
from train_tracker.services.prediction.engine import (
    JourneySnapshot,
    PredictionConfig,
    predict_journey,
)
from train_tracker.services.prediction.types import (
    DailyTrainStatus,
    Route,
    Train,
    TrainHistoryRecord,
)


@dataclass(frozen=True)
class PredictionInputs:
    train: Optional[Train] = None
    route: Optional[Route] = None
    status: Optional[DailyTrainStatus] = None
    history: tuple[TrainHistoryRecord, ...] = ()


def service_now(settings: Optional[Settings] = None) -> datetime:
    """Current time on the service's local clock."""
    settings = settings or get_settings()
    return datetime.now(settings.tzinfo)


def service_today(settings: Optional[Settings] = None) -> date:
    return service_now(settings).date()


async def load_prediction_inputs(
    session: AsyncSession, train_id: int, today: date, history_days: int
) -> PredictionInputs:
    """Fetch everything the engine needs; missing pieces stay ``None``."""
    train_row = await repository.get_train(session, train_id)
    if train_row is None:
        return PredictionInputs()

    route_row = await repository.get_route(session, train_row.route_id)
    status = await repository.get_daily_status(session, train_id, today)
    history = await repository.get_train_history(session, train_id, today, history_days)
    return PredictionInputs(
        train=repository.train_to_domain(train_row),
        route=repository.route_to_domain(route_row) if route_row is not None else None,
        status=status,
        history=tuple(history),
    )


async def load_inputs_from_database(train_id: int, now: datetime) -> PredictionInputs:
    settings = get_settings()
    async with get_session_context() as session:
        return await load_prediction_inputs(session, train_id, now.date(), settings.history_days)


def compute_snapshot(
    inputs: PredictionInputs,
    *,
    now: datetime,
    cache: Optional[TravelTimeCache] = None,
    config: Optional[PredictionConfig] = None,
) -> JourneySnapshot:
    return predict_journey(
        inputs.train,
        inputs.route,
        inputs.status,
        inputs.history,
        now=now,
        cache=cache if cache is not None else get_travel_time_cache(),
        config=config or PredictionConfig.from_settings(get_settings()),
    )
