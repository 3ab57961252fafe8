"""Public read endpoints and feedback submission.

Endpoints
---------
GET  /public/stations                       – all stations
GET  /public/routes                         – all routes with ordered stations
GET  /public/trains                         – all trains with stoppages
GET  /public/status/{train_id}              – a day's live status (null if none)
GET  /public/history/{train_id}             – trailing history window
GET  /public/trains/{train_id}/prediction   – journey state and ETA predictions
POST /public/feedback                       – submit feedback
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from train_tracker.config import get_settings
from train_tracker.database import get_session_context
from train_tracker.logging import get_logger
from train_tracker.services import repository
from train_tracker.services.prediction.engine import build_timeline
from train_tracker.services.prediction.monitor import get_monitor
from train_tracker.services.prediction.service import (
    compute_snapshot,
    load_prediction_inputs,
    service_now,
    service_today,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/public", tags=["public"])

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    name: str = Field(default="", max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    reason: Literal["bug", "feature", "general", "other"] = "general"
    message: str = Field(min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Network listings
# ---------------------------------------------------------------------------


@router.get("/stations", summary="List stations")
async def get_stations() -> list[dict[str, Any]]:
    async with get_session_context() as session:
        rows = await repository.list_stations(session)
    return [repository.station_to_dict(r) for r in rows]


@router.get("/routes", summary="List routes")
async def get_routes() -> list[dict[str, Any]]:
    async with get_session_context() as session:
        rows = await repository.list_routes(session)
    return [repository.route_to_dict(r) for r in rows]


@router.get("/trains", summary="List trains")
async def get_trains() -> list[dict[str, Any]]:
    async with get_session_context() as session:
        rows = await repository.list_trains(session)
    return [repository.train_to_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Live status and history
# ---------------------------------------------------------------------------


@router.get(
    "/status/{train_id}",
    summary="Get a train's daily status",
    description="Returns null when nothing has been recorded for the date (default: today).",
)
async def get_status(
    train_id: int,
    day: Annotated[Optional[date], Query(alias="date")] = None,
) -> Optional[dict[str, Any]]:
    day = day or service_today()
    async with get_session_context() as session:
        status = await repository.get_daily_status(session, train_id, day)
    return status.to_dict() if status is not None else None


@router.get("/history/{train_id}", summary="Get a train's recent history")
async def get_history(train_id: int) -> list[dict[str, Any]]:
    settings = get_settings()
    async with get_session_context() as session:
        records = await repository.get_train_history(
            session, train_id, service_today(settings), settings.history_days
        )
    return [r.to_dict() for r in records]


@router.get(
    "/trains/{train_id}/prediction",
    summary="Get journey state and ETA predictions",
    description=(
        "Classifies the train's current state for today and predicts arrival "
        "times for every remaining stop of the round trip."
    ),
)
async def get_prediction(train_id: int) -> dict[str, Any]:
    settings = get_settings()
    now = service_now(settings)
    async with get_session_context() as session:
        inputs = await load_prediction_inputs(session, train_id, now.date(), settings.history_days)

    if inputs.train is None:
        raise HTTPException(status_code=404, detail=f"Train '{train_id}' not found")

    monitor = get_monitor()
    monitor.watch(train_id)
    snapshot = monitor.get_snapshot(train_id) if monitor.is_running else None
    if snapshot is None:
        snapshot = compute_snapshot(inputs, now=now)

    return {
        "train_id": train_id,
        **snapshot.to_dict(),
        "timeline": [p.to_dict() for p in build_timeline(inputs.status, snapshot)],
    }


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


@router.post(
    "/feedback",
    response_model=MessageResponse,
    status_code=201,
    summary="Submit feedback",
)
async def submit_feedback(body: FeedbackRequest) -> dict[str, str]:
    async with get_session_context() as session:
        await repository.create_feedback(
            session,
            user_id=body.user_id,
            name=body.name or None,
            email=body.email,
            reason=body.reason,
            message=body.message,
        )
        await session.commit()
    logger.info("Feedback submitted", reason=body.reason)
    return {"message": "Thank you for your feedback!"}
