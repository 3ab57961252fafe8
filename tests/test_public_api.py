"""Tests for the public endpoints.

GET  /public/stations | routes | trains
GET  /public/status/{train_id}
GET  /public/history/{train_id}
GET  /public/trains/{train_id}/prediction
POST /public/feedback

All tests mock the database session so no live DB is needed.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from train_tracker.services.prediction.monitor import get_monitor
from train_tracker.services.prediction.service import PredictionInputs

from fixtures.api_fixture import mock_session_ctx, row
from fixtures.network_fixture import (
    DAY,
    arrival,
    at,
    departure,
    history_day,
    make_route,
    make_status,
    make_train,
)

_PATCH_SESSION = "train_tracker.routers.public.get_session_context"
_REPO = "train_tracker.services.repository"


class TestNetworkListings:
    @pytest.mark.asyncio
    async def test_list_stations(self, client: AsyncClient) -> None:
        rows = [
            row(
                id=1,
                station_id="A",
                station_name="Alder",
                station_location="North bank",
                station_location_url=None,
                created_at=at(6, 0),
            )
        ]
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.list_stations", AsyncMock(return_value=rows)),
        ):
            response = await client.get("/public/stations")

        assert response.status_code == 200
        data = response.json()
        assert data == [
            {
                "id": 1,
                "station_id": "A",
                "station_name": "Alder",
                "station_location": "North bank",
                "station_location_url": None,
                "created_at": at(6, 0).isoformat(),
            }
        ]

    @pytest.mark.asyncio
    async def test_list_routes(self, client: AsyncClient) -> None:
        stations = [s.to_dict() for s in make_route().stations]
        rows = [row(id=1, name="Riverside Line", stations=stations, created_at=None)]
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.list_routes", AsyncMock(return_value=rows)),
        ):
            response = await client.get("/public/routes")

        assert response.status_code == 200
        route = response.json()[0]
        assert route["name"] == "Riverside Line"
        assert [s["stationId"] for s in route["stations"]] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_list_trains(self, client: AsyncClient) -> None:
        stoppages = [s.to_dict() for s in make_train().stoppages]
        rows = [
            row(
                id=7,
                name="Morning Express",
                code="ME-7",
                direction="up",
                route_id=1,
                stoppages=stoppages,
                created_at=None,
            )
        ]
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.list_trains", AsyncMock(return_value=rows)),
        ):
            response = await client.get("/public/trains")

        assert response.status_code == 200
        train = response.json()[0]
        assert train["code"] == "ME-7"
        assert train["stoppages"][0] == {
            "stationId": "A",
            "upArrivalTime": "08:00",
            "downArrivalTime": "09:10",
        }


class TestStatusAndHistory:
    @pytest.mark.asyncio
    async def test_status_for_date(self, client: AsyncClient) -> None:
        status = make_status([arrival("A", at(8, 0))], [departure("A", at(8, 5))])
        get_status = AsyncMock(return_value=status)
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.get_daily_status", get_status),
        ):
            response = await client.get("/public/status/7", params={"date": DAY.isoformat()})

        assert response.status_code == 200
        data = response.json()
        assert data["train_id"] == 7
        assert data["date"] == DAY.isoformat()
        assert data["arrivals"][0]["stationId"] == "A"
        assert data["departures"][0]["departedAt"] == at(8, 5).isoformat()
        assert get_status.await_args.args[1:] == (7, DAY)

    @pytest.mark.asyncio
    async def test_status_absent_returns_null(self, client: AsyncClient) -> None:
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.get_daily_status", AsyncMock(return_value=None)),
        ):
            response = await client.get("/public/status/7")

        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_invalid_date_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/public/status/7", params={"date": "yesterday"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient) -> None:
        yesterday = DAY - timedelta(days=1)
        records = [history_day(yesterday, ("A", at(8, 0, day=yesterday)))]
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.get_train_history", AsyncMock(return_value=records)),
        ):
            response = await client.get("/public/history/7")

        assert response.status_code == 200
        data = response.json()
        assert data[0]["date"] == yesterday.isoformat()
        assert data[0]["arrivals"][0]["stationId"] == "A"


class TestPrediction:
    @pytest.mark.asyncio
    async def test_pending_prediction_with_timeline(self, client: AsyncClient) -> None:
        inputs = PredictionInputs(train=make_train(), route=make_route())
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(
                "train_tracker.routers.public.load_prediction_inputs",
                AsyncMock(return_value=inputs),
            ),
            patch("train_tracker.routers.public.service_now", MagicMock(return_value=at(7, 30))),
        ):
            response = await client.get("/public/trains/7/prediction")

        assert response.status_code == 200
        data = response.json()
        assert data["train_id"] == 7
        assert data["state"] == "pending"
        assert data["label"] == "Pending Departure"
        assert data["warning"] is None
        assert [p["stationId"] for p in data["predictions"]] == ["A", "B", "C", "B", "A"]
        assert len(data["timeline"]) == 5
        assert 7 in get_monitor().watched

    @pytest.mark.asyncio
    async def test_timeline_includes_recorded_arrivals(self, client: AsyncClient) -> None:
        status = make_status([arrival("A", at(8, 0))])
        inputs = PredictionInputs(train=make_train(), route=make_route(), status=status)
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(
                "train_tracker.routers.public.load_prediction_inputs",
                AsyncMock(return_value=inputs),
            ),
            patch("train_tracker.routers.public.service_now", MagicMock(return_value=at(8, 2))),
        ):
            response = await client.get("/public/trains/7/prediction")

        data = response.json()
        assert data["state"] == "at_station"
        assert data["atStation"]["stationId"] == "A"
        assert data["timeline"][0]["type"] == "arrived"
        assert [p["stationId"] for p in data["timeline"]] == ["A", "B", "C", "B", "A"]

    @pytest.mark.asyncio
    async def test_unknown_train_is_404(self, client: AsyncClient) -> None:
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(
                "train_tracker.routers.public.load_prediction_inputs",
                AsyncMock(return_value=PredictionInputs()),
            ),
        ):
            response = await client.get("/public/trains/99/prediction")

        assert response.status_code == 404
        assert 99 not in get_monitor().watched


class TestFeedback:
    @pytest.mark.asyncio
    async def test_submit_feedback(self, client: AsyncClient) -> None:
        create = AsyncMock()
        ctx, session = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(f"{_REPO}.create_feedback", create),
        ):
            response = await client.post(
                "/public/feedback",
                json={
                    "name": "Sam",
                    "email": "sam@example.com",
                    "reason": "bug",
                    "message": "Prediction for Birch looked off.",
                },
            )

        assert response.status_code == 201
        assert response.json() == {"message": "Thank you for your feedback!"}
        kwargs = create.await_args.kwargs
        assert kwargs["reason"] == "bug"
        assert kwargs["email"] == "sam@example.com"
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_reason_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/public/feedback",
            json={"email": "sam@example.com", "reason": "rant", "message": "hi"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/public/feedback",
            json={"email": "not-an-email", "reason": "general", "message": "hi"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/public/feedback",
            json={"email": "sam@example.com", "reason": "general", "message": ""},
        )
        assert response.status_code == 422
