"""Tests for /auth endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from train_tracker.services.auth import AuthenticationError, Principal, RegistrationError

from fixtures.api_fixture import mock_session_ctx, row

_PATCH_SESSION = "train_tracker.routers.auth.get_session_context"


class TestRegister:
    @pytest.mark.asyncio
    async def test_register(self, client: AsyncClient) -> None:
        register = AsyncMock()
        ctx, session = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch("train_tracker.routers.auth.register_user", register),
        ):
            response = await client.post(
                "/auth/register", json={"email": "rider@example.com", "password": "s3cret!"}
            )

        assert response.status_code == 201
        register.assert_awaited_once_with(session, "rider@example.com", "s3cret!")
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient) -> None:
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(
                "train_tracker.routers.auth.register_user",
                AsyncMock(side_effect=RegistrationError("duplicate")),
            ),
        ):
            response = await client.post(
                "/auth/register", json={"email": "rider@example.com", "password": "s3cret!"}
            )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/auth/register", json={"email": "rider@example.com", "password": "123"}
        )
        assert response.status_code == 422


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_returns_token(self, client: AsyncClient) -> None:
        user = row(id="u1", email="rider@example.com", role="admin")
        ctx, session = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch("train_tracker.routers.auth.authenticate", AsyncMock(return_value=user)),
            patch(
                "train_tracker.routers.auth.issue_token",
                AsyncMock(return_value=row(token="tok-123")),
            ),
        ):
            response = await client.post(
                "/auth/login", json={"email": "rider@example.com", "password": "s3cret!"}
            )

        assert response.status_code == 200
        data = response.json()
        assert data["token"] == "tok-123"
        assert data["user"] == {"id": "u1", "email": "rider@example.com", "role": "admin"}
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_credentials(self, client: AsyncClient) -> None:
        ctx, _ = mock_session_ctx()
        with (
            patch(_PATCH_SESSION, return_value=ctx),
            patch(
                "train_tracker.routers.auth.authenticate",
                AsyncMock(side_effect=AuthenticationError("Invalid email or password")),
            ),
        ):
            response = await client.post(
                "/auth/login", json={"email": "rider@example.com", "password": "wrong-pw"}
            )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid email or password"


class TestMe:
    @pytest.mark.asyncio
    async def test_me_with_valid_token(self, client: AsyncClient) -> None:
        principal = Principal(user_id="u1", email="rider@example.com", role="user")
        ctx, _ = mock_session_ctx()
        with (
            patch("train_tracker.routers.deps.get_session_context", return_value=ctx),
            patch(
                "train_tracker.routers.deps.principal_for_token",
                AsyncMock(return_value=principal),
            ) as resolve,
        ):
            response = await client.get("/auth/me", headers={"Authorization": "Bearer tok-123"})

        assert response.status_code == 200
        assert response.json() == {"id": "u1", "email": "rider@example.com", "role": "user"}
        assert resolve.await_args.args[1] == "tok-123"

    @pytest.mark.asyncio
    async def test_me_without_token(self, client: AsyncClient) -> None:
        response = await client.get("/auth/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me_with_expired_token(self, client: AsyncClient) -> None:
        ctx, _ = mock_session_ctx()
        with (
            patch("train_tracker.routers.deps.get_session_context", return_value=ctx),
            patch(
                "train_tracker.routers.deps.principal_for_token",
                AsyncMock(side_effect=AuthenticationError("Token expired")),
            ),
        ):
            response = await client.get("/auth/me", headers={"Authorization": "Bearer old"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"
