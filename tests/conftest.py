"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Generator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from train_tracker.main import app
from train_tracker.routers.deps import require_admin
from train_tracker.services.auth import Principal
from train_tracker.services.prediction.cache import reset_travel_time_cache
from train_tracker.services.prediction.monitor import reset_monitor

ADMIN = Principal(
    user_id="00000000-0000-0000-0000-00000000a001",
    email="admin@example.com",
    role="admin",
)


@pytest.fixture(autouse=True)
def _reset_singletons() -> Generator[None, None, None]:
    """Fresh monitor and travel-time cache for every test."""
    reset_monitor()
    reset_travel_time_cache()
    yield
    reset_monitor()
    reset_travel_time_cache()


@pytest.fixture
def mock_db_connection() -> Any:
    """Mock database connection check."""
    with patch("train_tracker.main.check_database_connection", new_callable=AsyncMock) as mock:
        mock.return_value = True
        yield mock


@pytest.fixture
async def client(mock_db_connection: Any) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def admin_client(client: AsyncClient) -> AsyncGenerator[AsyncClient, None]:
    """Client whose requests pass the admin role check."""
    app.dependency_overrides[require_admin] = lambda: ADMIN
    try:
        yield client
    finally:
        app.dependency_overrides.pop(require_admin, None)
