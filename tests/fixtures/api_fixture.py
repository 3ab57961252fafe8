"""Helpers for router tests that mock the database session."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock


def row(**kwargs: Any) -> MagicMock:
    mock = MagicMock()
    for key, value in kwargs.items():
        setattr(mock, key, value)
    return mock


def mock_session_ctx() -> tuple[Any, AsyncMock]:
    """Return ``(context_manager, session)`` for patching ``get_session_context``.

    Each request opens exactly one session, so the same context manager
    instance is handed out as the patched function's return value.
    """
    session = AsyncMock()
    session.add = MagicMock()

    @asynccontextmanager
    async def _ctx():
        yield session

    return _ctx(), session
