"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from train_tracker.config import get_settings
from train_tracker.database import check_database_connection, close_database
from train_tracker.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from train_tracker.routers.admin import router as admin_router
from train_tracker.routers.auth import router as auth_router
from train_tracker.routers.public import router as public_router
from train_tracker.services.prediction.monitor import get_monitor, reset_monitor

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    logger.info("Starting Train Tracker API")

    settings = get_settings()
    if settings.prediction_auto_start:
        await get_monitor().start()

    yield

    monitor = get_monitor()
    if monitor.is_running:
        await monitor.stop()
    reset_monitor()

    logger.info("Shutting down Train Tracker API")
    await close_database()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Live train positions, arrival predictions and network administration",
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(public_router)
    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["meta"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint returning application status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()
        db_healthy = await check_database_connection()

        monitor_status = await get_monitor().get_status()
        monitor_healthy = monitor_status["running"] or not settings.prediction_auto_start

        status = (
            "unhealthy"
            if missing_env
            else "healthy" if (db_healthy and monitor_healthy) else "degraded"
        )

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if settings.prediction_auto_start and not monitor_status["running"]:
            issues.append("Prediction monitor is not running")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": db_healthy,
                "predictionMonitor": {
                    "running": monitor_status["running"],
                    "tickCount": monitor_status["tick_count"],
                    "watchedTrains": monitor_status["watched_trains"],
                    "lastTickAt": monitor_status["last_tick_at"],
                },
            },
            "issues": issues,
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
