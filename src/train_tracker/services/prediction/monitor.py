"""Background re-evaluation of journey snapshots on a coarse timer."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import suppress
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from train_tracker.config import get_settings
from train_tracker.logging import get_logger
from train_tracker.services.prediction.engine import JourneySnapshot
from train_tracker.services.prediction.service import (
    PredictionInputs,
    compute_snapshot,
    load_inputs_from_database,
    service_now,
)

logger = get_logger(__name__)

InputLoader = Callable[[int, datetime], Awaitable[PredictionInputs]]


class PredictionMonitor:
    """Keeps a fresh snapshot for every watched train.

    Each tick recomputes every snapshot from scratch; a stored snapshot is
    replaced only when the outcome changed.

    Usage:
        monitor = PredictionMonitor()
        monitor.watch(train_id)
        await monitor.start()   # launches background task
        await monitor.stop()    # cancels background task

        # Or run a single tick:
        report = await monitor.run_once()
    """

    def __init__(
        self,
        loader: Optional[InputLoader] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        settings = get_settings()
        self._interval = settings.prediction_refresh_interval_sec
        self._loader: InputLoader = loader or load_inputs_from_database
        self._clock = clock or (lambda: service_now(settings))

        self._watched: set[int] = set()
        self._snapshots: dict[int, JourneySnapshot] = {}
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._tick_count = 0
        self._update_count = 0
        self._last_tick_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def update_count(self) -> int:
        return self._update_count

    @property
    def watched(self) -> frozenset[int]:
        return frozenset(self._watched)

    def watch(self, train_id: int) -> None:
        self._watched.add(train_id)

    def unwatch(self, train_id: int) -> None:
        self._watched.discard(train_id)
        self._snapshots.pop(train_id, None)

    def get_snapshot(self, train_id: int) -> Optional[JourneySnapshot]:
        return self._snapshots.get(train_id)

    async def start(self) -> None:
        """Start the background refresh loop."""
        if self._running:
            logger.warning("Prediction monitor already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info("Prediction monitor started", interval_sec=self._interval)

    async def stop(self) -> None:
        """Stop the background refresh loop."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Prediction monitor stopped")

    async def refresh(self, train_id: int, now: Optional[datetime] = None) -> JourneySnapshot:
        """Recompute one train's snapshot and store it if the outcome changed."""
        now = now or self._clock()
        inputs = await self._loader(train_id, now)
        snapshot = compute_snapshot(inputs, now=now)

        previous = self._snapshots.get(train_id)
        if previous is not None and snapshot.same_outcome(previous):
            return previous

        self._snapshots[train_id] = snapshot
        self._update_count += 1
        logger.debug(
            "Snapshot updated",
            train_id=train_id,
            state=snapshot.state.value,
            predictions=len(snapshot.predictions),
            warning=snapshot.warning,
        )
        return snapshot

    async def notify(self, train_id: int) -> None:
        """Input data for ``train_id`` changed; recompute now if watched."""
        if train_id not in self._watched:
            return
        try:
            await self.refresh(train_id)
        except Exception as exc:
            logger.error("Snapshot refresh after update failed", train_id=train_id, exc_info=exc)

    async def run_once(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Execute a single tick across all watched trains.

        Returns:
            Report dict with a per-train outcome: updated, unchanged or error.
        """
        tick_id = str(uuid.uuid4())[:8]
        now = now or self._clock()
        self._tick_count += 1
        self._last_tick_at = now

        report: dict[str, Any] = {
            "tick_id": tick_id,
            "tick_count": self._tick_count,
            "started_at": now.isoformat(),
            "trains": {},
        }

        for train_id in sorted(self._watched):
            before = self._snapshots.get(train_id)
            try:
                after = await self.refresh(train_id, now)
            except Exception as exc:
                # One train's data problem must not stall the others.
                logger.error("Snapshot refresh failed", train_id=train_id, exc_info=exc)
                report["trains"][train_id] = "error"
                continue
            report["trains"][train_id] = "unchanged" if after is before else "updated"

        return report

    async def get_status(self) -> dict[str, Any]:
        """Get current monitor status for health/meta endpoints."""
        return {
            "running": self._running,
            "tick_count": self._tick_count,
            "update_count": self._update_count,
            "watched_trains": len(self._watched),
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "interval_sec": self._interval,
        }

    async def _refresh_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Prediction tick failed unexpectedly", exc_info=exc)

            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break


_monitor_instance: PredictionMonitor | None = None


def get_monitor() -> PredictionMonitor:
    """Get or create the singleton monitor instance."""
    global _monitor_instance
    if _monitor_instance is None:
        _monitor_instance = PredictionMonitor()
    return _monitor_instance


def reset_monitor() -> None:
    """Reset the singleton (for testing)."""
    global _monitor_instance
    _monitor_instance = None
