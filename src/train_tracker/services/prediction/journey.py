"""Round-trip journey path construction."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from train_tracker.services.prediction.types import (
    Direction,
    Station,
    TrainStoppage,
    opposite_direction,
)


def build_full_journey(
    route_stations: Sequence[Station],
    stoppages: Iterable[TrainStoppage],
    direction: str,
) -> list[Station]:
    """Return the outbound leg followed by the mirrored inbound leg.

    Only stations the train stops at are kept, in route order. The outbound
    leg runs in route order for ``"up"`` and reversed for ``"down"``; the
    inbound leg is its mirror without the shared turnaround station, so a
    train serving N stations visits ``2N - 1`` stops.
    """
    served = {s.station_id for s in stoppages}
    on_route = [station for station in route_stations if station.station_id in served]
    if not on_route:
        return []

    outbound = on_route if direction == "up" else on_route[::-1]
    inbound = outbound[::-1][1:]
    return [*outbound, *inbound]


def turnaround_index(journey: Sequence[Station]) -> Optional[int]:
    """Index of the turnaround station (last stop of the outbound leg)."""
    if not journey:
        return None
    return len(journey) // 2


def leg_direction(direction: str, index: int, journey_length: int) -> Direction:
    """Direction of travel when arriving at ``journey[index]``.

    Stops up to and including the turnaround are on the outbound leg and use
    the train's primary direction; later stops use the opposite one.
    """
    if index <= journey_length // 2:
        return "down" if direction == "down" else "up"
    return opposite_direction(direction)
