"""Journey building, travel-time estimation and arrival prediction."""

from train_tracker.services.prediction.cache import InMemoryTTLCache, TravelTimeCache
from train_tracker.services.prediction.engine import (
    JourneySnapshot,
    JourneyState,
    PredictionConfig,
    build_timeline,
    predict_journey,
)
from train_tracker.services.prediction.journey import build_full_journey
from train_tracker.services.prediction.timeparse import parse_time_to_today
from train_tracker.services.prediction.travel_time import (
    average_travel_time,
    default_travel_time,
)

__all__ = [
    "InMemoryTTLCache",
    "JourneySnapshot",
    "JourneyState",
    "PredictionConfig",
    "TravelTimeCache",
    "average_travel_time",
    "build_full_journey",
    "build_timeline",
    "default_travel_time",
    "parse_time_to_today",
    "predict_journey",
]
