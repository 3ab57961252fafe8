"""SQLAlchemy models for the train tracker."""

from train_tracker.models.base import Base
from train_tracker.models.feedback import Feedback
from train_tracker.models.network import Route, Station, Train
from train_tracker.models.status import DailyStatus
from train_tracker.models.users import SessionToken, User

__all__ = [
    "Base",
    "DailyStatus",
    "Feedback",
    "Route",
    "SessionToken",
    "Station",
    "Train",
    "User",
]
