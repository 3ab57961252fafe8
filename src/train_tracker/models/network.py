"""Network data: stations, routes and trains managed by admins."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from train_tracker.models.base import Base


class Station(Base):
    """A station, referenced everywhere by its opaque ``station_id``."""

    __tablename__ = "stations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    station_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    station_name: Mapped[str] = mapped_column(String(255), nullable=False)
    station_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    station_location_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Route(Base):
    """Named route; ``stations`` holds the ordered outbound station list."""

    __tablename__ = "routes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # [{"stationId", "stationName", "stationLocation", "stationLocationURL"}, ...]
    stations: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, default=list, server_default="[]"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    trains: Mapped[list[Train]] = relationship(
        "Train", back_populates="route", cascade="all, delete-orphan", passive_deletes=True
    )


class Train(Base):
    """A train running round trips on one route."""

    __tablename__ = "trains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False, default="up")
    route_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False
    )
    # [{"stationId", "upArrivalTime", "downArrivalTime"}, ...]
    stoppages: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, default=list, server_default="[]"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    route: Mapped[Route] = relationship("Route", back_populates="trains")

    __table_args__ = (
        Index("ix_trains_route_id", "route_id"),
        CheckConstraint("direction IN ('up', 'down')", name="ck_train_direction"),
    )
