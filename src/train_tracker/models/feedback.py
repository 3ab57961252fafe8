"""User-submitted feedback triaged by admins."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from train_tracker.models.base import Base

FEEDBACK_REASONS = ("bug", "feature", "general", "other")
FEEDBACK_STATUSES = ("new", "read", "archived")


class Feedback(Base):
    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    reason: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="new", server_default="new"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_feedback_created_at", "created_at"),
        CheckConstraint(
            "reason IN ('bug', 'feature', 'general', 'other')", name="ck_feedback_reason"
        ),
        CheckConstraint("status IN ('new', 'read', 'archived')", name="ck_feedback_status"),
    )
