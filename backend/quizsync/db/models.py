"""ORM models for quiz sessions and the legacy per-account quiz state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin, utcnow

JSONType = JSON

SESSION_IN_PROGRESS = "in_progress"
SESSION_COMPLETED = "completed"
SESSION_ABANDONED = "abandoned"


class QuizSessionModel(TimestampMixin, Base):
    __tablename__ = "quiz_sessions"
    __table_args__ = (
        Index("ix_quiz_sessions_account_status", "account_id", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    account_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), default=SESSION_IN_PROGRESS, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    answers: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    travel_type_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    travel_type_payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes.
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    current_step: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_question_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class AccountMetadataModel(TimestampMixin, Base):
    """Pre-session storage: one JSON quiz state per account."""

    __tablename__ = "account_metadata"

    account_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    quiz_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)


__all__ = [
    "AccountMetadataModel",
    "QuizSessionModel",
    "SESSION_ABANDONED",
    "SESSION_COMPLETED",
    "SESSION_IN_PROGRESS",
]
