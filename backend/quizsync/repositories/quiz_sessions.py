"""Database-backed quiz session repository."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.base import utcnow
from ..db.models import (
    AccountMetadataModel,
    QuizSessionModel,
    SESSION_ABANDONED,
    SESSION_COMPLETED,
    SESSION_IN_PROGRESS,
)
from ..models import StoredTravelType

logger = logging.getLogger(__name__)

RESULT_TYPE = "travel_type"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; they were written as UTC.
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_epoch_ms(value: datetime) -> int:
    return int(_as_utc(value).timestamp() * 1000)


def _from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def travel_type_payload(travel_type: StoredTravelType) -> Dict[str, Any]:
    return {
        "name": travel_type.travel_type_name,
        "emoji": travel_type.travel_type_emoji,
        "description": travel_type.travel_type_description,
        "shortDescription": travel_type.travel_type_short_description,
    }


def session_payload(model: QuizSessionModel) -> Dict[str, Any]:
    return {
        "sessionId": model.id,
        "status": model.status,
        "startedAt": _as_utc(model.started_at).isoformat(),
        "completedAt": _as_utc(model.completed_at).isoformat() if model.completed_at else None,
    }


class QuizSessionRepository:
    """Quiz sessions plus the read-only legacy ``account_metadata`` fallback."""

    def fetch_quiz_state(self, session: Session, account_id: str) -> Optional[Dict[str, Any]]:
        stmt = (
            select(QuizSessionModel)
            .where(
                QuizSessionModel.account_id == account_id,
                QuizSessionModel.status == SESSION_COMPLETED,
            )
            .order_by(QuizSessionModel.completed_at.desc())
            .limit(1)
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is not None and model.travel_type_code:
            return self._quiz_state_from_session(model)

        legacy = session.get(AccountMetadataModel, account_id)
        if legacy is None or not legacy.quiz_state:
            return None
        logger.debug("Serving legacy quiz state for %s", account_id)
        return dict(legacy.quiz_state)

    def _quiz_state_from_session(self, model: QuizSessionModel) -> Dict[str, Any]:
        payload = model.travel_type_payload or {}
        metadata = model.metadata_ or {}
        completed_at = model.completed_at or model.started_at
        timestamp = metadata.get("completion_timestamp") or _to_epoch_ms(completed_at)

        state: Dict[str, Any] = {
            "completed": True,
            "travelTypeCode": model.travel_type_code,
            "travelType": {
                "travelTypeCode": model.travel_type_code,
                "travelTypeName": payload.get("name"),
                "travelTypeEmoji": payload.get("emoji"),
                "travelTypeDescription": payload.get("description"),
                "travelTypeShortDescription": payload.get("shortDescription"),
            },
            "timestamp": timestamp,
            "answers": model.answers,
        }
        snapshot = (model.result or {}).get("snapshot")
        if isinstance(snapshot, dict):
            state["recommendation"] = {
                "places": snapshot.get("places") or [],
                "timestamp": snapshot.get("timestamp", timestamp),
            }
        return state

    def latest_in_progress(self, session: Session, account_id: str) -> Optional[QuizSessionModel]:
        stmt = (
            select(QuizSessionModel)
            .where(
                QuizSessionModel.account_id == account_id,
                QuizSessionModel.status == SESSION_IN_PROGRESS,
            )
            .order_by(QuizSessionModel.started_at.desc())
            .limit(1)
        )
        return session.execute(stmt).scalar_one_or_none()

    def save_completed_result(
        self,
        session: Session,
        account_id: str,
        *,
        travel_type: StoredTravelType,
        answers: Any,
        places: Optional[List[Any]],
        timestamp: int,
    ) -> QuizSessionModel:
        """Complete the newest in-progress session, or record a new completed one."""
        now = utcnow()
        payload = travel_type_payload(travel_type)
        result = {
            "type": RESULT_TYPE,
            "travelTypeCode": travel_type.travel_type_code,
            "payload": payload,
            "snapshot": {"places": places, "timestamp": timestamp} if places is not None else None,
        }

        model = self.latest_in_progress(session, account_id)
        if model is not None:
            model.metadata_ = {
                **(model.metadata_ or {}),
                "lastUpdatedAt": now.isoformat(),
                "completion_timestamp": timestamp,
            }
        else:
            model = QuizSessionModel(
                account_id=account_id,
                started_at=_from_epoch_ms(timestamp),
                metadata_={
                    "created_via": "api/account/quiz-state",
                    "completion_timestamp": timestamp,
                },
            )
            session.add(model)

        model.status = SESSION_COMPLETED
        model.completed_at = now
        model.answers = answers
        model.result = result
        model.travel_type_code = travel_type.travel_type_code
        model.travel_type_payload = payload
        session.flush()
        return model

    def create_session(
        self,
        session: Session,
        account_id: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        location_permission: Optional[bool] = None,
    ) -> QuizSessionModel:
        existing = self.latest_in_progress(session, account_id)
        if existing is not None:
            return existing
        model = QuizSessionModel(
            account_id=account_id,
            status=SESSION_IN_PROGRESS,
            started_at=utcnow(),
            metadata_={**(metadata or {}), "locationPermission": location_permission},
        )
        session.add(model)
        session.flush()
        return model

    def get(self, session: Session, session_id: str) -> Optional[QuizSessionModel]:
        return session.get(QuizSessionModel, session_id)

    def find_for_account(
        self,
        session: Session,
        account_id: str,
        session_id: Optional[str] = None,
    ) -> Optional[QuizSessionModel]:
        stmt = select(QuizSessionModel).where(QuizSessionModel.account_id == account_id)
        if session_id:
            stmt = stmt.where(QuizSessionModel.id == session_id)
        else:
            stmt = stmt.where(QuizSessionModel.status == SESSION_IN_PROGRESS)
        stmt = stmt.order_by(QuizSessionModel.started_at.desc()).limit(1)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def is_duplicate_request(model: QuizSessionModel, request_id: Optional[str]) -> bool:
        return bool(request_id) and (model.metadata_ or {}).get("lastRequestId") == request_id

    def apply_update(
        self,
        session: Session,
        model: QuizSessionModel,
        *,
        status: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        location_permission: Optional[bool] = None,
        set_location_permission: bool = False,
        request_id: Optional[str] = None,
        current_step: Optional[int] = None,
        last_question_id: Optional[str] = None,
        answers: Optional[Dict[str, Any]] = None,
        travel_type_code: Optional[str] = None,
        travel_type_payload: Optional[Dict[str, Any]] = None,
    ) -> QuizSessionModel:
        if status:
            model.status = status
            if status in (SESSION_COMPLETED, SESSION_ABANDONED) and model.completed_at is None:
                model.completed_at = utcnow()

        next_metadata = dict(model.metadata_ or {})
        touched = False
        if metadata:
            next_metadata.update(metadata)
            touched = True
        if set_location_permission:
            next_metadata["locationPermission"] = location_permission
            touched = True
        if request_id:
            next_metadata["lastRequestId"] = request_id
            touched = True
        if touched:
            model.metadata_ = next_metadata

        if current_step is not None:
            model.current_step = current_step
        if last_question_id is not None:
            model.last_question_id = last_question_id
        if answers:
            model.answers = {**(model.answers or {}), **answers}

        if travel_type_code:
            model.travel_type_code = travel_type_code
        if travel_type_payload:
            model.travel_type_payload = travel_type_payload
        if travel_type_code and travel_type_payload:
            model.result = {
                "type": RESULT_TYPE,
                "travelTypeCode": travel_type_code,
                "payload": travel_type_payload,
                "snapshot": None,
            }

        session.flush()
        return model

    def abandon(self, session: Session, model: QuizSessionModel, **changes: Any) -> QuizSessionModel:
        return self.apply_update(session, model, status=SESSION_ABANDONED, **changes)


quiz_session_repository = QuizSessionRepository()

__all__ = [
    "QuizSessionRepository",
    "quiz_session_repository",
    "session_payload",
    "travel_type_payload",
]
