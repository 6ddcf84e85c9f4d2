"""Account-scoped quiz state endpoints consumed by the remote result source."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .account_resolver import get_account_id
from .db.session import session_scope
from .models import StoredTravelType, normalize_travel_type, now_ms
from .repositories.quiz_sessions import quiz_session_repository
from .telemetry import emit_event

router = APIRouter(prefix="/api/account", tags=["quiz-state"])
logger = logging.getLogger(__name__)


class QuizStateUpsertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    travel_type: Optional[Dict[str, Any]] = Field(default=None, alias="travelType")
    places: Optional[List[Any]] = None
    answers: Any = None
    timestamp: Optional[int] = None


class QuizStateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quiz_state: Optional[Dict[str, Any]] = Field(default=None, alias="quizState")


def has_answers(answers: Any) -> bool:
    if isinstance(answers, (list, dict)):
        return len(answers) > 0
    return False


def is_quiz_completed(answers: Any) -> bool:
    """Every ``travelTypeAnswers`` entry must hold a non-empty value."""
    if not isinstance(answers, dict):
        return False
    travel_type_answers = answers.get("travelTypeAnswers")
    if not isinstance(travel_type_answers, dict):
        return False
    return all(value is not None and value != "" for value in travel_type_answers.values())


def _parse_travel_type(raw: Optional[Dict[str, Any]]) -> Optional[StoredTravelType]:
    if not raw or not raw.get("travelTypeCode"):
        return None
    try:
        return normalize_travel_type(StoredTravelType.model_validate(raw))
    except (ValidationError, ValueError):
        return None


@router.get("/quiz-state", response_model=QuizStateResponse, response_model_by_alias=True)
def get_quiz_state(account_id: Optional[str] = Depends(get_account_id)) -> QuizStateResponse:
    if not account_id:
        logger.info("No account session on quiz-state read; client will rely on its cache")
        return QuizStateResponse(quiz_state=None)
    try:
        with session_scope(commit=False) as session:
            quiz_state = quiz_session_repository.fetch_quiz_state(session, account_id)
    except (SQLAlchemyError, RuntimeError):
        logger.exception("Failed to fetch quiz state for %s", account_id)
        return QuizStateResponse(quiz_state=None)
    return QuizStateResponse(quiz_state=quiz_state)


@router.post("/quiz-state", response_model=QuizStateResponse, response_model_by_alias=True)
def save_quiz_state(
    payload: QuizStateUpsertRequest,
    account_id: Optional[str] = Depends(get_account_id),
) -> QuizStateResponse:
    if not account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing account session")

    travel_type = _parse_travel_type(payload.travel_type)
    if travel_type is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing travelType")

    timestamp = payload.timestamp or now_ms()
    if not has_answers(payload.answers):
        logger.warning("Rejecting quiz state for %s: answers are empty", account_id)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Quiz answers are empty",
        )
    if not is_quiz_completed(payload.answers):
        logger.warning("Rejecting quiz state for %s: quiz is not completed", account_id)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Quiz is not completed",
        )

    try:
        with session_scope() as session:
            quiz_session_repository.save_completed_result(
                session,
                account_id,
                travel_type=travel_type,
                answers=payload.answers,
                places=payload.places,
                timestamp=timestamp,
            )
    except (SQLAlchemyError, RuntimeError) as exc:
        logger.exception("Failed to store quiz result for %s", account_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store quiz result: {exc}",
        ) from exc

    emit_event(
        "quiz_state_saved",
        account_id=account_id,
        travel_type=travel_type.travel_type_code,
        places=len(payload.places or []),
    )

    quiz_state: Dict[str, Any] = {
        "travelType": travel_type.to_payload(),
        "completed": True,
        "timestamp": timestamp,
        "answers": payload.answers,
    }
    if payload.places is not None:
        quiz_state["recommendation"] = {"places": payload.places, "timestamp": timestamp}
    return QuizStateResponse(quiz_state=quiz_state)


__all__ = ["has_answers", "is_quiz_completed", "router"]
