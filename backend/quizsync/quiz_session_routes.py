"""Quiz session lifecycle endpoints: start, inspect, progress and abandon."""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .account_resolver import get_account_id
from .db.models import QuizSessionModel
from .db.session import session_scope
from .repositories.quiz_sessions import quiz_session_repository, session_payload

router = APIRouter(prefix="/api/quiz/session", tags=["quiz-session"])
logger = logging.getLogger(__name__)

SessionStatus = Literal["in_progress", "completed", "abandoned"]


class QuizSessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    status: SessionStatus
    started_at: str = Field(..., alias="startedAt")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location_permission: Optional[bool] = Field(default=None, alias="locationPermission")
    metadata: Optional[Dict[str, Any]] = None


class _SessionChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1)
    metadata: Optional[Dict[str, Any]] = None
    current_step: Optional[int] = Field(default=None, alias="currentStep")
    last_question_id: Optional[str] = Field(default=None, alias="lastQuestionId")
    answers: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")


class UpdateSessionRequest(_SessionChangeRequest):
    status: Optional[SessionStatus] = None
    location_permission: Optional[bool] = Field(default=None, alias="locationPermission")
    travel_type_code: Optional[str] = Field(default=None, alias="travelTypeCode")
    travel_type_payload: Optional[Dict[str, Any]] = Field(default=None, alias="travelTypePayload")


class AbandonSessionRequest(_SessionChangeRequest):
    pass


def _require_account(account_id: Optional[str]) -> str:
    if not account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing account session")
    return account_id


def _owned_session(session: Session, session_id: str, account_id: str) -> QuizSessionModel:
    model = quiz_session_repository.get(session, session_id)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    if model.account_id != account_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return model


def _storage_failure(action: str, exc: Exception) -> HTTPException:
    logger.exception("Failed to %s quiz session", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} quiz session: {exc}",
    )


@router.post("", response_model=QuizSessionResponse, response_model_by_alias=True)
def create_session(
    payload: Optional[CreateSessionRequest] = None,
    account_id: Optional[str] = Depends(get_account_id),
) -> Dict[str, Any]:
    account = _require_account(account_id)
    payload = payload or CreateSessionRequest()
    try:
        with session_scope() as session:
            model = quiz_session_repository.create_session(
                session,
                account,
                metadata=payload.metadata,
                location_permission=payload.location_permission,
            )
            return session_payload(model)
    except SQLAlchemyError as exc:
        raise _storage_failure("create", exc) from exc


@router.get("", response_model=QuizSessionResponse, response_model_by_alias=True)
def get_session(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    account_id: Optional[str] = Depends(get_account_id),
) -> Dict[str, Any]:
    account = _require_account(account_id)
    try:
        with session_scope(commit=False) as session:
            model = quiz_session_repository.find_for_account(session, account, session_id)
            if model is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
            return session_payload(model)
    except SQLAlchemyError as exc:
        raise _storage_failure("fetch", exc) from exc


@router.patch("", response_model=QuizSessionResponse, response_model_by_alias=True)
def update_session(
    payload: UpdateSessionRequest,
    account_id: Optional[str] = Depends(get_account_id),
) -> Dict[str, Any]:
    account = _require_account(account_id)
    try:
        with session_scope() as session:
            model = _owned_session(session, payload.session_id, account)
            if quiz_session_repository.is_duplicate_request(model, payload.request_id):
                logger.debug("Skipping duplicate session update %s", payload.request_id)
                return session_payload(model)
            quiz_session_repository.apply_update(
                session,
                model,
                status=payload.status,
                metadata=payload.metadata,
                location_permission=payload.location_permission,
                set_location_permission="location_permission" in payload.model_fields_set,
                request_id=payload.request_id,
                current_step=payload.current_step,
                last_question_id=payload.last_question_id,
                answers=payload.answers,
                travel_type_code=payload.travel_type_code,
                travel_type_payload=payload.travel_type_payload,
            )
            return session_payload(model)
    except SQLAlchemyError as exc:
        raise _storage_failure("update", exc) from exc


@router.post("/abandon", response_model=QuizSessionResponse, response_model_by_alias=True)
def abandon_session(
    payload: AbandonSessionRequest,
    account_id: Optional[str] = Depends(get_account_id),
) -> Dict[str, Any]:
    account = _require_account(account_id)
    try:
        with session_scope() as session:
            model = _owned_session(session, payload.session_id, account)
            if quiz_session_repository.is_duplicate_request(model, payload.request_id):
                return session_payload(model)
            quiz_session_repository.abandon(
                session,
                model,
                metadata=payload.metadata,
                request_id=payload.request_id,
                current_step=payload.current_step,
                last_question_id=payload.last_question_id,
                answers=payload.answers,
            )
            return session_payload(model)
    except SQLAlchemyError as exc:
        raise _storage_failure("abandon", exc) from exc


__all__ = ["router"]
