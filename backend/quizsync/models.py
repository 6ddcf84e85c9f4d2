"""Quiz result models and the normalization helpers shared by cache, client and API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .travel_types import TravelTypeResultContent, get_travel_type_info, get_travel_type_result_content

logger = logging.getLogger(__name__)

StoredSyncStatus = Literal["synced", "pending", "failed"]
LocalRecordStatus = Literal["synced", "pending", "stale", "failed"]
ResolvedState = Literal["pending", "completed", "missing"]
MergeSource = Literal["remote", "local", "none"]

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock epoch milliseconds; the unit every quiz timestamp uses."""
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StoredTravelType(_CamelModel):
    travel_type_code: str = Field(..., alias="travelTypeCode", min_length=1)
    travel_type_name: Optional[str] = Field(default=None, alias="travelTypeName")
    travel_type_emoji: Optional[str] = Field(default=None, alias="travelTypeEmoji")
    travel_type_description: Optional[str] = Field(default=None, alias="travelTypeDescription")
    travel_type_short_description: Optional[str] = Field(default=None, alias="travelTypeShortDescription")
    location_lat: Optional[float] = Field(default=None, alias="locationLat")
    location_lng: Optional[float] = Field(default=None, alias="locationLng")
    location_permission: Optional[bool] = Field(default=None, alias="locationPermission")
    current_location: Optional[str] = Field(default=None, alias="currentLocation")


class StoredQuizResult(_CamelModel):
    travel_type: Optional[StoredTravelType] = Field(default=None, alias="travelType")
    places: List[Any] = Field(default_factory=list)
    answers: Any = None
    timestamp: Optional[int] = None

    @property
    def travel_type_code(self) -> Optional[str]:
        if self.travel_type is None:
            return None
        return self.travel_type.travel_type_code or None

    @property
    def is_complete(self) -> bool:
        return bool(self.travel_type_code)


class EnhancedQuizResult(StoredQuizResult):
    """Result exposed to the UI, decorated with catalogue copy for the result modal."""

    result_content: Optional[TravelTypeResultContent] = Field(default=None, alias="resultContent")

    @classmethod
    def from_stored(cls, stored: StoredQuizResult) -> "EnhancedQuizResult":
        return cls(
            travel_type=stored.travel_type,
            places=list(stored.places),
            answers=stored.answers,
            timestamp=stored.timestamp,
            result_content=get_travel_type_result_content(stored.travel_type_code),
        )


class QuizStatusMeta(_CamelModel):
    version: int = 1
    status: StoredSyncStatus = "pending"
    last_synced_at: Optional[int] = Field(default=None, alias="lastSyncedAt")
    last_attempt_at: Optional[int] = Field(default=None, alias="lastAttemptAt")
    error: Optional[str] = None
    retriable: bool = True


class CacheRecord(BaseModel):
    result: StoredQuizResult
    sync_status: LocalRecordStatus
    last_synced_at: Optional[int] = None
    last_attempt_at: Optional[int] = None
    error: Optional[str] = None
    retriable: bool = True


class QuizResultState(BaseModel):
    """Outcome of reading the local cache: ``missing`` or a present record."""

    status: Literal["missing", "synced", "pending", "stale", "failed"]
    record: Optional[CacheRecord] = None

    @classmethod
    def missing(cls) -> "QuizResultState":
        return cls(status="missing")

    @property
    def is_missing(self) -> bool:
        return self.status == "missing" or self.record is None

    @property
    def result(self) -> Optional[StoredQuizResult]:
        return self.record.result if self.record else None

    @property
    def last_synced_at(self) -> Optional[int]:
        return self.record.last_synced_at if self.record else None


@dataclass(frozen=True)
class SyncResult:
    success: bool
    retriable: bool = False
    status: Optional[int] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class MergeOutcome:
    result: Optional[StoredQuizResult]
    source: MergeSource
    needs_resync: bool


class RemoteRecommendation(_CamelModel):
    places: Optional[List[Any]] = None
    timestamp: Optional[int] = None


class RemoteQuizState(_CamelModel):
    """Server view of the quiz result; every field may be missing."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    travel_type: Optional[Dict[str, Any]] = Field(default=None, alias="travelType")
    recommendation: Optional[RemoteRecommendation] = None
    timestamp: Optional[int] = None
    answers: Any = None
    completed: Optional[bool] = None


def normalize_travel_type(travel_type: Optional[StoredTravelType]) -> StoredTravelType:
    if travel_type is None or not travel_type.travel_type_code:
        raise ValueError("Missing travelTypeCode")
    info = get_travel_type_info(travel_type.travel_type_code)
    if info is None:
        return travel_type.model_copy()
    return travel_type.model_copy(
        update={
            "travel_type_name": travel_type.travel_type_name or info.name,
            "travel_type_emoji": travel_type.travel_type_emoji or info.emoji,
            "travel_type_description": travel_type.travel_type_description or info.description,
            "travel_type_short_description": travel_type.travel_type_short_description
            or info.short_description,
        }
    )


def normalize_quiz_result(result: StoredQuizResult, *, clock: Clock = now_ms) -> StoredQuizResult:
    """Fill catalogue metadata and defaults; raises ``ValueError`` without a travel-type code."""
    return StoredQuizResult(
        travel_type=normalize_travel_type(result.travel_type),
        places=list(result.places or []),
        answers=result.answers,
        timestamp=result.timestamp if result.timestamp is not None else clock(),
    )


def to_stored_quiz_result(
    state: RemoteQuizState | Dict[str, Any] | None,
    *,
    clock: Clock = now_ms,
) -> Optional[StoredQuizResult]:
    """Convert the remote quiz state into a stored result, or ``None`` without a travel-type code."""
    if state is None:
        return None
    if not isinstance(state, RemoteQuizState):
        try:
            state = RemoteQuizState.model_validate(state)
        except ValidationError as exc:
            logger.warning("Ignoring malformed remote quiz state: %s", exc)
            return None

    raw_travel_type = state.travel_type or {}
    if not raw_travel_type.get("travelTypeCode"):
        return None
    try:
        travel_type = StoredTravelType.model_validate(raw_travel_type)
    except ValidationError as exc:
        logger.warning("Ignoring remote quiz state with invalid travelType: %s", exc)
        return None

    recommendation = state.recommendation
    places = recommendation.places if recommendation and recommendation.places is not None else []
    if recommendation and recommendation.timestamp is not None:
        timestamp = recommendation.timestamp
    elif state.timestamp is not None:
        timestamp = state.timestamp
    else:
        timestamp = clock()

    return StoredQuizResult(
        travel_type=travel_type,
        places=list(places),
        answers=state.answers,
        timestamp=timestamp,
    )


__all__ = [
    "CacheRecord",
    "Clock",
    "EnhancedQuizResult",
    "LocalRecordStatus",
    "MergeOutcome",
    "MergeSource",
    "QuizResultState",
    "QuizStatusMeta",
    "RemoteQuizState",
    "RemoteRecommendation",
    "ResolvedState",
    "StoredQuizResult",
    "StoredSyncStatus",
    "StoredTravelType",
    "SyncResult",
    "normalize_quiz_result",
    "normalize_travel_type",
    "now_ms",
    "to_stored_quiz_result",
]
