"""Device-local cache of the latest quiz result plus its server sync bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .change_feed import ChangeFeed
from .config import Settings
from .models import (
    CacheRecord,
    Clock,
    QuizResultState,
    QuizStatusMeta,
    StoredQuizResult,
    StoredSyncStatus,
    SyncResult,
    normalize_quiz_result,
    now_ms,
)
from .remote import RemoteResultSource
from .storage import AccountStorage, AccountStorageKeys
from .telemetry import SYNC_EVENT, emit_event

logger = logging.getLogger(__name__)

PENDING_QUIZ_RESULT_KEY = "quiz/pending-result"
DEFAULT_RESULT_TTL_MS = 30 * 24 * 60 * 60 * 1000


class PendingQuizResultRecord(BaseModel):
    """Device-level slot for a result completed before an account existed."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = 1
    stored_at: int = Field(..., alias="storedAt")
    result: StoredQuizResult
    account_id: Optional[str] = Field(default=None, alias="accountId")


def _same_result(left: StoredQuizResult, right: StoredQuizResult) -> bool:
    return left.travel_type_code == right.travel_type_code and left.timestamp == right.timestamp


class LocalResultCache:
    def __init__(
        self,
        storage: AccountStorage,
        remote: RemoteResultSource,
        *,
        feed: Optional[ChangeFeed] = None,
        result_ttl_ms: int = DEFAULT_RESULT_TTL_MS,
        clock: Clock = now_ms,
    ) -> None:
        self.storage = storage
        self.remote = remote
        self.feed = feed or ChangeFeed()
        self._result_ttl_ms = result_ttl_ms
        self._clock = clock
        self._in_flight: Dict[str, asyncio.Task[SyncResult]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: AccountStorage,
        remote: RemoteResultSource,
        **kwargs: Any,
    ) -> "LocalResultCache":
        return cls(storage, remote, result_ttl_ms=settings.result_ttl_ms, **kwargs)

    def is_fresh(self, timestamp: Optional[int]) -> bool:
        if not timestamp:
            return False
        return self._clock() - timestamp < self._result_ttl_ms

    def _emit(self) -> None:
        self.feed.emit()

    def _read_status_meta(self, account_id: str) -> QuizStatusMeta:
        stored = self.storage.get_json(account_id, AccountStorageKeys.QUIZ_STATUS)
        if not isinstance(stored, dict):
            return QuizStatusMeta(status="synced")
        payload = {"status": "synced", **stored}
        if payload.get("status") is None:
            payload["status"] = "synced"
        try:
            return QuizStatusMeta.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring invalid quiz status meta for %s: %s", account_id, exc)
            return QuizStatusMeta(status="synced")

    def _write_status_meta(self, account_id: str, meta: QuizStatusMeta) -> None:
        self.storage.set_json(account_id, AccountStorageKeys.QUIZ_STATUS, meta.to_payload())

    def persist(
        self,
        account_id: Optional[str],
        result: StoredQuizResult,
        *,
        status: StoredSyncStatus = "pending",
        last_synced_at: Optional[int] = None,
        last_attempt_at: Optional[int] = None,
        error: Optional[str] = None,
        retriable: bool = True,
        emit_event: bool = True,
    ) -> bool:
        """Overwrite the account's cached result; returns ``False`` when nothing was written."""
        if not account_id:
            return False
        try:
            normalized = normalize_quiz_result(result, clock=self._clock)
        except ValueError:
            logger.exception("Failed to persist quiz result for %s", account_id)
            return False

        meta = QuizStatusMeta(
            status=status,
            last_synced_at=last_synced_at,
            last_attempt_at=last_attempt_at,
            error=error,
            retriable=retriable,
        )
        travel_type = normalized.travel_type
        if travel_type is None:
            logger.warning("Refusing to persist quiz result without travel type for %s", account_id)
            return False

        self.storage.set_json(account_id, AccountStorageKeys.RECOMMENDATION, normalized.to_payload())
        if normalized.answers:
            self.storage.set_json(account_id, AccountStorageKeys.QUIZ_FORM, normalized.answers)
        self.storage.set_json(
            account_id,
            AccountStorageKeys.QUIZ_PAYLOAD,
            {
                "travelTypeCode": travel_type.travel_type_code,
                "travelTypeName": travel_type.travel_type_name,
                "travelTypeEmoji": travel_type.travel_type_emoji,
                "travelTypeDescription": travel_type.travel_type_description,
                "travelTypeShortDescription": travel_type.travel_type_short_description,
                "timestamp": normalized.timestamp,
                "status": meta.status,
                "lastSyncedAt": meta.last_synced_at,
            },
        )
        self._write_status_meta(account_id, meta)

        if emit_event:
            self._emit()
        return True

    def resolve(self, account_id: Optional[str]) -> QuizResultState:
        """Read the cached record; absent or unreadable data resolves to ``missing``."""
        if not account_id:
            return QuizResultState.missing()

        raw = self.storage.get_json(account_id, AccountStorageKeys.RECOMMENDATION)
        if not isinstance(raw, dict) or not raw.get("travelType"):
            return QuizResultState.missing()

        try:
            normalized = normalize_quiz_result(StoredQuizResult.model_validate(raw), clock=self._clock)
        except (ValidationError, ValueError):
            logger.exception("Failed to resolve cached quiz result for %s", account_id)
            return QuizResultState.missing()

        meta = self._read_status_meta(account_id)
        status = meta.status
        if status == "synced" and not self.is_fresh(normalized.timestamp):
            status = "stale"

        record = CacheRecord(
            result=normalized,
            sync_status=status,
            last_synced_at=meta.last_synced_at,
            last_attempt_at=meta.last_attempt_at,
            error=meta.error,
            retriable=meta.retriable,
        )
        return QuizResultState(status=status, record=record)

    def get_stored_result(self, account_id: Optional[str]) -> Optional[StoredQuizResult]:
        return self.resolve(account_id).result

    def clear_quiz_data(self, account_id: Optional[str]) -> None:
        """Drop the account's cached result (sign-out or account reset)."""
        for key in (
            AccountStorageKeys.RECOMMENDATION,
            AccountStorageKeys.QUIZ_PAYLOAD,
            AccountStorageKeys.QUIZ_FORM,
            AccountStorageKeys.QUIZ_STATUS,
        ):
            self.storage.remove(account_id, key)
        self.clear_pending_result()
        self._emit()

    def get_form_answers(self, account_id: Optional[str]) -> Any:
        return self.storage.get_json(account_id, AccountStorageKeys.QUIZ_FORM)

    def save_form_answers(self, account_id: Optional[str], answers: Any) -> None:
        if not account_id or not answers:
            return
        self.storage.set_json(account_id, AccountStorageKeys.QUIZ_FORM, answers)

    @staticmethod
    def _should_attempt_sync(state: QuizResultState, force: bool) -> bool:
        if force:
            return not state.is_missing
        if state.status == "pending":
            return True
        if state.status == "failed":
            return bool(state.record and state.record.retriable)
        return False

    async def flush_pending(
        self,
        account_id: Optional[str],
        auth_token: Optional[str] = None,
        *,
        force: bool = False,
    ) -> SyncResult:
        """Push the cached result to the server when its status calls for it."""
        if not account_id:
            return SyncResult(success=False, retriable=False, message="missing accountId")

        state = self.resolve(account_id)
        if state.is_missing or state.record is None:
            return SyncResult(success=False, retriable=False, message="no local result")

        record = state.record
        if not self._should_attempt_sync(state, force):
            retriable = False if state.status == "synced" else record.retriable
            success = state.status in ("synced", "stale") or not retriable
            return SyncResult(success=success, retriable=retriable)

        attempt_started_at = self._clock()
        self._write_status_meta(
            account_id,
            QuizStatusMeta(
                status="pending",
                last_synced_at=record.last_synced_at,
                last_attempt_at=attempt_started_at,
                error=None,
                retriable=True,
            ),
        )

        result = await self.remote.push(account_id, record.result, auth_token)

        current = self.resolve(account_id)
        if current.is_missing or current.record is None:
            logger.info("Quiz result for %s was cleared while syncing; dropping push outcome", account_id)
        elif not _same_result(current.record.result, record.result):
            self._handle_superseded_push(account_id, auth_token, current.record, result)
        elif result.success:
            self.persist(
                account_id,
                record.result,
                status="synced",
                last_synced_at=self._clock(),
                last_attempt_at=attempt_started_at,
                emit_event=False,
            )
        else:
            self.persist(
                account_id,
                record.result,
                status="pending" if result.retriable else "failed",
                last_synced_at=record.last_synced_at,
                last_attempt_at=attempt_started_at,
                error=result.message,
                retriable=result.retriable,
                emit_event=False,
            )
        emit_event(
            SYNC_EVENT,
            account_id=account_id,
            success=result.success,
            retriable=result.retriable,
            status=result.status,
            forced=force,
        )
        self._emit()
        return result

    def _handle_superseded_push(
        self,
        account_id: str,
        auth_token: Optional[str],
        current: CacheRecord,
        pushed: SyncResult,
    ) -> None:
        """A newer record replaced the one in flight; never write the pushed result back.

        When the stale push landed, the server now holds the older result, so the
        current record goes back to ``pending`` and gets its own forced sync.
        """
        logger.info(
            "Quiz result for %s changed while syncing (now %s at %s); keeping the newer record",
            account_id,
            current.result.travel_type_code,
            current.result.timestamp,
        )
        if not pushed.success:
            return
        self._write_status_meta(
            account_id,
            QuizStatusMeta(
                status="pending",
                last_synced_at=current.last_synced_at,
                last_attempt_at=current.last_attempt_at,
                error=None,
                retriable=True,
            ),
        )
        self.enqueue_sync(account_id, auth_token, force=True)

    def enqueue_sync(
        self,
        account_id: Optional[str],
        auth_token: Optional[str] = None,
        *,
        force: bool = False,
    ) -> Optional[asyncio.Task[SyncResult]]:
        """Schedule a background flush; at most one runs per account.

        A forced enqueue while a flush is in flight chains exactly one follow-up
        flush behind it. Without a running event loop nothing is scheduled; the
        ``pending`` status stays on disk and the next refresh retries it.
        """
        if not account_id:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; quiz sync for %s deferred to next refresh", account_id)
            return None

        existing = self._in_flight.get(account_id)
        if existing is not None:
            if not force:
                return existing
            task = loop.create_task(self._flush_after(existing, account_id, auth_token, force))
        else:
            task = loop.create_task(self.flush_pending(account_id, auth_token, force=force))
        self._in_flight[account_id] = task
        task.add_done_callback(partial(self._release, account_id))
        return task

    async def _flush_after(
        self,
        previous: asyncio.Task[SyncResult],
        account_id: str,
        auth_token: Optional[str],
        force: bool,
    ) -> SyncResult:
        try:
            await previous
        except Exception:  # noqa: BLE001
            logger.debug("Previous quiz sync for %s failed; running chained flush", account_id)
        return await self.flush_pending(account_id, auth_token, force=force)

    def _release(self, account_id: str, task: asyncio.Task[SyncResult]) -> None:
        if self._in_flight.get(account_id) is task:
            self._in_flight.pop(account_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background quiz sync for %s failed", account_id, exc_info=exc)

    def has_pending_sync(self, account_id: str) -> bool:
        return account_id in self._in_flight

    async def drain(self) -> None:
        """Wait until every queued background sync has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def save_pending_result(self, result: StoredQuizResult, account_id: Optional[str] = None) -> bool:
        try:
            record = PendingQuizResultRecord(
                stored_at=self._clock(),
                result=normalize_quiz_result(result, clock=self._clock),
                account_id=account_id,
            )
        except ValueError:
            logger.exception("Failed to save pending quiz result")
            return False
        self.storage.set_device_json(PENDING_QUIZ_RESULT_KEY, record.model_dump(mode="json", by_alias=True))
        logger.debug("Saved pending quiz result (has_account_id=%s)", bool(account_id))
        return True

    def get_pending_result(self) -> Optional[PendingQuizResultRecord]:
        raw = self.storage.get_device_json(PENDING_QUIZ_RESULT_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            record = PendingQuizResultRecord.model_validate(raw)
        except ValidationError:
            logger.exception("Failed to read pending quiz result")
            return None
        if not record.result.is_complete:
            return None
        if self._clock() - record.stored_at > self._result_ttl_ms:
            self.clear_pending_result()
            return None
        return record

    def clear_pending_result(self) -> None:
        self.storage.remove_device(PENDING_QUIZ_RESULT_KEY)

    def transfer_pending_result(self, account_id: Optional[str]) -> Optional[StoredQuizResult]:
        """Adopt the anonymous pending result into ``account_id``'s cache."""
        if not account_id:
            return None
        pending = self.get_pending_result()
        if pending is None:
            return None
        if pending.account_id and pending.account_id != account_id:
            logger.warning(
                "Pending quiz result belongs to %s, not %s; leaving it in place",
                pending.account_id,
                account_id,
            )
            return None

        if not self.persist(account_id, pending.result, status="pending", emit_event=False):
            logger.error("Failed to persist pending quiz result for %s", account_id)
            return None

        self.clear_pending_result()
        self._emit()
        logger.debug("Transferred pending quiz result to %s", account_id)
        return pending.result


__all__ = [
    "DEFAULT_RESULT_TTL_MS",
    "LocalResultCache",
    "PENDING_QUIZ_RESULT_KEY",
    "PendingQuizResultRecord",
]
