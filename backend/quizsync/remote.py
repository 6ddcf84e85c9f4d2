"""HTTP client for the server-held quiz state."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from .config import Settings
from .models import Clock, StoredQuizResult, SyncResult, now_ms, to_stored_quiz_result

logger = logging.getLogger(__name__)

QUIZ_STATE_PATH = "/api/account/quiz-state"
CLIENT_HEADER = "X-Gappy-Client"
ACCOUNT_HEADER = "X-Gappy-Account-Id"
RETRIABLE_STATUS_CODES = {401, 403, 408, 429}


class RemoteResultSource(Protocol):
    async def fetch(self, account_id: str, auth_token: Optional[str]) -> Optional[StoredQuizResult]:
        ...

    async def push(
        self,
        account_id: str,
        result: StoredQuizResult,
        auth_token: Optional[str],
    ) -> SyncResult:
        ...


def is_retriable_status(status_code: int) -> bool:
    """Auth gaps, throttling and server faults are worth retrying; other 4xx are not."""
    return status_code in RETRIABLE_STATUS_CODES or status_code >= 500


def build_push_payload(result: StoredQuizResult, *, clock: Clock = now_ms) -> Dict[str, Any]:
    return {
        "travelType": result.travel_type.to_payload() if result.travel_type else None,
        "answers": result.answers,
        "places": list(result.places or []),
        "timestamp": result.timestamp if result.timestamp is not None else clock(),
    }


class HttpRemoteResultSource:
    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
        client_name: str = "quiz-status-context",
        clock: Clock = now_ms,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{QUIZ_STATE_PATH}"
        self._client = client
        self._timeout_seconds = timeout_seconds
        self._client_name = client_name
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "HttpRemoteResultSource":
        return cls(settings.api_base_url, timeout_seconds=settings.http_timeout_seconds, **kwargs)

    def _headers(self, account_id: str, auth_token: Optional[str]) -> Dict[str, str]:
        headers = {CLIENT_HEADER: self._client_name, ACCOUNT_HEADER: account_id}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        return headers

    async def _send(self, method: str, headers: Dict[str, str], payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout_seconds)
        close_client = self._client is None
        try:
            return await local_client.request(method, self._url, headers=headers, json=payload)
        finally:
            if close_client:
                await local_client.aclose()

    async def fetch(self, account_id: str, auth_token: Optional[str]) -> Optional[StoredQuizResult]:
        logger.debug("Fetching remote quiz result (account_id=%s, has_token=%s)", account_id, bool(auth_token))
        try:
            response = await self._send("GET", self._headers(account_id, auth_token))
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch remote quiz result for %s: %s", account_id, exc)
            return None

        if not response.is_success:
            if response.status_code == 401:
                logger.info("Remote quiz state unauthorized for %s; relying on local cache", account_id)
            else:
                logger.warning(
                    "Failed to fetch remote quiz result for %s: %s %s",
                    account_id,
                    response.status_code,
                    response.reason_phrase,
                )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Remote quiz state for %s was not valid JSON", account_id)
            return None
        if not isinstance(data, dict):
            return None
        return to_stored_quiz_result(data.get("quizState"), clock=self._clock)

    async def push(
        self,
        account_id: str,
        result: StoredQuizResult,
        auth_token: Optional[str],
    ) -> SyncResult:
        headers = self._headers(account_id, auth_token)
        headers["Content-Type"] = "application/json"
        try:
            response = await self._send("POST", headers, build_push_payload(result, clock=self._clock))
        except httpx.TimeoutException as exc:
            logger.warning("Timed out syncing quiz state for %s: %s", account_id, exc)
            return SyncResult(success=False, retriable=True, message=str(exc) or "timeout")
        except httpx.HTTPError as exc:
            logger.error("Failed to sync quiz state for %s: %s", account_id, exc)
            return SyncResult(success=False, retriable=True, message=str(exc))

        if response.is_success:
            return SyncResult(success=True, retriable=False, status=response.status_code)

        message = response.text
        retriable = is_retriable_status(response.status_code)
        log = logger.warning if retriable else logger.error
        log(
            "Failed to sync quiz state for %s: %s %s %s",
            account_id,
            response.status_code,
            response.reason_phrase,
            message,
        )
        return SyncResult(
            success=False,
            retriable=retriable,
            status=response.status_code,
            message=message,
        )


__all__ = [
    "ACCOUNT_HEADER",
    "CLIENT_HEADER",
    "HttpRemoteResultSource",
    "QUIZ_STATE_PATH",
    "RemoteResultSource",
    "build_push_payload",
    "is_retriable_status",
]
