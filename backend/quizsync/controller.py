"""Reconciles the cached quiz result with the server copy and exposes status to the UI."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from .change_feed import ChangeFeed, StorageEvent
from .config import Settings
from .identity import IdentityProvider
from .local_cache import LocalResultCache
from .merge import merge_stored_quiz_results
from .models import (
    Clock,
    EnhancedQuizResult,
    MergeOutcome,
    QuizResultState,
    ResolvedState,
    StoredQuizResult,
    now_ms,
)
from .remote import RemoteResultSource
from .storage import AccountStorageKeys, account_prefix
from .telemetry import track_refresh

logger = logging.getLogger(__name__)

DEFAULT_MIN_REFRESH_INTERVAL_MS = 5000

_REFRESH_STORAGE_KEYS = (
    AccountStorageKeys.QUIZ_PAYLOAD,
    AccountStorageKeys.RECOMMENDATION,
    AccountStorageKeys.QUIZ_STATUS,
)


@dataclass(frozen=True)
class QuizStatusSnapshot:
    status: ResolvedState
    quiz_result: Optional[EnhancedQuizResult]
    is_modal_open: bool
    account_id: Optional[str]


class ReconciliationController:
    """Single owner of the quiz status shown to the UI.

    At most one refresh runs at a time; overlapping calls return immediately and
    rely on the in-flight refresh. Non-forced refreshes are dropped when the
    previous attempt started less than ``min_refresh_interval_ms`` ago. Every
    identity change bumps a generation counter so a refresh that started for an
    older account never writes state for the new one.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        cache: LocalResultCache,
        *,
        remote: Optional[RemoteResultSource] = None,
        feed: Optional[ChangeFeed] = None,
        min_refresh_interval_ms: int = DEFAULT_MIN_REFRESH_INTERVAL_MS,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Clock = now_ms,
    ) -> None:
        self.identity = identity
        self.cache = cache
        self.remote = remote or cache.remote
        self.feed = feed or cache.feed
        self._min_refresh_interval_ms = min_refresh_interval_ms
        self._monotonic = monotonic
        self._clock = clock

        self.status: ResolvedState = "pending"
        self.quiz_result: Optional[EnhancedQuizResult] = None
        self.is_modal_open = False

        self._refreshing = False
        self._last_fetch_at: Optional[float] = None
        self._generation = 0
        self._pending_modal_request = False
        self._known_account_id = identity.account_id
        self._listeners: List[Callable[[QuizStatusSnapshot], None]] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        identity: IdentityProvider,
        cache: LocalResultCache,
        **kwargs,
    ) -> "ReconciliationController":
        return cls(identity, cache, min_refresh_interval_ms=settings.refresh_min_interval_ms, **kwargs)

    @property
    def account_id(self) -> Optional[str]:
        return self.identity.account_id

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def snapshot(self) -> QuizStatusSnapshot:
        return QuizStatusSnapshot(
            status=self.status,
            quiz_result=self.quiz_result,
            is_modal_open=self.is_modal_open,
            account_id=self.account_id,
        )

    def subscribe(self, listener: Callable[[QuizStatusSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Quiz status listener failed")

    def _set_state(self, status: ResolvedState, result: Optional[EnhancedQuizResult]) -> None:
        changed = status != self.status or result is not self.quiz_result
        self.status = status
        self.quiz_result = result
        if changed:
            self._notify()
        self._resolve_pending_modal()

    def open_modal(self) -> None:
        if not self.is_modal_open:
            self.is_modal_open = True
            self._notify()

    def close_modal(self) -> None:
        if self.is_modal_open:
            self.is_modal_open = False
            self._notify()

    def _apply_stored_result(self, stored: Optional[StoredQuizResult]) -> bool:
        if stored is None or not stored.is_complete:
            logger.debug("Skipping quiz result without travelTypeCode")
            return False
        self._set_state("completed", EnhancedQuizResult.from_stored(stored))
        return True

    def _is_current(self, generation: int, account_id: str) -> bool:
        return generation == self._generation and self.identity.account_id == account_id

    async def refresh(self, force: bool = False) -> None:
        """Run one reconciliation pass; errors are logged, never raised to the caller."""
        try:
            await self._refresh(force)
        except Exception:  # noqa: BLE001
            logger.exception("Quiz status refresh failed")
            self._fail_pending_modal()

    async def _refresh(self, force: bool) -> None:
        if self._refreshing:
            return
        now = self._monotonic()
        if (
            not force
            and self._last_fetch_at is not None
            and (now - self._last_fetch_at) * 1000 < self._min_refresh_interval_ms
        ):
            return
        self._refreshing = True
        self._last_fetch_at = now
        generation = self._generation
        try:
            await self._reconcile(generation)
        finally:
            self._refreshing = False
            if generation != self._generation and self.identity.account_id:
                self._schedule_refresh(force=True)

    async def _reconcile(self, generation: int) -> None:
        account_id = self.identity.account_id
        if not account_id:
            logger.info("No account id available; waiting for session bootstrap")
            self._set_state("pending", None)
            return

        if not self.identity.bootstrap_ready:
            await self.identity.ensure_bootstrap()
            if not self._is_current(generation, account_id):
                return
        auth_token = self.identity.auth_token

        local_state = self.cache.resolve(account_id)
        local_applied = False
        if not local_state.is_missing:
            local_applied = self._apply_stored_result(local_state.result)
            if local_applied:
                await self._flush_local(account_id, auth_token, local_state)
        else:
            logger.debug("No local quiz result cached for %s; waiting for remote", account_id)

        if not self._is_current(generation, account_id):
            return
        remote_result = await self.remote.fetch(account_id, auth_token)
        if not self._is_current(generation, account_id):
            return

        if remote_result is not None:
            latest_local = self.cache.resolve(account_id)
            outcome = merge_stored_quiz_results(latest_local.result, remote_result)
            if outcome.result is not None and outcome.result.is_complete:
                self._persist_merge(account_id, auth_token, latest_local, outcome)
                self._apply_stored_result(outcome.result)
                track_refresh(
                    "remote_success",
                    account_id=account_id,
                    travel_type=outcome.result.travel_type_code,
                    source=outcome.source,
                    needs_resync=outcome.needs_resync,
                )
                return
        else:
            track_refresh("remote_empty", account_id=account_id)

        if local_applied:
            return

        logger.info("No quiz result found in remote or cache for %s", account_id)
        track_refresh("missing", account_id=account_id)
        self._set_state("missing", None)

    async def _flush_local(
        self,
        account_id: str,
        auth_token: Optional[str],
        local_state: QuizResultState,
    ) -> None:
        status = local_state.status
        travel_type = local_state.result.travel_type_code if local_state.result else None
        track_refresh(
            "cache_hit" if status == "synced" else f"cache_{status}",
            account_id=account_id,
            travel_type=travel_type,
        )

        force_sync = status == "stale"
        should_queue = status in ("pending", "failed", "stale")
        sync_result = await self.cache.flush_pending(account_id, auth_token, force=force_sync)

        if sync_result.success and force_sync:
            track_refresh("cache_resync_success", account_id=account_id, travel_type=travel_type)
        elif not sync_result.success:
            track_refresh(
                "cache_resync_failed",
                account_id=account_id,
                status=sync_result.status or "unknown",
                retriable=sync_result.retriable,
                message=sync_result.message,
            )

        if should_queue and (not sync_result.success or sync_result.retriable):
            self.cache.enqueue_sync(account_id, auth_token)

    def _persist_merge(
        self,
        account_id: str,
        auth_token: Optional[str],
        local_state: QuizResultState,
        outcome: MergeOutcome,
    ) -> None:
        if outcome.result is None:
            return
        status_to_persist = "synced" if outcome.source == "remote" else "pending"
        logger.debug(
            "Persisting merged quiz result for %s (source=%s, needs_resync=%s)",
            account_id,
            outcome.source,
            outcome.needs_resync,
        )
        self.cache.persist(
            account_id,
            outcome.result,
            status=status_to_persist,
            last_synced_at=self._clock() if status_to_persist == "synced" else local_state.last_synced_at,
            emit_event=False,
        )
        if outcome.needs_resync or status_to_persist == "pending":
            self.cache.enqueue_sync(account_id, auth_token, force=True)

    async def request_open_modal(self) -> None:
        """Open the result modal once the quiz status is known, refreshing first if needed."""
        if self.status == "completed" and self.quiz_result is not None:
            self.open_modal()
            return

        self._pending_modal_request = True
        try:
            if not self.identity.bootstrap_ready:
                await self.identity.ensure_bootstrap()
        except Exception:  # noqa: BLE001
            logger.exception("Account bootstrap failed while opening the quiz result modal")
            self._fail_pending_modal()
            return

        await self.refresh(force=True)
        self._resolve_pending_modal()

    def _resolve_pending_modal(self) -> None:
        if not self._pending_modal_request or self.status == "pending":
            return
        self._pending_modal_request = False
        self.open_modal()

    def _fail_pending_modal(self) -> None:
        if not self._pending_modal_request:
            return
        self._pending_modal_request = False
        if self.status != "completed":
            self._set_state("missing", None)
        self.open_modal()

    def on_identity_changed(self) -> None:
        account_id = self.identity.account_id
        switched = account_id != self._known_account_id
        if switched:
            self._known_account_id = account_id
            self._generation += 1
            self._set_state("pending", None)
        if not account_id or not self.identity.bootstrap_ready:
            return
        # A new account is never held back by the previous account's rate limit.
        self._schedule_refresh(force=switched or self._pending_modal_request)

    def reset(self) -> None:
        """Forget the visible result and invalidate any refresh still in flight."""
        self._generation += 1
        self._pending_modal_request = False
        self.is_modal_open = False
        self._set_state("pending", None)

    def _on_result_event(self) -> None:
        if not self.identity.account_id or not self.identity.bootstrap_ready:
            return
        logger.debug("Quiz result event received")
        self._schedule_refresh()

    def _on_storage_event(self, event: StorageEvent) -> None:
        account_id = self.identity.account_id
        if not account_id or not self.identity.bootstrap_ready:
            return
        if not event.key.startswith(account_prefix(account_id)):
            return
        if event.key.endswith(_REFRESH_STORAGE_KEYS):
            logger.debug("Storage event detected: %s", event.key)
            self._schedule_refresh()

    def _schedule_refresh(self, force: bool = False) -> Optional[asyncio.Task[None]]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; refresh deferred")
            return None
        task = loop.create_task(self.refresh(force))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self) -> None:
        """Attach to change notifications and run the mount refresh."""
        if not self._unsubscribers:
            self._unsubscribers.append(self.feed.subscribe(self._on_result_event))
            self._unsubscribers.append(self.feed.subscribe_storage(self._on_storage_event))
            subscribe_identity = getattr(self.identity, "subscribe", None)
            if callable(subscribe_identity):
                self._unsubscribers.append(subscribe_identity(self.on_identity_changed))
        if self.identity.account_id and self.identity.bootstrap_ready:
            await self.refresh()

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    async def wait_idle(self) -> None:
        """Wait for refreshes triggered by events plus any queued background sync."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.cache.drain()


__all__ = [
    "DEFAULT_MIN_REFRESH_INTERVAL_MS",
    "QuizStatusSnapshot",
    "ReconciliationController",
]
