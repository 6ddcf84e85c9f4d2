"""In-process pub/sub for quiz result changes and cross-context storage events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Callable, List, TypeVar

logger = logging.getLogger(__name__)

QUIZ_RESULT_EVENT = "gappy-quiz-result-updated"

_T = TypeVar("_T")


@dataclass(frozen=True)
class StorageEvent:
    """A key changed in shared storage, usually by another process or tab."""

    key: str


class ChangeFeed:
    """Fan-out for quiz result events and storage key change events.

    ``AccountStorage`` never publishes storage events for its own writes: a
    context is not notified about changes it made itself. Whoever shares the
    storage with another context (a second process on the same cache file, a
    sync daemon, a file watcher) bridges those writes in by calling
    ``publish_storage`` with the full ``account/{account_id}/{key}`` key.
    """

    def __init__(self) -> None:
        self._result_listeners: List[Callable[[], None]] = []
        self._storage_listeners: List[Callable[[StorageEvent], None]] = []
        self._lock = RLock()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Listen for "a quiz result was just produced"; returns the unsubscribe callable."""
        return self._add(self._result_listeners, listener)

    def subscribe_storage(self, listener: Callable[[StorageEvent], None]) -> Callable[[], None]:
        return self._add(self._storage_listeners, listener)

    def emit(self) -> None:
        with self._lock:
            listeners = list(self._result_listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Quiz result listener failed for %s", QUIZ_RESULT_EVENT)

    def publish_storage(self, key: str) -> None:
        event = StorageEvent(key=key)
        with self._lock:
            listeners = list(self._storage_listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Storage listener failed for key=%s", key)

    def _add(self, bucket: List[_T], listener: _T) -> Callable[[], None]:
        with self._lock:
            bucket.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in bucket:
                    bucket.remove(listener)

        return _unsubscribe


def request_quiz_status_refresh(feed: ChangeFeed) -> None:
    feed.emit()


__all__ = [
    "ChangeFeed",
    "QUIZ_RESULT_EVENT",
    "StorageEvent",
    "request_quiz_status_refresh",
]
