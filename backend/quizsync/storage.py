"""Account-namespaced key/value storage backing the local quiz result cache."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "account"


class AccountStorageKeys:
    QUIZ_PAYLOAD = "quiz/payload"
    QUIZ_FORM = "quiz/form"
    QUIZ_STATUS = "quiz/status"
    RECOMMENDATION = "recommendation/latest"
    ONBOARDING = "onboarding/status"
    SYNC_STATE = "sync/state"


QUIZ_KEYS = (
    AccountStorageKeys.QUIZ_PAYLOAD,
    AccountStorageKeys.QUIZ_FORM,
    AccountStorageKeys.QUIZ_STATUS,
    AccountStorageKeys.RECOMMENDATION,
)

ACCOUNT_MIGRATION_KEYS = QUIZ_KEYS + (
    AccountStorageKeys.ONBOARDING,
    AccountStorageKeys.SYNC_STATE,
)


def build_key(account_id: str, key: str) -> str:
    return f"{NAMESPACE_PREFIX}/{account_id}/{key}"


def account_prefix(account_id: str) -> str:
    return f"{NAMESPACE_PREFIX}/{account_id}/"


class StorageBackend(Protocol):
    def get_item(self, key: str) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    def set_item(self, key: str, value: str) -> None:  # pragma: no cover - protocol definition
        ...

    def remove_item(self, key: str) -> None:  # pragma: no cover - protocol definition
        ...


class MemoryStorageBackend:
    """Process-local backend, mostly used by tests and short-lived workers."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)


class JsonFileStorageBackend:
    """Durable backend that keeps every key in a single JSON document."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    def _load_unlocked(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError):
            logger.exception("Failed to read local cache file %s", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring local cache file %s with unexpected shape", self._path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _write_unlocked(self, items: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(items, handle, indent=2, sort_keys=True)
        tmp_path.replace(self._path)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load_unlocked().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            items[key] = value
            self._write_unlocked(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            if items.pop(key, None) is not None:
                self._write_unlocked(items)


class AccountStorage:
    """Scopes every key under ``account/{account_id}/`` on top of a raw backend."""

    def __init__(self, backend: Optional[StorageBackend] = None) -> None:
        self.backend: StorageBackend = backend or MemoryStorageBackend()

    def get(self, account_id: Optional[str], key: str) -> Optional[str]:
        if not account_id:
            return None
        return self.backend.get_item(build_key(account_id, key))

    def set(self, account_id: Optional[str], key: str, value: str) -> None:
        if not account_id:
            return
        self.backend.set_item(build_key(account_id, key), value)

    def remove(self, account_id: Optional[str], key: str) -> None:
        if not account_id:
            return
        self.backend.remove_item(build_key(account_id, key))

    def get_json(self, account_id: Optional[str], key: str) -> Any:
        return _parse_json(self.get(account_id, key))

    def set_json(self, account_id: Optional[str], key: str, value: Any) -> None:
        if not account_id:
            return
        self.set(account_id, key, json.dumps(value))

    def get_device_json(self, key: str) -> Any:
        return _parse_json(self.backend.get_item(key))

    def set_device_json(self, key: str, value: Any) -> None:
        self.backend.set_item(key, json.dumps(value))

    def remove_device(self, key: str) -> None:
        self.backend.remove_item(key)

    def move_account_data(self, source_account_id: Optional[str], target_account_id: Optional[str]) -> bool:
        """Move every account-scoped key from one account to another (account linking)."""
        if not source_account_id or not target_account_id or source_account_id == target_account_id:
            return False
        moved = False
        for key in ACCOUNT_MIGRATION_KEYS:
            value = self.get(source_account_id, key)
            if not value:
                continue
            self.set(target_account_id, key, value)
            self.remove(source_account_id, key)
            moved = True
        return moved


def _parse_json(value: Optional[str]) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.exception("Failed to parse JSON from local cache")
        return None


def create_storage(path: Optional[str | Path] = None) -> AccountStorage:
    if path:
        return AccountStorage(JsonFileStorageBackend(Path(path)))
    return AccountStorage(MemoryStorageBackend())


__all__ = [
    "ACCOUNT_MIGRATION_KEYS",
    "AccountStorage",
    "AccountStorageKeys",
    "JsonFileStorageBackend",
    "MemoryStorageBackend",
    "QUIZ_KEYS",
    "StorageBackend",
    "account_prefix",
    "build_key",
    "create_storage",
]
