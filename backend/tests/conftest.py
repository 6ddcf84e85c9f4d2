from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from quizsync.change_feed import ChangeFeed
from quizsync.config import get_settings
from quizsync.controller import ReconciliationController
from quizsync.db.session import dispose_engine, init_db
from quizsync.identity import AccountSession
from quizsync.local_cache import LocalResultCache
from quizsync.models import StoredQuizResult, StoredTravelType, SyncResult
from quizsync.storage import AccountStorage, MemoryStorageBackend
from quizsync.telemetry import clear_listeners

BASE_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = BASE_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000


class FakeRemote:
    def __init__(self) -> None:
        self.remote_result: Optional[StoredQuizResult] = None
        self.remote_results: Dict[str, StoredQuizResult] = {}
        self.fetch_error: Optional[Exception] = None
        self.fetch_gate: Optional[asyncio.Event] = None
        self.push_results: List[SyncResult] = []
        self.push_gates: List[Optional[asyncio.Event]] = []
        self.fetch_calls: List[Tuple[str, Optional[str]]] = []
        self.push_calls: List[Tuple[str, StoredQuizResult, Optional[str]]] = []

    async def fetch(self, account_id: str, auth_token: Optional[str]) -> Optional[StoredQuizResult]:
        self.fetch_calls.append((account_id, auth_token))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.remote_results.get(account_id, self.remote_result)

    async def push(
        self,
        account_id: str,
        result: StoredQuizResult,
        auth_token: Optional[str],
    ) -> SyncResult:
        self.push_calls.append((account_id, result, auth_token))
        gate = self.push_gates.pop(0) if self.push_gates else None
        if gate is not None:
            await gate.wait()
        if self.push_results:
            return self.push_results.pop(0)
        return SyncResult(success=True, retriable=False, status=200)


def make_result(
    code: str = "GRLP",
    *,
    timestamp: Optional[int] = BASE_MS,
    places: Optional[List[Any]] = None,
    answers: Any = None,
) -> StoredQuizResult:
    return StoredQuizResult(
        travel_type=StoredTravelType(travel_type_code=code),
        places=list(places or []),
        answers=answers,
        timestamp=timestamp,
    )


@pytest.fixture(autouse=True)
def _reset_telemetry() -> None:
    clear_listeners()
    yield
    clear_listeners()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def storage() -> AccountStorage:
    return AccountStorage(MemoryStorageBackend())


@pytest.fixture
def cache(storage: AccountStorage, remote: FakeRemote, clock: FakeClock) -> LocalResultCache:
    return LocalResultCache(storage, remote, feed=ChangeFeed(), clock=clock)


@pytest.fixture
def identity() -> AccountSession:
    return AccountSession("acct-1", "token-1")


@pytest.fixture
def controller(
    identity: AccountSession,
    cache: LocalResultCache,
    clock: FakeClock,
    monotonic: FakeMonotonic,
) -> ReconciliationController:
    return ReconciliationController(identity, cache, clock=clock, monotonic=monotonic)


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "quizsync.db"
    monkeypatch.setenv("QUIZSYNC_DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()
    dispose_engine()
    init_db()
    yield db_path
    dispose_engine()
    get_settings.cache_clear()
