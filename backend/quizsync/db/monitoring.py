"""Connection pool counters surfaced by the database health endpoint."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

POOL_EVENT = "quiz_db_pool_status"


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    last_emit: float = 0.0


_COUNTERS: Dict[int, PoolCounters] = {}
_EMIT_INTERVAL = float(os.getenv("QUIZSYNC_DB_TELEMETRY_INTERVAL", "60"))


def instrument_engine(engine: Engine) -> None:
    key = id(engine)
    if key in _COUNTERS:
        return
    counters = _COUNTERS[key] = PoolCounters()

    def _maybe_emit(trigger: str) -> None:
        now = time.time()
        if _EMIT_INTERVAL > 0 and now - counters.last_emit < _EMIT_INTERVAL:
            return
        counters.last_emit = now
        emit_event(POOL_EVENT, trigger=trigger, **get_pool_snapshot(engine))

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.connects += 1
        _maybe_emit("connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        counters.checkouts += 1
        _maybe_emit("checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.checkins += 1


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(id(engine)) or PoolCounters()
    try:
        status = engine.pool.status()
    except Exception as exc:  # noqa: BLE001
        status = f"unavailable: {exc}"
    return {
        "status": status,
        "connects": counters.connects,
        "checkouts": counters.checkouts,
        "checkins": counters.checkins,
    }


__all__ = ["POOL_EVENT", "get_pool_snapshot", "instrument_engine"]
