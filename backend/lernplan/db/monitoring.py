"""Connection pool telemetry for the draft database."""

from __future__ import annotations

import os
import time
import weakref
from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    invalidations: int = 0
    last_emit: float = field(default=0.0, repr=False)

    def as_dict(self) -> Dict[str, int]:
        return {
            "connects": self.connects,
            "checkouts": self.checkouts,
            "checkins": self.checkins,
            "invalidations": self.invalidations,
        }


_COUNTERS: "weakref.WeakKeyDictionary[Engine, PoolCounters]" = weakref.WeakKeyDictionary()
_TELEMETRY_INTERVAL = float(os.getenv("LERNPLAN_DB_TELEMETRY_INTERVAL", "60"))


def instrument_engine(engine: Engine) -> None:
    """Count pool events and emit throttled ``db_pool_status`` snapshots."""
    if engine in _COUNTERS:
        return
    counters = PoolCounters()
    _COUNTERS[engine] = counters

    def record(pool_event: str, attribute: str) -> None:
        setattr(counters, attribute, getattr(counters, attribute) + 1)
        now = time.monotonic()
        if _TELEMETRY_INTERVAL > 0 and counters.last_emit and now - counters.last_emit < _TELEMETRY_INTERVAL:
            return
        counters.last_emit = now
        emit_event("db_pool_status", pool_event=pool_event, status=_pool_status(engine), **counters.as_dict())

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        record("connect", "connects")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        record("checkout", "checkouts")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        record("checkin", "checkins")

    @event.listens_for(engine, "invalidate")
    def _on_invalidate(dbapi_connection, connection_record, exception) -> None:  # type: ignore[no-untyped-def]
        record("invalidate", "invalidations")


def pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(engine) or PoolCounters()
    return {"status": _pool_status(engine), **counters.as_dict()}


def _pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()
    except Exception as exc:  # noqa: BLE001
        return f"unavailable: {exc}"


__all__ = ["PoolCounters", "instrument_engine", "pool_snapshot"]
