"""Cancel-then-schedule debounce primitive with an injectable scheduler."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimerHandle(Protocol):
    def cancel(self) -> None:  # pragma: no cover - protocol definition
        ...


class Scheduler(Protocol):
    """Schedules ``callback`` to run once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:  # pragma: no cover
        ...


class TimerScheduler:
    """Scheduler backed by ``threading.Timer`` daemon threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class Debouncer(Generic[T]):
    """Coalesces bursts of ``schedule`` calls into one callback per quiet window.

    Each call cancels the pending timer and starts a new one, so at most one
    invocation happens per ``delay`` seconds of quiescence, always with the
    latest payload.
    """

    def __init__(self, callback: Callable[[T], Any], delay: float, scheduler: Optional[Scheduler] = None) -> None:
        self._callback = callback
        self._delay = delay
        self._scheduler = scheduler or TimerScheduler()
        self._lock = threading.Lock()
        self._handle: Optional[TimerHandle] = None
        self._payload: Optional[T] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._handle is not None

    def schedule(self, payload: T) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._generation += 1
            generation = self._generation
            self._payload = payload
            self._handle = self._scheduler.call_later(self._delay, lambda: self._fire(generation))

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
            self._payload = None
            self._generation += 1

    def flush(self) -> bool:
        """Run the pending callback now. Returns False when nothing was pending."""
        with self._lock:
            if self._handle is None:
                return False
            self._handle.cancel()
            payload = self._payload
            self._handle = None
            self._payload = None
            self._generation += 1
        self._callback(payload)  # type: ignore[arg-type]
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer cancelled after it started firing must not run a stale payload.
            if generation != self._generation or self._handle is None:
                return
            payload = self._payload
            self._handle = None
            self._payload = None
        try:
            self._callback(payload)  # type: ignore[arg-type]
        except Exception:  # noqa: BLE001
            logger.exception("Debounced callback failed")


__all__ = ["Debouncer", "Scheduler", "TimerHandle", "TimerScheduler"]
