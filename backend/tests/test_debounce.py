from __future__ import annotations

import threading
from typing import Callable, List

from lernplan.debounce import Debouncer, TimerScheduler


class FakeHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self) -> None:
        self.handles: List[FakeHandle] = []
        self.delays: List[float] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(callback)
        self.handles.append(handle)
        self.delays.append(delay)
        return handle

    def fire_active(self) -> None:
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.callback()


def test_burst_of_calls_fires_once_with_latest_payload() -> None:
    received: List[int] = []
    scheduler = FakeScheduler()
    debouncer: Debouncer[int] = Debouncer(received.append, 0.5, scheduler)

    for value in range(5):
        debouncer.schedule(value)

    assert [handle.cancelled for handle in scheduler.handles] == [True, True, True, True, False]
    assert scheduler.delays == [0.5] * 5
    assert debouncer.pending
    scheduler.fire_active()
    assert received == [4]
    assert not debouncer.pending


def test_stale_timer_does_not_fire() -> None:
    received: List[str] = []
    scheduler = FakeScheduler()
    debouncer: Debouncer[str] = Debouncer(received.append, 0.5, scheduler)

    debouncer.schedule("first")
    debouncer.schedule("second")
    scheduler.handles[0].callback()
    assert received == []

    scheduler.handles[1].callback()
    scheduler.handles[1].callback()
    assert received == ["second"]


def test_flush_runs_pending_callback_immediately() -> None:
    received: List[str] = []
    scheduler = FakeScheduler()
    debouncer: Debouncer[str] = Debouncer(received.append, 0.5, scheduler)

    assert debouncer.flush() is False
    debouncer.schedule("draft")
    assert debouncer.flush() is True
    assert received == ["draft"]
    assert scheduler.handles[0].cancelled
    scheduler.handles[0].callback()
    assert received == ["draft"]


def test_cancel_drops_pending_payload() -> None:
    received: List[str] = []
    scheduler = FakeScheduler()
    debouncer: Debouncer[str] = Debouncer(received.append, 0.5, scheduler)

    debouncer.schedule("draft")
    debouncer.cancel()
    assert not debouncer.pending
    scheduler.handles[0].callback()
    assert received == []
    assert debouncer.flush() is False


def test_callback_errors_are_logged(caplog) -> None:
    scheduler = FakeScheduler()

    def explode(_: str) -> None:
        raise RuntimeError("boom")

    debouncer: Debouncer[str] = Debouncer(explode, 0.5, scheduler)
    debouncer.schedule("draft")
    scheduler.fire_active()
    assert "Debounced callback failed" in caplog.text
    assert not debouncer.pending


def test_timer_scheduler_fires_after_quiet_window() -> None:
    fired = threading.Event()
    received: List[str] = []

    def record(payload: str) -> None:
        received.append(payload)
        fired.set()

    debouncer: Debouncer[str] = Debouncer(record, 0.01, TimerScheduler())
    debouncer.schedule("a")
    debouncer.schedule("b")
    assert fired.wait(2.0)
    assert received == ["b"]
