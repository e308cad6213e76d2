from __future__ import annotations

import os
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, List

os.environ.setdefault("LERNPLAN_DATABASE_URL", "sqlite://")

from lernplan import drafts  # noqa: E402
from lernplan.db import Base, dispose_engine, get_engine  # noqa: E402
from lernplan.db import models as db_models  # noqa: E402,F401
from lernplan.drafts import (  # noqa: E402
    DatabaseDraftStore,
    DraftLifecycleController,
    InMemoryDraftStore,
    create_draft_store,
)
from lernplan.models import NavigationState, PeriodSettings, WizardState  # noqa: E402
from lernplan.telemetry import TelemetryEvent, clear_listeners, register_listener  # noqa: E402


class FakeHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self) -> None:
        self.handles: List[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(callback)
        self.handles.append(handle)
        return handle

    def fire_active(self) -> None:
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.callback()


class RecordingStore(InMemoryDraftStore):
    def __init__(self, draft_key: str = "learner", *, fail: bool = False) -> None:
        super().__init__(draft_key)
        self.saved: List[WizardState] = []
        self.fail = fail

    def save_draft(self, state: WizardState) -> bool:
        if self.fail:
            return False
        self.saved.append(state)
        return super().save_draft(state)


def _at_step(step: int) -> WizardState:
    return WizardState(navigation=NavigationState(current_step=step))


def test_memory_store_round_trip() -> None:
    store = InMemoryDraftStore("learner")
    assert store.load_draft() is None
    assert store.has_draft() is False

    store.save_draft(_at_step(1))
    assert store.load_draft() is not None
    assert store.has_draft() is False

    store.save_draft(_at_step(4))
    loaded = store.load_draft()
    assert loaded is not None
    assert loaded.navigation.current_step == 4
    assert store.has_draft() is True

    store.clear_draft()
    assert store.load_draft() is None


def test_memory_stores_share_storage_by_key() -> None:
    storage: Dict[str, Dict[str, object]] = {}
    first = InMemoryDraftStore("a", storage=storage)
    first.save_draft(_at_step(3))
    assert InMemoryDraftStore("a", storage=storage).has_draft()
    assert not InMemoryDraftStore("b", storage=storage).has_draft()


def test_unreadable_memory_draft_is_discarded() -> None:
    storage: Dict[str, Dict[str, object]] = {"broken": {"navigation": {"current_step": "nope"}}}
    assert InMemoryDraftStore("broken", storage=storage).load_draft() is None


def test_create_draft_store_defaults_to_shared_memory() -> None:
    store = create_draft_store("shared-key")
    assert isinstance(store, InMemoryDraftStore)
    store.save_draft(_at_step(2))
    try:
        assert create_draft_store("shared-key").has_draft()
    finally:
        store.clear_draft()


def test_database_store_round_trip() -> None:
    dispose_engine()
    Base.metadata.create_all(get_engine())
    try:
        store = DatabaseDraftStore("db-learner")
        assert store.load_draft() is None
        assert store.save_draft(_at_step(5).model_copy(update={"creation_method": "manual"}))
        assert store.save_draft(_at_step(6).model_copy(update={"creation_method": "manual"}))
        loaded = store.load_draft()
        assert loaded is not None
        assert loaded.navigation.current_step == 6
        assert store.has_draft()
        assert store.clear_draft()
        assert store.load_draft() is None
    finally:
        dispose_engine()


def test_database_store_reports_failures(monkeypatch) -> None:
    @contextmanager
    def unavailable(**_: object):
        raise RuntimeError("database unavailable")
        yield  # pragma: no cover

    monkeypatch.setattr(drafts, "session_scope", unavailable)
    store = DatabaseDraftStore("db-learner")
    assert store.save_draft(_at_step(3)) is False
    assert store.load_draft() is None
    assert store.clear_draft() is False
    assert store.has_draft() is False


def test_controller_debounces_updates() -> None:
    store = RecordingStore()
    scheduler = FakeScheduler()
    controller = DraftLifecycleController(store, debounce_seconds=0.5, scheduler=scheduler)

    for step in (2, 3, 4):
        controller.replace(_at_step(step))
    assert store.saved == []
    assert controller.save_pending

    scheduler.fire_active()
    assert [state.navigation.current_step for state in store.saved] == [4]
    assert not controller.save_pending


def test_controller_flush_and_teardown() -> None:
    store = RecordingStore()
    scheduler = FakeScheduler()
    controller = DraftLifecycleController(store, debounce_seconds=0.5, scheduler=scheduler)

    controller.replace(_at_step(2))
    assert controller.flush() is True
    assert len(store.saved) == 1
    assert controller.flush() is False

    controller.replace(_at_step(3))
    controller.teardown()
    scheduler.fire_active()
    assert len(store.saved) == 1


def test_controller_loads_existing_draft_and_discards() -> None:
    store = RecordingStore()
    store.save_draft(_at_step(5))
    controller = DraftLifecycleController(store, debounce_seconds=0.5, scheduler=FakeScheduler())
    assert controller.state.navigation.current_step == 5

    fresh = controller.discard()
    assert fresh.navigation.current_step == 1
    assert store.load_draft() is None


def test_resume_keeps_local_state_without_draft() -> None:
    store = RecordingStore()
    controller = DraftLifecycleController(store, scheduler=FakeScheduler(), initial_state=_at_step(3))
    assert controller.resume().navigation.current_step == 3

    store.save_draft(_at_step(7))
    assert controller.resume().navigation.current_step == 7
    assert controller.start_fresh().navigation.current_step == 1


def test_remote_draft_applies_at_most_once() -> None:
    scheduler = FakeScheduler()
    controller = DraftLifecycleController(RecordingStore(), debounce_seconds=0.5, scheduler=scheduler)

    assert controller.receive_remote_draft(_at_step(3)) is True
    assert controller.state.navigation.current_step == 3
    assert controller.save_pending
    assert controller.receive_remote_draft(_at_step(8)) is False
    assert controller.state.navigation.current_step == 3


def test_remote_draft_without_progress_settles_the_race() -> None:
    controller = DraftLifecycleController(RecordingStore(), scheduler=FakeScheduler())
    assert controller.receive_remote_draft(_at_step(1)) is False
    assert controller.receive_remote_draft(_at_step(6)) is False
    assert controller.state.navigation.current_step == 1

    late = DraftLifecycleController(RecordingStore(), scheduler=FakeScheduler())
    assert late.receive_remote_draft(None) is False
    assert late.receive_remote_draft(_at_step(6)) is False


def test_persist_emits_save_telemetry() -> None:
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    try:
        scheduler = FakeScheduler()
        controller = DraftLifecycleController(RecordingStore(fail=True), scheduler=scheduler)
        controller.replace(_at_step(2))
        scheduler.fire_active()
        ok = DraftLifecycleController(RecordingStore(), scheduler=FakeScheduler())
        ok.replace(_at_step(2))
        ok.flush()
    finally:
        clear_listeners()
    names = [event.name for event in events]
    assert "draft_save_failed" in names
    saved = next(event for event in events if event.name == "draft_saved")
    assert saved.payload == {"draft_key": "learner", "current_step": 2}


def test_transact_serializes_concurrent_changes() -> None:
    controller = DraftLifecycleController(RecordingStore(), scheduler=FakeScheduler())
    guard = threading.Lock()
    running: List[int] = []
    overlap: List[int] = []

    def add_buffer_day(state: WizardState) -> WizardState:
        with guard:
            running.append(1)
            overlap.append(len(running))
        time.sleep(0.005)
        with guard:
            running.pop()
        current = state.period.buffer_days or 0
        return state.model_copy(update={"period": PeriodSettings(buffer_days=current + 1)})

    threads = [threading.Thread(target=controller.transact, args=(add_buffer_day,)) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert controller.state.period.buffer_days == 8
    assert max(overlap) == 1
    assert controller.save_pending


def test_transact_without_change_skips_save() -> None:
    store = RecordingStore()
    controller = DraftLifecycleController(store, scheduler=FakeScheduler())
    before, after = controller.transact(lambda state: state)
    assert before is after
    assert not controller.save_pending
