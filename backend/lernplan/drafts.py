"""Draft persistence ports and the debounced draft lifecycle controller."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from .config import get_settings
from .db.session import session_scope
from .debounce import Debouncer, Scheduler
from .models import WizardState
from .repositories.wizard_drafts import draft_repository
from .telemetry import emit_event
from .wizard_state import apply_update, new_state

logger = logging.getLogger(__name__)


class DraftStore(Protocol):
    draft_key: str

    def save_draft(self, state: WizardState) -> bool:  # pragma: no cover - protocol definition
        ...

    def load_draft(self) -> Optional[WizardState]:  # pragma: no cover - protocol definition
        ...

    def clear_draft(self) -> bool:  # pragma: no cover - protocol definition
        ...

    def has_draft(self) -> bool:  # pragma: no cover - protocol definition
        ...


def _has_progress(state: Optional[WizardState]) -> bool:
    return state is not None and state.navigation.current_step > 1


class InMemoryDraftStore:
    """Keeps serialised drafts in a dict; shares storage when one is passed in."""

    def __init__(self, draft_key: str = "default", storage: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.draft_key = draft_key
        self._storage: Dict[str, Dict[str, Any]] = storage if storage is not None else {}
        self._lock = threading.Lock()

    def save_draft(self, state: WizardState) -> bool:
        with self._lock:
            self._storage[self.draft_key] = state.model_dump(mode="json")
        return True

    def load_draft(self) -> Optional[WizardState]:
        with self._lock:
            payload = self._storage.get(self.draft_key)
        if payload is None:
            return None
        try:
            return WizardState.model_validate(payload)
        except ValueError:
            logger.warning("Discarding unreadable draft %s", self.draft_key, exc_info=True)
            return None

    def clear_draft(self) -> bool:
        with self._lock:
            self._storage.pop(self.draft_key, None)
        return True

    def has_draft(self) -> bool:
        return _has_progress(self.load_draft())


class DatabaseDraftStore:
    """SQLAlchemy-backed store; failures are logged and reported, never raised."""

    def __init__(self, draft_key: str) -> None:
        self.draft_key = draft_key

    def save_draft(self, state: WizardState) -> bool:
        try:
            with session_scope() as session:
                draft_repository.upsert(session, self.draft_key, state)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save draft %s", self.draft_key)
            return False
        return True

    def load_draft(self) -> Optional[WizardState]:
        try:
            with session_scope(commit=False) as session:
                return draft_repository.get(session, self.draft_key)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load draft %s", self.draft_key)
            return None

    def clear_draft(self) -> bool:
        try:
            with session_scope() as session:
                draft_repository.delete(session, self.draft_key)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to clear draft %s", self.draft_key)
            return False
        return True

    def has_draft(self) -> bool:
        return _has_progress(self.load_draft())


_memory_storage: Dict[str, Dict[str, Any]] = {}


def create_draft_store(draft_key: str) -> DraftStore:
    settings = get_settings()
    if settings.persistence_mode == "database":
        return DatabaseDraftStore(draft_key)
    return InMemoryDraftStore(draft_key, storage=_memory_storage)


class DraftLifecycleController:
    """Owns the live wizard state and persists it after each quiet window.

    A remote draft arriving after local initialisation applies at most once,
    and only when it carries progress beyond step 1.
    """

    def __init__(
        self,
        store: DraftStore,
        *,
        debounce_seconds: Optional[float] = None,
        scheduler: Optional[Scheduler] = None,
        initial_state: Optional[WizardState] = None,
    ) -> None:
        self._store = store
        delay = get_settings().draft_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._debouncer: Debouncer[WizardState] = Debouncer(self._persist, delay, scheduler)
        self._lock = threading.RLock()
        self._state = initial_state if initial_state is not None else store.load_draft() or new_state()
        self._remote_settled = False

    @property
    def state(self) -> WizardState:
        with self._lock:
            return self._state

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    def update(self, changes: Mapping[str, Any]) -> WizardState:
        with self._lock:
            self._state = apply_update(self._state, changes)
            self._debouncer.schedule(self._state)
            return self._state

    def replace(self, state: WizardState) -> WizardState:
        with self._lock:
            self._state = state
            self._debouncer.schedule(state)
        return state

    def transact(self, change: Callable[[WizardState], WizardState]) -> Tuple[WizardState, WizardState]:
        """Run ``change`` on the live state under the controller lock.

        Returns the state before and after the change. A save is scheduled only
        when ``change`` returns a different object.
        """
        with self._lock:
            before = self._state
            after = change(before)
            if after is before:
                return before, after
            self._state = after
            self._debouncer.schedule(after)
        return before, after

    def flush(self) -> bool:
        return self._debouncer.flush()

    def teardown(self) -> None:
        self._debouncer.cancel()

    def discard(self) -> WizardState:
        self._debouncer.cancel()
        self._store.clear_draft()
        with self._lock:
            self._state = new_state()
            return self._state

    def resume(self) -> WizardState:
        """Load the stored draft into the live state, keeping local state if none exists."""
        draft = self._store.load_draft()
        with self._lock:
            if draft is not None:
                self._state = draft
            return self._state

    def start_fresh(self) -> WizardState:
        return self.discard()

    def receive_remote_draft(self, remote: Optional[WizardState]) -> bool:
        with self._lock:
            if self._remote_settled:
                logger.debug("Ignoring remote draft for %s; already settled", self._store.draft_key)
                return False
            self._remote_settled = True
            if not _has_progress(remote):
                return False
            assert remote is not None
            self._state = remote
        emit_event(
            "draft_remote_applied",
            draft_key=self._store.draft_key,
            current_step=remote.navigation.current_step,
        )
        self._debouncer.schedule(remote)
        return True

    def _persist(self, state: WizardState) -> None:
        ok = self._store.save_draft(state)
        if ok:
            emit_event("draft_saved", draft_key=self._store.draft_key, current_step=state.navigation.current_step)
        else:
            emit_event("draft_save_failed", draft_key=self._store.draft_key)


__all__ = [
    "DatabaseDraftStore",
    "DraftLifecycleController",
    "DraftStore",
    "InMemoryDraftStore",
    "create_draft_store",
]
