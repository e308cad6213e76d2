"""Calendar hand-off port and an in-memory implementation."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from .models import CalendarBlock

logger = logging.getLogger(__name__)

BlocksByDate = Dict[str, List[CalendarBlock]]


class CalendarCollaborator(Protocol):
    def set_calendar_data(self, blocks: BlocksByDate, metadata: Dict[str, Any]) -> None:  # pragma: no cover
        ...


class StoredCalendar(BaseModel):
    blocks: BlocksByDate = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    archived_at: Optional[datetime] = None


class InMemoryCalendarStore:
    """Replaces the active plan on every hand-off, archiving the previous one."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active: Optional[StoredCalendar] = None
        self.archive: List[StoredCalendar] = []

    def set_calendar_data(self, blocks: BlocksByDate, metadata: Dict[str, Any]) -> None:
        with self._lock:
            if self.active is not None:
                self.archive.append(self.active.model_copy(update={"archived_at": datetime.now(timezone.utc)}))
            self.active = StoredCalendar(blocks=blocks, metadata=dict(metadata))
        logger.info("Calendar stored with %d days (plan %s)", len(blocks), metadata.get("plan_id"))


__all__ = ["BlocksByDate", "CalendarCollaborator", "InMemoryCalendarStore", "StoredCalendar"]
