"""ORM models backing draft persistence."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class WizardDraftModel(TimestampMixin, Base):
    __tablename__ = "wizard_drafts"
    __table_args__ = (Index("ix_wizard_drafts_draft_key", "draft_key", unique=True),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    draft_key: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    current_step: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    creation_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


__all__ = ["WizardDraftModel"]
