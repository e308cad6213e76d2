"""Database-backed wizard draft repository."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.models import WizardDraftModel
from ..models import WizardState


def _normalize_key(draft_key: str) -> str:
    normalized = draft_key.strip()
    if not normalized:
        raise ValueError("Draft key cannot be empty.")
    return normalized


class WizardDraftRepository:
    """One row per draft key holding the serialised wizard state."""

    def get(self, session: Session, draft_key: str) -> WizardState | None:
        model = self._find(session, draft_key)
        if model is None:
            return None
        return WizardState.model_validate(model.payload)

    def upsert(self, session: Session, draft_key: str, state: WizardState) -> WizardDraftModel:
        normalized = _normalize_key(draft_key)
        model = self._find(session, normalized)
        if model is None:
            model = WizardDraftModel(draft_key=normalized)
            session.add(model)
        model.payload = state.model_dump(mode="json")
        model.current_step = state.navigation.current_step
        model.creation_method = state.creation_method
        session.flush()
        return model

    def delete(self, session: Session, draft_key: str) -> bool:
        stmt = delete(WizardDraftModel).where(WizardDraftModel.draft_key == _normalize_key(draft_key))
        result = session.execute(stmt)
        return bool(result.rowcount)

    def _find(self, session: Session, draft_key: str) -> WizardDraftModel | None:
        stmt = select(WizardDraftModel).where(WizardDraftModel.draft_key == _normalize_key(draft_key))
        return session.execute(stmt).scalar_one_or_none()


draft_repository = WizardDraftRepository()


__all__ = ["WizardDraftRepository", "draft_repository"]
