"""Completion orchestration: plan API, allocation, calendar hand-off, draft clear."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .allocation import allocate
from .calendar_store import BlocksByDate, CalendarCollaborator
from .drafts import DraftStore
from .errors import CalendarHandoffError, PlanCreationError
from .models import CalendarBlock, WizardState
from .plan_client import PlanCreationClient, build_plan_request
from .telemetry import emit_event
from .wizard_state import new_state

logger = logging.getLogger(__name__)


class CompletionResult(BaseModel):
    plan_id: Optional[str] = None
    blocks: Dict[str, List[CalendarBlock]] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    state: WizardState = Field(default_factory=WizardState)


def _calendar_metadata(state: WizardState, plan_id: Optional[str], name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "plan_id": plan_id,
        "start_date": state.period.start_date.isoformat() if state.period.start_date else None,
        "end_date": state.period.end_date.isoformat() if state.period.end_date else None,
        "blocks_per_day": state.daily_structure.blocks_per_day,
        "week_pattern": state.daily_structure.week_pattern,
        "creation_method": state.creation_method,
        "distribution_mode": state.distribution_mode,
    }


async def complete_wizard(
    state: WizardState,
    plan_client: PlanCreationClient,
    calendar: CalendarCollaborator,
    drafts: DraftStore,
    *,
    name: Optional[str] = None,
) -> CompletionResult:
    """Create the plan, allocate and hand the calendar off, then clear the draft.

    Allocation only runs after plan creation succeeds. Failures raise
    ``PlanCreationError`` or ``CalendarHandoffError`` and leave ``state`` and the
    stored draft untouched. Nothing is retried.
    """
    method = state.creation_method
    try:
        payload = build_plan_request(state, name=name)
        result = await plan_client.create_plan(payload)
    except PlanCreationError as exc:
        emit_event("wizard_completion_failed", stage="plan_creation", method=method, error=str(exc))
        raise
    except Exception as exc:  # noqa: BLE001
        emit_event("wizard_completion_failed", stage="plan_creation", method=method, error=str(exc))
        raise PlanCreationError(f"Plan creation failed: {exc}") from exc

    if not result.success:
        message = result.error or "Plan creation was rejected."
        emit_event("wizard_completion_failed", stage="plan_creation", method=method, error=message)
        raise PlanCreationError(message)

    calendar_blocks = allocate(state)
    by_date: BlocksByDate = {day.isoformat(): blocks for day, blocks in sorted(calendar_blocks.items())}
    metadata = _calendar_metadata(state, result.plan_id, payload.name)

    try:
        calendar.set_calendar_data(by_date, metadata)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Calendar hand-off failed for plan %s", result.plan_id)
        emit_event("wizard_completion_failed", stage="calendar_handoff", method=method, error=str(exc))
        raise CalendarHandoffError(f"Calendar hand-off failed: {exc}") from exc

    if not drafts.clear_draft():
        logger.warning("Plan %s completed but the draft could not be cleared", result.plan_id)

    emit_event(
        "wizard_completed",
        plan_id=result.plan_id,
        method=method,
        days=len(by_date),
        blocks=sum(len(blocks) for blocks in by_date.values()),
    )
    return CompletionResult(plan_id=result.plan_id, blocks=by_date, metadata=metadata, state=new_state())


__all__ = ["CompletionResult", "complete_wizard"]
