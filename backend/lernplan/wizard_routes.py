"""REST endpoints driving the wizard: drafts, navigation, preview and completion."""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from .allocation import (
    allocate,
    distribution_summary,
    generate_preview,
    regenerate_preview,
    set_preview_lock,
    slot_budget,
    swap_preview_blocks,
)
from .calendar_store import CalendarCollaborator, InMemoryCalendarStore
from .catalog import assign_tasks, assign_theme, clear_block
from .completion import CompletionResult, complete_wizard
from .config import get_settings
from .drafts import DraftLifecycleController, create_draft_store
from .errors import CompletionError, UnknownReferenceError
from .models import CalendarBlock, CreationMethod, WizardState
from .navigator import navigator
from .plan_client import HttpPlanCreationClient, PlanCreationClient
from .step_graph import step_definition
from .validation import describe_step_issues, incomplete_theme_sub_areas

router = APIRouter(prefix="/api/wizard", tags=["wizard"])
logger = logging.getLogger(__name__)

_controllers: Dict[str, DraftLifecycleController] = {}
_controllers_lock = threading.Lock()
_calendar_store = InMemoryCalendarStore()


def get_controller(draft_key: str) -> DraftLifecycleController:
    with _controllers_lock:
        controller = _controllers.get(draft_key)
        if controller is None:
            controller = DraftLifecycleController(create_draft_store(draft_key))
            _controllers[draft_key] = controller
        return controller


def _existing_controller(draft_key: str) -> DraftLifecycleController:
    with _controllers_lock:
        controller = _controllers.get(draft_key)
    if controller is not None:
        return controller
    store = create_draft_store(draft_key)
    if store.load_draft() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No draft for '{draft_key}'.")
    return get_controller(draft_key)


def shutdown_controllers() -> None:
    """Persist pending saves and drop every live controller."""
    with _controllers_lock:
        controllers = list(_controllers.values())
        _controllers.clear()
    for controller in controllers:
        controller.flush()
        controller.teardown()


def get_plan_client() -> PlanCreationClient:
    return HttpPlanCreationClient(get_settings())


def get_calendar_store() -> CalendarCollaborator:
    return _calendar_store


class NextRequest(BaseModel):
    confirm_incomplete: bool = False


class GoToRequest(BaseModel):
    step: int


class MethodRequest(BaseModel):
    creation_method: Optional[CreationMethod] = None


class SlotRefPayload(BaseModel):
    date: date
    position: int = Field(..., ge=1)

    def as_ref(self) -> Tuple[date, int]:
        return (self.date, self.position)


class PreviewRequest(BaseModel):
    action: Literal["generate", "regenerate", "swap", "lock"] = "generate"
    first: Optional[SlotRefPayload] = None
    second: Optional[SlotRefPayload] = None
    locked: bool = True


class AssignmentRequest(BaseModel):
    action: Literal["theme", "tasks", "clear"]
    subject_id: str = Field(..., min_length=1)
    block_id: str = Field(..., min_length=1)
    theme_id: Optional[str] = None
    task_ids: List[str] = Field(default_factory=list)


class CompleteRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=160)


class NavigationResponse(BaseModel):
    state: WizardState
    moved: bool
    current_subject: Optional[str] = None
    issues: List[str] = Field(default_factory=list)
    incomplete_sub_areas: List[Tuple[str, str]] = Field(default_factory=list)


class ValidationResponse(BaseModel):
    step: int
    kind: Optional[str]
    valid: bool
    issues: List[str]


class AllocationResponse(BaseModel):
    blocks: Dict[str, List[CalendarBlock]]
    distribution: Dict[str, Dict[str, float]]
    budgets: Dict[str, Dict[str, int]]


def _navigation_response(before: WizardState, after: WizardState) -> NavigationResponse:
    moved = after.navigation != before.navigation
    return NavigationResponse(
        state=after,
        moved=moved,
        current_subject=navigator.current_subject(after),
        issues=[] if moved else describe_step_issues(after),
        incomplete_sub_areas=incomplete_theme_sub_areas(after),
    )


@router.get("/draft/{draft_key}", response_model=WizardState)
def read_draft(draft_key: str) -> WizardState:
    return _existing_controller(draft_key).state


@router.get("/draft/{draft_key}/exists")
def draft_exists(draft_key: str) -> Dict[str, bool]:
    with _controllers_lock:
        controller = _controllers.get(draft_key)
    if controller is not None and controller.state.navigation.current_step > 1:
        return {"exists": True}
    return {"exists": create_draft_store(draft_key).has_draft()}


@router.put("/draft/{draft_key}", response_model=WizardState)
def update_draft(draft_key: str, changes: Dict[str, Any]) -> WizardState:
    controller = get_controller(draft_key)
    try:
        return controller.update(changes)
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.delete("/draft/{draft_key}")
def delete_draft(draft_key: str) -> Dict[str, str]:
    controller = get_controller(draft_key)
    controller.discard()
    with _controllers_lock:
        _controllers.pop(draft_key, None)
    return {"status": "deleted"}


@router.post("/{draft_key}/next", response_model=NavigationResponse)
def next_step(draft_key: str, request: NextRequest) -> NavigationResponse:
    controller = _existing_controller(draft_key)
    before, after = controller.transact(
        lambda state: navigator.next_step(state, confirm_exit=lambda incomplete: request.confirm_incomplete)
    )
    return _navigation_response(before, after)


@router.post("/{draft_key}/previous", response_model=NavigationResponse)
def previous_step(draft_key: str) -> NavigationResponse:
    before, after = _existing_controller(draft_key).transact(navigator.previous_step)
    return _navigation_response(before, after)


@router.post("/{draft_key}/goto", response_model=NavigationResponse)
def go_to_step(draft_key: str, request: GoToRequest) -> NavigationResponse:
    def jump(state: WizardState) -> WizardState:
        if not 1 <= request.step <= state.navigation.total_steps:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Step must be between 1 and {state.navigation.total_steps}.",
            )
        return navigator.go_to(state, request.step)

    before, after = _existing_controller(draft_key).transact(jump)
    return _navigation_response(before, after)


@router.post("/{draft_key}/method", response_model=WizardState)
def select_method(draft_key: str, request: MethodRequest) -> WizardState:
    _, after = get_controller(draft_key).transact(
        lambda state: navigator.select_creation_method(state, request.creation_method)
    )
    return after


@router.get("/{draft_key}/validation", response_model=ValidationResponse)
def validate_step(draft_key: str) -> ValidationResponse:
    state = _existing_controller(draft_key).state
    definition = step_definition(state.creation_method, state.navigation.current_step)
    issues = describe_step_issues(state)
    return ValidationResponse(
        step=state.navigation.current_step,
        kind=definition.kind.value if definition else None,
        valid=not issues,
        issues=issues,
    )


def _apply_assignment(state: WizardState, request: AssignmentRequest) -> WizardState:
    if request.action == "theme":
        if not request.theme_id:
            raise ValueError("theme_id is required.")
        return assign_theme(state, request.subject_id, request.block_id, request.theme_id)
    if request.action == "tasks":
        return assign_tasks(state, request.subject_id, request.block_id, request.task_ids)
    return clear_block(state, request.subject_id, request.block_id)


@router.post("/{draft_key}/assignments", response_model=WizardState)
def update_assignment(draft_key: str, request: AssignmentRequest) -> WizardState:
    controller = _existing_controller(draft_key)
    try:
        _, after = controller.transact(lambda state: _apply_assignment(state, request))
    except UnknownReferenceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return after


def _apply_preview(state: WizardState, request: PreviewRequest) -> WizardState:
    if request.action == "generate":
        preview = generate_preview(state)
    elif request.action == "regenerate":
        preview = regenerate_preview(state)
    else:
        if state.preview_calendar is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No preview to edit.")
        if request.first is None or (request.action == "swap" and request.second is None):
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Missing slot reference.")
        if request.action == "swap":
            assert request.second is not None
            preview = swap_preview_blocks(state.preview_calendar, request.first.as_ref(), request.second.as_ref())
        else:
            preview = set_preview_lock(state.preview_calendar, request.first.as_ref(), request.locked)
    return state.model_copy(update={"preview_calendar": preview}, deep=True)


@router.post("/{draft_key}/preview", response_model=WizardState)
def update_preview(draft_key: str, request: PreviewRequest) -> WizardState:
    _, after = _existing_controller(draft_key).transact(lambda state: _apply_preview(state, request))
    return after


@router.post("/{draft_key}/allocation", response_model=AllocationResponse)
def run_allocation(draft_key: str) -> AllocationResponse:
    state = _existing_controller(draft_key).state
    blocks = allocate(state)
    budgets = {}
    for subject_id in state.subject_ids():
        budget = slot_budget(state, subject_id)
        budgets[subject_id] = {"total": budget.total, "used": budget.used, "available": budget.available}
    return AllocationResponse(
        blocks={day.isoformat(): day_blocks for day, day_blocks in sorted(blocks.items())},
        distribution=distribution_summary(state, blocks),
        budgets=budgets,
    )


@router.post("/{draft_key}/complete", response_model=CompletionResult)
async def complete(
    draft_key: str,
    request: CompleteRequest,
    plan_client: PlanCreationClient = Depends(get_plan_client),
    calendar: CalendarCollaborator = Depends(get_calendar_store),
) -> CompletionResult:
    controller = _existing_controller(draft_key)
    controller.flush()
    try:
        result = await complete_wizard(
            controller.state,
            plan_client,
            calendar,
            create_draft_store(draft_key),
            name=request.name,
        )
    except CompletionError as exc:
        logger.warning("Wizard completion failed for %s: %s", draft_key, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    controller.teardown()
    with _controllers_lock:
        _controllers.pop(draft_key, None)
    return result


__all__ = [
    "get_calendar_store",
    "get_controller",
    "get_plan_client",
    "router",
    "shutdown_controllers",
]
