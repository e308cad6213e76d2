"""Step navigator: next/previous/go-to over the per-method step graph."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from .allocation import build_block_skeleton, generate_preview
from .models import CreationMethod, WizardState
from .step_graph import (
    Linear,
    LoopFirstIncomplete,
    LoopSequential,
    StepKind,
    Terminal,
    cascade_for,
    step_definition,
    total_steps,
)
from .telemetry import emit_event
from .validation import incomplete_theme_sub_areas, is_step_valid, loop_subject, themes_complete
from .wizard_state import apply_update, default_weights, reset_fields

logger = logging.getLogger(__name__)

ConfirmExit = Callable[[List[Tuple[str, str]]], bool]


def _first_incomplete(state: WizardState, loop_id: str) -> Optional[int]:
    for index, subject_id in enumerate(state.subject_ids()):
        if not state.navigation.is_completed(loop_id, subject_id):
            return index
    return None


class StepNavigator:
    """Pure transitions over ``WizardState``; every call returns a new state."""

    def total_steps(self, method: Optional[str]) -> int:
        return total_steps(method)

    def current_subject(self, state: WizardState) -> Optional[str]:
        definition = step_definition(state.creation_method, state.navigation.current_step)
        if definition is None or definition.loop_id is None:
            return None
        return loop_subject(state, definition.loop_id)

    def select_creation_method(self, state: WizardState, method: Optional[CreationMethod]) -> WizardState:
        return apply_update(state, {"creation_method": method})

    def next_step(
        self,
        state: WizardState,
        *,
        confirm_exit: Optional[ConfirmExit] = None,
    ) -> WizardState:
        """Advance one transition.

        Invalid steps and terminal steps return ``state`` unchanged. Leaving the
        theme loop with incomplete sub-areas requires ``confirm_exit`` to accept.
        """
        definition = step_definition(state.creation_method, state.navigation.current_step)
        if definition is None or isinstance(definition.transition, Terminal):
            return state
        if not is_step_valid(state):
            logger.debug("Step %s is not valid; staying", definition.kind.value)
            return state

        transition = definition.transition
        updated = state.model_copy(deep=True)

        if isinstance(transition, Linear):
            return self._enter(updated, transition.next_step, origin=definition.number)

        subjects = updated.subject_ids()
        loop_id = transition.loop_id
        cursor = updated.navigation.loop_cursors.get(loop_id, 0)
        if 0 <= cursor < len(subjects):
            updated.navigation.completed_flags.setdefault(loop_id, {})[subjects[cursor]] = True

        if isinstance(transition, LoopFirstIncomplete):
            following = _first_incomplete(updated, loop_id)
            if following is not None:
                return self._advance_loop(updated, loop_id, following)
            return self._enter(updated, transition.exit_step, origin=definition.number)

        if isinstance(transition, LoopSequential):
            if cursor < len(subjects) - 1:
                return self._advance_loop(updated, loop_id, cursor + 1)
            if not themes_complete(updated):
                incomplete = incomplete_theme_sub_areas(updated)
                if confirm_exit is None or not confirm_exit(incomplete):
                    return state
            return self._enter(updated, transition.exit_step, origin=definition.number)

        raise TypeError(f"Unhandled transition {transition!r}")  # pragma: no cover

    def previous_step(self, state: WizardState) -> WizardState:
        """Step back once, clearing the fields the reset table names for this edge."""
        current = state.navigation.current_step
        if current <= 1:
            return state
        target = current - 1
        fields = cascade_for(state.creation_method, current, target)
        updated = reset_fields(state, fields) if fields else state.model_copy(deep=True)
        updated.navigation.current_step = target
        if fields:
            emit_event(
                "wizard_cascade_reset",
                method=state.creation_method,
                from_step=current,
                to_step=target,
                cleared=[field.value for field in fields],
            )
        emit_event("wizard_step_changed", method=state.creation_method, from_step=current, to_step=target)
        return updated

    def go_to(self, state: WizardState, step: int) -> WizardState:
        """Jump without cascading; out-of-range targets are ignored."""
        total = total_steps(state.creation_method)
        if step < 1 or step > total or step == state.navigation.current_step:
            return state
        return self._enter(state.model_copy(deep=True), step, origin=state.navigation.current_step)

    def _advance_loop(self, state: WizardState, loop_id: str, index: int) -> WizardState:
        state.navigation.loop_cursors[loop_id] = index
        emit_event(
            "wizard_loop_advanced",
            loop_id=loop_id,
            subject_id=state.subject_ids()[index],
            step=state.navigation.current_step,
        )
        return state

    def _enter(self, state: WizardState, step: int, *, origin: int) -> WizardState:
        definition = step_definition(state.creation_method, step)
        if definition is None:
            return state
        state.navigation.current_step = step

        transition = definition.transition
        if isinstance(transition, LoopFirstIncomplete):
            state.navigation.loop_cursors[transition.loop_id] = _first_incomplete(state, transition.loop_id) or 0
        elif isinstance(transition, LoopSequential):
            state.navigation.loop_cursors[transition.loop_id] = 0

        if definition.kind is StepKind.WEIGHTING and all(subject.weight is None for subject in state.subjects):
            weights = default_weights(state.subject_ids())
            for subject in state.subjects:
                subject.weight = weights[subject.subject_id]
        elif definition.kind is StepKind.BLOCK_EDIT:
            state.block_assignments = build_block_skeleton(state)
        elif definition.kind is StepKind.CALENDAR_PREVIEW and state.preview_calendar is None:
            state.preview_calendar = generate_preview(state)

        emit_event("wizard_step_changed", method=state.creation_method, from_step=origin, to_step=step)
        return state


navigator = StepNavigator()


__all__ = ["ConfirmExit", "StepNavigator", "navigator"]
