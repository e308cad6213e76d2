"""Merge-style updates and field resets for ``WizardState``."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import BaseModel

from .catalog import prune_block_assignments
from .constants import DEFAULT_WEIGHT_STEP, WEIGHT_TOTAL
from .models import AiSettings, NavigationState, WizardState
from .period import recommend_vacation_days
from .step_graph import METHOD_CHANGE_RESETS, LOOP_IDS, ResetField, total_steps

logger = logging.getLogger(__name__)

_NESTED_FIELDS = ("period", "daily_structure", "ai_settings")
# Written only by the navigator.
_NAVIGATOR_FIELDS = ("navigation",)
_LOOP_FIELDS: Dict[ResetField, str] = {
    ResetField.SUB_AREA_LOOP: LOOP_IDS[0],
    ResetField.THEME_LOOP: LOOP_IDS[1],
    ResetField.BLOCK_LOOP: LOOP_IDS[2],
}


def new_state() -> WizardState:
    return WizardState()


def normalize_week_pattern(pattern: Mapping[str, List[str]], blocks_per_day: int) -> Dict[str, List[str]]:
    """Pad (repeating the last tag) or trim every weekday to ``blocks_per_day`` entries."""
    normalized: Dict[str, List[str]] = {}
    for weekday, tags in pattern.items():
        tags = list(tags)
        if len(tags) > blocks_per_day:
            tags = tags[:blocks_per_day]
        elif tags and len(tags) < blocks_per_day:
            tags = tags + [tags[-1]] * (blocks_per_day - len(tags))
        normalized[weekday] = tags
    return normalized


def default_weights(subject_ids: Iterable[str]) -> Dict[str, int]:
    """Equal split rounded down to multiples of 5; the remainder goes to the first subject."""
    ids = list(subject_ids)
    if not ids:
        return {}
    base = (WEIGHT_TOTAL // len(ids)) // DEFAULT_WEIGHT_STEP * DEFAULT_WEIGHT_STEP
    weights = {subject_id: base for subject_id in ids}
    weights[ids[0]] += WEIGHT_TOTAL - base * len(ids)
    return weights


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def apply_update(state: WizardState, changes: Mapping[str, Any]) -> WizardState:
    """Shallow-merge ``changes`` into ``state`` and re-derive dependent fields.

    Nested settings objects merge key by key. Unknown keys and navigation
    changes raise ``ValueError``.
    """
    unknown = [key for key in changes if key not in WizardState.model_fields]
    if unknown:
        raise ValueError(f"Unknown wizard fields: {', '.join(sorted(unknown))}")
    owned = [key for key in changes if key in _NAVIGATOR_FIELDS]
    if owned:
        raise ValueError(f"Fields are changed through navigation only: {', '.join(sorted(owned))}")

    merged = state.model_dump()
    for key, value in changes.items():
        value = _plain(value)
        if key in _NESTED_FIELDS and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    updated = WizardState.model_validate(merged)

    daily_changes = changes.get("daily_structure")
    explicit_pattern = isinstance(daily_changes, Mapping) and "week_pattern" in daily_changes
    if updated.daily_structure.blocks_per_day != state.daily_structure.blocks_per_day and not explicit_pattern:
        updated.daily_structure.week_pattern = normalize_week_pattern(
            updated.daily_structure.week_pattern, updated.daily_structure.blocks_per_day
        )

    period = updated.period
    period_changes = changes.get("period")
    explicit_vacation = isinstance(period_changes, Mapping) and "vacation_days" in period_changes
    if (
        updated.daily_structure.week_pattern != state.daily_structure.week_pattern
        and not explicit_vacation
        and period.vacation_days is not None
        and period.start_date is not None
        and period.end_date is not None
    ):
        period.vacation_days = recommend_vacation_days(
            period.start_date, period.end_date, updated.daily_structure.week_pattern
        )

    if updated.creation_method != state.creation_method:
        if state.creation_method is not None and updated.creation_method is not None:
            logger.info("Creation method changed from %s to %s", state.creation_method, updated.creation_method)
            updated = reset_fields(updated, METHOD_CHANGE_RESETS)
    updated.navigation.total_steps = total_steps(updated.creation_method)
    if updated.navigation.current_step > updated.navigation.total_steps:
        updated.navigation.current_step = updated.navigation.total_steps

    if "subjects" in changes or "subject_catalog" in changes or "preview_calendar" in changes:
        prune_block_assignments(updated)

    updated.last_modified = datetime.now(timezone.utc)
    return updated


def _clear_loop(navigation: NavigationState, loop_id: str) -> None:
    navigation.loop_cursors.pop(loop_id, None)
    navigation.completed_flags.pop(loop_id, None)


def reset_fields(state: WizardState, fields: Iterable[ResetField]) -> WizardState:
    """Return a copy with each listed field restored to its initial value."""
    updated = state.model_copy(deep=True)
    for field in fields:
        if field is ResetField.SUBJECTS:
            updated.subjects = []
        elif field is ResetField.SUB_AREAS:
            updated.subject_catalog = {}
        elif field is ResetField.THEMES:
            for sub_areas in updated.subject_catalog.values():
                for sub_area in sub_areas:
                    sub_area.themes = []
        elif field is ResetField.WEIGHTS:
            for subject in updated.subjects:
                subject.weight = None
        elif field is ResetField.BLOCK_ASSIGNMENTS:
            updated.block_assignments = {}
        elif field is ResetField.PREVIEW:
            updated.preview_calendar = None
        elif field is ResetField.DISTRIBUTION_MODE:
            updated.distribution_mode = None
        elif field is ResetField.SUB_AREA_MODE:
            updated.sub_area_mode = None
        elif field is ResetField.SELECTED_TEMPLATE:
            updated.selected_template = None
        elif field is ResetField.AI_SETTINGS:
            updated.ai_settings = AiSettings()
        elif field is ResetField.AUTOMATIC_PLAN:
            updated.automatic_plan = None
        elif field is ResetField.SUB_AREA_ORDER:
            updated.sub_area_order = []
        elif field is ResetField.LEARNING_DAYS_ORDER:
            updated.learning_days_order = []
        elif field is ResetField.ADJUSTMENTS:
            updated.adjustments = {}
        elif field in _LOOP_FIELDS:
            _clear_loop(updated.navigation, _LOOP_FIELDS[field])
        else:  # pragma: no cover - exhaustive over ResetField
            raise ValueError(f"Unhandled reset field {field!r}")
    prune_block_assignments(updated)
    return updated


__all__ = [
    "apply_update",
    "default_weights",
    "new_state",
    "normalize_week_pattern",
    "reset_fields",
]
