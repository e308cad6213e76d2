"""Per-step validation predicates gating forward navigation.

Every predicate is a pure function of ``WizardState`` returning the list of
human-readable issues; a step is valid when that list is empty.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Set, Tuple

from .constants import MAX_BLOCKS_PER_DAY, MIN_BLOCKS_PER_DAY, WEEK_PATTERN_BLOCK_TYPES, WEEKDAYS, WEIGHT_TOTAL
from .models import TaskContent, ThemeContent, WizardState
from .step_graph import BLOCK_LOOP, SUB_AREA_LOOP, StepKind, step_definition

Predicate = Callable[[WizardState], List[str]]


def loop_subject(state: WizardState, loop_id: str) -> Optional[str]:
    """Subject id the loop cursor currently points at."""
    subjects = state.subject_ids()
    index = state.navigation.loop_cursors.get(loop_id, 0)
    if 0 <= index < len(subjects):
        return subjects[index]
    return None


def _period(state: WizardState) -> List[str]:
    start, end = state.period.start_date, state.period.end_date
    if start is None or end is None:
        return ["Start and end date are required."]
    if end <= start:
        return ["End date must be after the start date."]
    return []


def _buffer_days(state: WizardState) -> List[str]:
    value = state.period.buffer_days
    return [] if value is None or value >= 0 else ["Buffer days cannot be negative."]


def _vacation_days(state: WizardState) -> List[str]:
    value = state.period.vacation_days
    return [] if value is None or value >= 0 else ["Vacation days cannot be negative."]


def _blocks_per_day(state: WizardState) -> List[str]:
    value = state.daily_structure.blocks_per_day
    if MIN_BLOCKS_PER_DAY <= value <= MAX_BLOCKS_PER_DAY:
        return []
    return [f"Blocks per day must be between {MIN_BLOCKS_PER_DAY} and {MAX_BLOCKS_PER_DAY}."]


def _week_pattern(state: WizardState) -> List[str]:
    pattern = state.daily_structure.week_pattern
    issues = [f"{weekday.capitalize()} needs at least one block." for weekday in WEEKDAYS if not pattern.get(weekday)]
    for weekday in WEEKDAYS:
        unknown = [tag for tag in pattern.get(weekday, []) if tag not in WEEK_PATTERN_BLOCK_TYPES]
        if unknown:
            issues.append(f"{weekday.capitalize()} uses unknown block types: {', '.join(unknown)}.")
    return issues


def _creation_method(state: WizardState) -> List[str]:
    return [] if state.creation_method else ["Choose a creation method."]


def _template_select(state: WizardState) -> List[str]:
    return [] if state.selected_template else ["Choose a template."]


def _subject_selection(state: WizardState) -> List[str]:
    return [] if state.subjects else ["Select at least one subject."]


def _sub_area_mode(state: WizardState) -> List[str]:
    return [] if state.sub_area_mode else ["Choose how sub-areas are set up."]


def _sub_area_edit(state: WizardState) -> List[str]:
    subject_id = loop_subject(state, SUB_AREA_LOOP)
    if subject_id is None:
        return ["No subject selected."]
    if not state.subject_catalog.get(subject_id):
        return [f"Add at least one sub-area for {subject_id}."]
    return []


def _sub_area_summary(state: WizardState) -> List[str]:
    return [
        f"Add at least one sub-area for {subject_id}."
        for subject_id in state.subject_ids()
        if not state.subject_catalog.get(subject_id)
    ]


def weight_issues(state: WizardState) -> List[str]:
    if not state.subjects:
        return ["Select at least one subject."]
    issues: List[str] = []
    total = 0
    for subject in state.subjects:
        if subject.weight is None or subject.weight < 0:
            issues.append(f"{subject.subject_id} needs a weight.")
        else:
            total += subject.weight
    if not issues and total != WEIGHT_TOTAL:
        issues.append(f"Weights must add up to {WEIGHT_TOTAL}% (currently {total}%).")
    return issues


def _assigned_ids(state: WizardState, subject_id: str) -> Tuple[Set[str], Set[str]]:
    theme_ids: Set[str] = set()
    task_ids: Set[str] = set()
    for block in state.block_assignments.get(subject_id, []):
        content = block.content
        if isinstance(content, ThemeContent):
            theme_ids.add(content.theme_id)
        elif isinstance(content, TaskContent):
            task_ids.update(task.task_id for task in content.tasks)
    return theme_ids, task_ids


def unassigned_themes(state: WizardState, subject_id: str) -> List[str]:
    """Themes neither assigned whole nor fully covered by loose task assignments."""
    theme_ids, task_ids = _assigned_ids(state, subject_id)
    missing: List[str] = []
    for _, theme in state.iter_themes(subject_id):
        if theme.theme_id in theme_ids or not theme.tasks:
            continue
        if all(task.task_id in task_ids for task in theme.tasks):
            continue
        missing.append(theme.theme_id)
    return missing


def _block_edit(state: WizardState) -> List[str]:
    subject_id = loop_subject(state, BLOCK_LOOP)
    if subject_id is None:
        return ["No subject selected."]
    return [f"Theme {theme_id} is not fully assigned." for theme_id in unassigned_themes(state, subject_id)]


def _blocks_summary(state: WizardState) -> List[str]:
    issues: List[str] = []
    for subject_id in state.subject_ids():
        issues.extend(f"Theme {theme_id} is not fully assigned." for theme_id in unassigned_themes(state, subject_id))
    return issues


def _distribution_mode(state: WizardState) -> List[str]:
    return [] if state.distribution_mode else ["Choose a distribution mode."]


def _always(state: WizardState) -> List[str]:
    return []


PREDICATES: Dict[StepKind, Predicate] = {
    StepKind.PERIOD: _period,
    StepKind.BUFFER_DAYS: _buffer_days,
    StepKind.VACATION_DAYS: _vacation_days,
    StepKind.BLOCKS_PER_DAY: _blocks_per_day,
    StepKind.WEEK_PATTERN: _week_pattern,
    StepKind.CREATION_METHOD: _creation_method,
    StepKind.CALENDAR_EDITOR: _always,
    StepKind.TEMPLATE_SELECT: _template_select,
    StepKind.AI_SETTINGS: _always,
    StepKind.AUTOMATIC_PLAN: _always,
    StepKind.SUB_AREA_ORDER: _always,
    StepKind.LEARNING_DAYS_ORDER: _always,
    StepKind.ADJUSTMENTS: _always,
    StepKind.SUBJECT_SELECTION: _subject_selection,
    StepKind.SUB_AREA_MODE: _sub_area_mode,
    StepKind.SUB_AREA_EDIT: _sub_area_edit,
    StepKind.SUB_AREA_SUMMARY: _sub_area_summary,
    StepKind.THEMES_INTRO: _always,
    StepKind.THEME_EDIT: _always,
    StepKind.THEME_SUMMARY: _always,
    StepKind.WEIGHTING: weight_issues,
    StepKind.CAPACITY_OVERVIEW: _always,
    StepKind.BLOCKS_INTRO: _always,
    StepKind.BLOCK_EDIT: _block_edit,
    StepKind.BLOCKS_SUMMARY: _blocks_summary,
    StepKind.DISTRIBUTION_MODE: _distribution_mode,
    StepKind.CALENDAR_PREVIEW: _always,
    StepKind.CONFIRMATION: _always,
}


def describe_step_issues(state: WizardState) -> List[str]:
    definition = step_definition(state.creation_method, state.navigation.current_step)
    if definition is None:
        return ["Unknown step."]
    return PREDICATES[definition.kind](state)


def is_step_valid(state: WizardState) -> bool:
    return not describe_step_issues(state)


def incomplete_theme_sub_areas(state: WizardState) -> List[Tuple[str, str]]:
    """(subject_id, sub_area_id) pairs that own no theme yet."""
    return [
        (subject_id, sub_area.sub_area_id)
        for subject_id in state.subject_ids()
        for sub_area in state.subject_catalog.get(subject_id, [])
        if not sub_area.themes
    ]


def themes_complete(state: WizardState) -> bool:
    return not incomplete_theme_sub_areas(state)


__all__ = [
    "PREDICATES",
    "describe_step_issues",
    "incomplete_theme_sub_areas",
    "is_step_valid",
    "loop_subject",
    "themes_complete",
    "unassigned_themes",
    "weight_issues",
]
