"""Declarative step graph per creation method and the backward reset table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union


class StepKind(str, Enum):
    PERIOD = "period"
    BUFFER_DAYS = "buffer_days"
    VACATION_DAYS = "vacation_days"
    BLOCKS_PER_DAY = "blocks_per_day"
    WEEK_PATTERN = "week_pattern"
    CREATION_METHOD = "creation_method"
    CALENDAR_EDITOR = "calendar_editor"
    TEMPLATE_SELECT = "template_select"
    AI_SETTINGS = "ai_settings"
    AUTOMATIC_PLAN = "automatic_plan"
    SUB_AREA_ORDER = "sub_area_order"
    LEARNING_DAYS_ORDER = "learning_days_order"
    ADJUSTMENTS = "adjustments"
    SUBJECT_SELECTION = "subject_selection"
    SUB_AREA_MODE = "sub_area_mode"
    SUB_AREA_EDIT = "sub_area_edit"
    SUB_AREA_SUMMARY = "sub_area_summary"
    THEMES_INTRO = "themes_intro"
    THEME_EDIT = "theme_edit"
    THEME_SUMMARY = "theme_summary"
    WEIGHTING = "weighting"
    CAPACITY_OVERVIEW = "capacity_overview"
    BLOCKS_INTRO = "blocks_intro"
    BLOCK_EDIT = "block_edit"
    BLOCKS_SUMMARY = "blocks_summary"
    DISTRIBUTION_MODE = "distribution_mode"
    CALENDAR_PREVIEW = "calendar_preview"
    CONFIRMATION = "confirmation"


SUB_AREA_LOOP = "sub_areas"
THEME_LOOP = "themes"
BLOCK_LOOP = "blocks"
LOOP_IDS: Tuple[str, ...] = (SUB_AREA_LOOP, THEME_LOOP, BLOCK_LOOP)


@dataclass(frozen=True)
class Linear:
    next_step: int


@dataclass(frozen=True)
class LoopFirstIncomplete:
    """Repeat until every subject is complete, jumping to the first incomplete one."""

    loop_id: str
    exit_step: int


@dataclass(frozen=True)
class LoopSequential:
    """Advance one subject per call; leave after the last subject."""

    loop_id: str
    exit_step: int


@dataclass(frozen=True)
class Terminal:
    pass


Transition = Union[Linear, LoopFirstIncomplete, LoopSequential, Terminal]


@dataclass(frozen=True)
class StepDefinition:
    number: int
    kind: StepKind
    transition: Transition

    @property
    def loop_id(self) -> Optional[str]:
        if isinstance(self.transition, (LoopFirstIncomplete, LoopSequential)):
            return self.transition.loop_id
        return None


SHARED_STEPS: Tuple[StepKind, ...] = (
    StepKind.PERIOD,
    StepKind.BUFFER_DAYS,
    StepKind.VACATION_DAYS,
    StepKind.BLOCKS_PER_DAY,
    StepKind.WEEK_PATTERN,
    StepKind.CREATION_METHOD,
)


def _build_graph(kinds: Sequence[StepKind], loops: Optional[Dict[int, Transition]] = None) -> List[StepDefinition]:
    loops = loops or {}
    steps: List[StepDefinition] = []
    last = len(kinds)
    for index, kind in enumerate(kinds, start=1):
        transition: Transition
        if index in loops:
            transition = loops[index]
        elif index == last:
            transition = Terminal()
        else:
            transition = Linear(index + 1)
        steps.append(StepDefinition(number=index, kind=kind, transition=transition))
    return steps


STEP_GRAPHS: Dict[str, List[StepDefinition]] = {
    "calendar": _build_graph(SHARED_STEPS + (StepKind.CALENDAR_EDITOR,)),
    "template": _build_graph(
        SHARED_STEPS + (StepKind.TEMPLATE_SELECT, StepKind.LEARNING_DAYS_ORDER, StepKind.ADJUSTMENTS)
    ),
    "ai": _build_graph(SHARED_STEPS + (StepKind.AI_SETTINGS, StepKind.ADJUSTMENTS)),
    "automatic": _build_graph(
        SHARED_STEPS
        + (
            StepKind.AUTOMATIC_PLAN,
            StepKind.SUB_AREA_ORDER,
            StepKind.LEARNING_DAYS_ORDER,
            StepKind.ADJUSTMENTS,
        )
    ),
    "manual": _build_graph(
        SHARED_STEPS
        + (
            StepKind.SUBJECT_SELECTION,
            StepKind.SUB_AREA_MODE,
            StepKind.SUB_AREA_EDIT,
            StepKind.SUB_AREA_SUMMARY,
            StepKind.THEMES_INTRO,
            StepKind.THEME_EDIT,
            StepKind.THEME_SUMMARY,
            StepKind.WEIGHTING,
            StepKind.CAPACITY_OVERVIEW,
            StepKind.BLOCKS_INTRO,
            StepKind.BLOCK_EDIT,
            StepKind.BLOCKS_SUMMARY,
            StepKind.DISTRIBUTION_MODE,
            StepKind.CALENDAR_PREVIEW,
            StepKind.ADJUSTMENTS,
            StepKind.CONFIRMATION,
        ),
        loops={
            9: LoopFirstIncomplete(SUB_AREA_LOOP, exit_step=10),
            12: LoopSequential(THEME_LOOP, exit_step=13),
            17: LoopFirstIncomplete(BLOCK_LOOP, exit_step=18),
        },
    ),
}

# Graph reported before a creation method is chosen.
DEFAULT_METHOD = "automatic"


def graph_for(method: Optional[str]) -> List[StepDefinition]:
    return STEP_GRAPHS[method or DEFAULT_METHOD]


def total_steps(method: Optional[str]) -> int:
    return len(graph_for(method))


def step_definition(method: Optional[str], step: int) -> Optional[StepDefinition]:
    graph = graph_for(method)
    if 1 <= step <= len(graph):
        return graph[step - 1]
    return None


class ResetField(str, Enum):
    SUBJECTS = "subjects"
    SUB_AREAS = "sub_areas"
    THEMES = "themes"
    WEIGHTS = "weights"
    BLOCK_ASSIGNMENTS = "block_assignments"
    PREVIEW = "preview"
    DISTRIBUTION_MODE = "distribution_mode"
    SUB_AREA_MODE = "sub_area_mode"
    SUB_AREA_LOOP = "loop:sub_areas"
    THEME_LOOP = "loop:themes"
    BLOCK_LOOP = "loop:blocks"
    SELECTED_TEMPLATE = "selected_template"
    AI_SETTINGS = "ai_settings"
    AUTOMATIC_PLAN = "automatic_plan"
    SUB_AREA_ORDER = "sub_area_order"
    LEARNING_DAYS_ORDER = "learning_days_order"
    ADJUSTMENTS = "adjustments"


ALL_LOOPS: Tuple[ResetField, ...] = (ResetField.SUB_AREA_LOOP, ResetField.THEME_LOOP, ResetField.BLOCK_LOOP)

CASCADE_RESETS: Dict[Tuple[str, int, int], Tuple[ResetField, ...]] = {
    ("manual", 7, 6): (
        ResetField.SUB_AREAS,
        ResetField.THEMES,
        ResetField.WEIGHTS,
        ResetField.BLOCK_ASSIGNMENTS,
        ResetField.PREVIEW,
        ResetField.DISTRIBUTION_MODE,
    )
    + ALL_LOOPS,
    ("manual", 9, 8): (
        ResetField.THEMES,
        ResetField.WEIGHTS,
        ResetField.BLOCK_ASSIGNMENTS,
        ResetField.PREVIEW,
        ResetField.THEME_LOOP,
        ResetField.BLOCK_LOOP,
    ),
    ("manual", 12, 11): (ResetField.BLOCK_ASSIGNMENTS, ResetField.PREVIEW, ResetField.BLOCK_LOOP),
    ("manual", 14, 13): (ResetField.BLOCK_ASSIGNMENTS, ResetField.PREVIEW, ResetField.BLOCK_LOOP),
    ("manual", 17, 16): (ResetField.PREVIEW,),
    ("manual", 20, 19): (ResetField.PREVIEW,),
    ("calendar", 7, 6): (ResetField.PREVIEW,),
    ("template", 7, 6): (ResetField.SELECTED_TEMPLATE,),
    ("ai", 7, 6): (ResetField.AI_SETTINGS,),
    ("automatic", 7, 6): (ResetField.AUTOMATIC_PLAN,),
}

# Cleared when the creation method changes to a different value.
METHOD_CHANGE_RESETS: Tuple[ResetField, ...] = (
    ResetField.SUBJECTS,
    ResetField.SUB_AREAS,
    ResetField.WEIGHTS,
    ResetField.BLOCK_ASSIGNMENTS,
    ResetField.PREVIEW,
    ResetField.DISTRIBUTION_MODE,
    ResetField.SUB_AREA_MODE,
    ResetField.SELECTED_TEMPLATE,
    ResetField.AI_SETTINGS,
    ResetField.AUTOMATIC_PLAN,
    ResetField.SUB_AREA_ORDER,
    ResetField.LEARNING_DAYS_ORDER,
    ResetField.ADJUSTMENTS,
) + ALL_LOOPS


def cascade_for(method: Optional[str], from_step: int, to_step: int) -> Tuple[ResetField, ...]:
    if method is None:
        return ()
    return CASCADE_RESETS.get((method, from_step, to_step), ())


__all__ = [
    "ALL_LOOPS",
    "BLOCK_LOOP",
    "CASCADE_RESETS",
    "LOOP_IDS",
    "Linear",
    "LoopFirstIncomplete",
    "LoopSequential",
    "METHOD_CHANGE_RESETS",
    "ResetField",
    "STEP_GRAPHS",
    "SUB_AREA_LOOP",
    "StepDefinition",
    "StepKind",
    "THEME_LOOP",
    "Terminal",
    "Transition",
    "cascade_for",
    "graph_for",
    "step_definition",
    "total_steps",
]
