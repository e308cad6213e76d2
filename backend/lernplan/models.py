"""Wizard state models shared by the navigator, validator and allocation engine."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_BLOCKS_PER_DAY,
    FREE_BLOCK,
    LEARNING_BLOCK,
    MAX_BLOCKS_PER_DAY,
    MIN_BLOCKS_PER_DAY,
    WEEK_PATTERN_BLOCK_TYPES,
    WEEKDAYS,
)

CreationMethod = Literal["calendar", "manual", "automatic", "template", "ai"]
DistributionMode = Literal["mixed", "focused", "sequential"]
SubAreaMode = Literal["manual", "prefilled"]
PeriodTag = Literal["learning", "vacation", "buffer", "out_of_range"]


def _default_week_pattern() -> Dict[str, List[str]]:
    pattern: Dict[str, List[str]] = {}
    for weekday in WEEKDAYS:
        tag = FREE_BLOCK if weekday in ("saturday", "sunday") else LEARNING_BLOCK
        pattern[weekday] = [tag] * DEFAULT_BLOCKS_PER_DAY
    return pattern


class Task(BaseModel):
    task_id: str
    name: str
    priority: Optional[int] = Field(default=None, ge=0, le=2)
    completed: bool = False


class Theme(BaseModel):
    theme_id: str
    name: str
    tasks: List[Task] = Field(default_factory=list)


class SubArea(BaseModel):
    """Subdivision of a subject owning an ordered list of themes."""

    sub_area_id: str
    name: str
    themes: List[Theme] = Field(default_factory=list)


class SubjectSelection(BaseModel):
    subject_id: str
    label: str = ""
    weight: Optional[int] = Field(default=None, ge=0, le=100)


class TaskSnapshot(BaseModel):
    """Task denormalised into a block for display."""

    task_id: str
    theme_id: str
    theme_name: str = ""
    name: str
    priority: Optional[int] = None
    completed: bool = False


class EmptyContent(BaseModel):
    kind: Literal["empty"] = "empty"


class ThemeContent(BaseModel):
    """A whole theme placed into a block, tasks included."""

    kind: Literal["theme"] = "theme"
    theme_id: str
    theme_name: str
    tasks: List[TaskSnapshot] = Field(default_factory=list)


class TaskContent(BaseModel):
    """Individually picked tasks placed into a block."""

    kind: Literal["tasks"] = "tasks"
    tasks: List[TaskSnapshot] = Field(min_length=1)


BlockContent = Annotated[Union[EmptyContent, ThemeContent, TaskContent], Field(discriminator="kind")]


def content_key(content: BlockContent) -> Optional[Tuple[str, ...]]:
    """Identity of a block's content, or None for empty blocks."""
    if isinstance(content, ThemeContent):
        return ("theme", content.theme_id)
    if isinstance(content, TaskContent):
        return ("tasks",) + tuple(task.task_id for task in content.tasks)
    return None


class PlanningBlock(BaseModel):
    block_id: str
    content: BlockContent = Field(default_factory=EmptyContent)

    @property
    def is_filled(self) -> bool:
        return not isinstance(self.content, EmptyContent)


class PeriodSettings(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    # None means "not yet computed"; 0 means the learner chose no days.
    buffer_days: Optional[int] = Field(default=None, ge=0)
    vacation_days: Optional[int] = Field(default=None, ge=0)


class DailyStructure(BaseModel):
    blocks_per_day: int = Field(default=DEFAULT_BLOCKS_PER_DAY, ge=MIN_BLOCKS_PER_DAY, le=MAX_BLOCKS_PER_DAY)
    week_pattern: Dict[str, List[str]] = Field(default_factory=_default_week_pattern)

    @field_validator("week_pattern")
    @classmethod
    def _known_tags(cls, pattern: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for weekday, tags in pattern.items():
            unknown = [tag for tag in tags if tag not in WEEK_PATTERN_BLOCK_TYPES]
            if unknown:
                raise ValueError(f"Unknown block types for {weekday}: {', '.join(unknown)}")
        return pattern


class AiSettings(BaseModel):
    focus_areas: List[str] = Field(default_factory=list)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    include_repetition: bool = True
    exam_type: Optional[str] = None


class NavigationState(BaseModel):
    current_step: int = Field(default=1, ge=1)
    total_steps: int = Field(default=10, ge=1)
    loop_cursors: Dict[str, int] = Field(default_factory=dict)
    completed_flags: Dict[str, Dict[str, bool]] = Field(default_factory=dict)

    def is_completed(self, loop_id: str, subject_id: str) -> bool:
        return bool(self.completed_flags.get(loop_id, {}).get(subject_id))


class PreviewBlock(BaseModel):
    position: int = Field(ge=1)
    block_type: str = LEARNING_BLOCK
    subject_id: Optional[str] = None
    content: BlockContent = Field(default_factory=EmptyContent)
    locked: bool = False


class PreviewDay(BaseModel):
    date: date
    blocks: List[PreviewBlock] = Field(default_factory=list)


class CalendarBlock(BaseModel):
    """Final per-day, per-slot output of the allocation engine."""

    model_config = ConfigDict(frozen=True)

    date: date
    position: int = Field(ge=1)
    block_type: str
    title: str = ""
    tasks: Tuple[TaskSnapshot, ...] = ()
    locked: bool = False
    subject_id: Optional[str] = None


CalendarBlockMap = Dict[date, List[CalendarBlock]]


class WizardState(BaseModel):
    """Single mutable record persisted as the wizard draft."""

    period: PeriodSettings = Field(default_factory=PeriodSettings)
    daily_structure: DailyStructure = Field(default_factory=DailyStructure)
    creation_method: Optional[CreationMethod] = None
    subjects: List[SubjectSelection] = Field(default_factory=list)
    subject_catalog: Dict[str, List[SubArea]] = Field(default_factory=dict)
    block_assignments: Dict[str, List[PlanningBlock]] = Field(default_factory=dict)
    distribution_mode: Optional[DistributionMode] = None
    preview_calendar: Optional[List[PreviewDay]] = None
    navigation: NavigationState = Field(default_factory=NavigationState)
    sub_area_mode: Optional[SubAreaMode] = None
    selected_template: Optional[str] = None
    ai_settings: AiSettings = Field(default_factory=AiSettings)
    automatic_plan: Optional[Dict[str, Any]] = None
    sub_area_order: List[str] = Field(default_factory=list)
    learning_days_order: List[str] = Field(default_factory=list)
    adjustments: Dict[str, Any] = Field(default_factory=dict)
    last_modified: Optional[datetime] = None

    def subject_ids(self) -> List[str]:
        return [subject.subject_id for subject in self.subjects]

    def weights(self) -> Dict[str, Optional[int]]:
        return {subject.subject_id: subject.weight for subject in self.subjects}

    def iter_themes(self, subject_id: str) -> Iterator[Tuple[SubArea, Theme]]:
        for sub_area in self.subject_catalog.get(subject_id, []):
            for theme in sub_area.themes:
                yield sub_area, theme

    def find_theme(self, theme_id: str) -> Optional[Tuple[str, Theme]]:
        for subject_id in self.subject_catalog:
            for _, theme in self.iter_themes(subject_id):
                if theme.theme_id == theme_id:
                    return subject_id, theme
        return None


__all__ = [
    "AiSettings",
    "BlockContent",
    "CalendarBlock",
    "CalendarBlockMap",
    "CreationMethod",
    "DailyStructure",
    "DistributionMode",
    "EmptyContent",
    "NavigationState",
    "PeriodSettings",
    "PeriodTag",
    "PlanningBlock",
    "PreviewBlock",
    "PreviewDay",
    "SubArea",
    "SubAreaMode",
    "SubjectSelection",
    "Task",
    "TaskContent",
    "TaskSnapshot",
    "Theme",
    "ThemeContent",
    "WizardState",
    "content_key",
]
