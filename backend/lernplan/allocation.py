"""Allocation engine: weight to slot conversion and the queue-to-calendar walk.

Two materialisation paths exist. A fresh walk pops the content queue onto
learning slots in date and position order. When the learner has reviewed a
preview, the preview is converted directly instead so swaps and locks survive;
block types are always re-read from the current week pattern.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import date
from typing import Deque, Dict, List, Optional, Set, Tuple

from .constants import LEARNING_BLOCK, WEIGHT_TOTAL
from .content_queue import QueueEntry, build_content_queue
from .errors import report_violation
from .models import (
    BlockContent,
    CalendarBlock,
    CalendarBlockMap,
    EmptyContent,
    PlanningBlock,
    PreviewBlock,
    PreviewDay,
    TaskContent,
    ThemeContent,
    WizardState,
    content_key,
)
from .period import compute_boundaries, iter_days, learning_days, slots_for_day

logger = logging.getLogger(__name__)

SlotRef = Tuple[date, int]


def slot_count(learning_day_count: int, blocks_per_day: int, weight: Optional[int]) -> int:
    """floor(learning days x blocks per day x weight / 100); slack is never redistributed."""
    if not weight or weight <= 0:
        return 0
    return (learning_day_count * blocks_per_day * weight) // WEIGHT_TOTAL


def total_learning_slots(state: WizardState) -> int:
    days = learning_days(state.period, state.daily_structure.week_pattern)
    return len(days) * state.daily_structure.blocks_per_day


def subject_slot_counts(state: WizardState) -> Dict[str, int]:
    day_count = len(learning_days(state.period, state.daily_structure.week_pattern))
    blocks_per_day = state.daily_structure.blocks_per_day
    return {
        subject.subject_id: slot_count(day_count, blocks_per_day, subject.weight)
        for subject in state.subjects
    }


@dataclass(frozen=True)
class SlotBudget:
    total: int
    used: int

    @property
    def available(self) -> int:
        return max(self.total - self.used, 0)


def slot_budget(state: WizardState, subject_id: str) -> SlotBudget:
    total = subject_slot_counts(state).get(subject_id, 0)
    used = sum(1 for block in state.block_assignments.get(subject_id, []) if block.is_filled)
    return SlotBudget(total=total, used=used)


def _next_block_id(subject_id: str, taken: Set[str]) -> str:
    index = len(taken) + 1
    while f"{subject_id}-block-{index}" in taken:
        index += 1
    block_id = f"{subject_id}-block-{index}"
    taken.add(block_id)
    return block_id


def build_block_skeleton(state: WizardState) -> Dict[str, List[PlanningBlock]]:
    """Size every subject's block list to its slot count.

    Filled blocks are never dropped; only trailing empty blocks are trimmed.
    """
    counts = subject_slot_counts(state)
    skeleton: Dict[str, List[PlanningBlock]] = {}
    for subject_id in state.subject_ids():
        target = counts.get(subject_id, 0)
        blocks = [block.model_copy(deep=True) for block in state.block_assignments.get(subject_id, [])]
        taken = {block.block_id for block in blocks}
        while len(blocks) < target:
            blocks.append(PlanningBlock(block_id=_next_block_id(subject_id, taken)))
        while len(blocks) > target and not blocks[-1].is_filled:
            blocks.pop()
        skeleton[subject_id] = blocks
    return skeleton


def weights_configured(state: WizardState) -> bool:
    return any(subject.weight is not None for subject in state.subjects)


def check_weight_invariant(state: WizardState) -> bool:
    """Report weights that are set but do not sum to exactly 100."""
    if not weights_configured(state):
        return True
    weights = [subject.weight for subject in state.subjects]
    if any(weight is None for weight in weights) or sum(w or 0 for w in weights) != WEIGHT_TOTAL:
        report_violation("Subject weights must sum to 100", weights=weights)
        return False
    return True


def _allocation_queue(state: WizardState, exclude: Optional[Set[Tuple[str, ...]]] = None) -> Deque[QueueEntry]:
    queue = build_content_queue(state.subject_ids(), state.block_assignments, state.subject_catalog)
    caps: Optional[Dict[str, int]] = subject_slot_counts(state) if weights_configured(state) else None
    taken: Dict[str, int] = {}
    result: Deque[QueueEntry] = deque()
    for entry in queue:
        if exclude and entry.key in exclude:
            continue
        if caps is not None:
            if taken.get(entry.subject_id, 0) >= caps.get(entry.subject_id, 0):
                continue
            taken[entry.subject_id] = taken.get(entry.subject_id, 0) + 1
        result.append(entry)
    return result


def block_title(content: BlockContent) -> str:
    if isinstance(content, ThemeContent):
        return content.theme_name
    if isinstance(content, TaskContent):
        names: List[str] = []
        for task in content.tasks:
            if task.theme_name and task.theme_name not in names:
                names.append(task.theme_name)
        if names:
            return " / ".join(names)
        return content.tasks[0].name
    return ""


def _to_calendar_block(day: date, block: PreviewBlock) -> CalendarBlock:
    content = block.content
    tasks = tuple(content.tasks) if isinstance(content, (ThemeContent, TaskContent)) else ()
    return CalendarBlock(
        date=day,
        position=block.position,
        block_type=block.block_type,
        title=block_title(content),
        tasks=tasks,
        locked=block.locked,
        subject_id=block.subject_id,
    )


def to_block_map(days: List[PreviewDay]) -> CalendarBlockMap:
    return {day.date: [_to_calendar_block(day.date, block) for block in day.blocks] for day in days}


def _walk(state: WizardState, preserved: Optional[Dict[SlotRef, PreviewBlock]] = None) -> List[PreviewDay]:
    boundaries = compute_boundaries(state.period)
    if boundaries is None:
        return []

    preserved = preserved or {}
    exclude = {key for key in (content_key(block.content) for block in preserved.values()) if key is not None}
    queue = _allocation_queue(state, exclude)
    pattern = state.daily_structure.week_pattern

    days: List[PreviewDay] = []
    for day in iter_days(boundaries):
        plan = slots_for_day(boundaries, pattern, day)
        blocks: List[PreviewBlock] = []
        for position, block_type in enumerate(plan.slots, start=1):
            kept = preserved.get((day, position)) if plan.tag == "learning" else None
            if kept is not None:
                blocks.append(kept.model_copy(update={"block_type": block_type}, deep=True))
            elif plan.tag == "learning" and block_type == LEARNING_BLOCK and queue:
                entry = queue.popleft()
                blocks.append(
                    PreviewBlock(
                        position=position,
                        block_type=block_type,
                        subject_id=entry.subject_id,
                        content=entry.content.model_copy(deep=True),
                    )
                )
            else:
                blocks.append(PreviewBlock(position=position, block_type=block_type))
        days.append(PreviewDay(date=day, blocks=blocks))

    if queue:
        logger.info("Allocation left %d content entries unassigned", len(queue))
    return days


def generate_calendar(state: WizardState) -> CalendarBlockMap:
    """Fresh generation used when no preview exists."""
    return to_block_map(_walk(state))


def _content_exists(state: WizardState, content: BlockContent) -> bool:
    if isinstance(content, ThemeContent):
        return state.find_theme(content.theme_id) is not None
    if isinstance(content, TaskContent):
        known: Set[str] = set()
        for subject_id in state.subject_catalog:
            for _, theme in state.iter_themes(subject_id):
                known.update(task.task_id for task in theme.tasks)
        return all(task.task_id in known for task in content.tasks)
    return True


def rematerialize_preview(state: WizardState) -> CalendarBlockMap:
    """Convert the reviewed preview into calendar blocks.

    Content and locks are copied by position; the block type comes from the
    current week pattern. Preview days outside the range are ignored and
    positions beyond the day's slot count are dropped.
    """
    boundaries = compute_boundaries(state.period)
    if boundaries is None or state.preview_calendar is None:
        return {}

    pattern = state.daily_structure.week_pattern
    by_date = {day.date: day for day in state.preview_calendar}
    result: CalendarBlockMap = {}
    for day in iter_days(boundaries):
        plan = slots_for_day(boundaries, pattern, day)
        previewed = {block.position: block for block in by_date[day].blocks} if day in by_date else {}
        blocks: List[CalendarBlock] = []
        for position, block_type in enumerate(plan.slots, start=1):
            source = previewed.get(position) if plan.tag == "learning" else None
            if source is None:
                blocks.append(CalendarBlock(date=day, position=position, block_type=block_type))
                continue
            content: BlockContent = source.content
            if not _content_exists(state, content):
                report_violation("Preview block references deleted content", date=day, position=position)
                content = EmptyContent()
            blocks.append(
                _to_calendar_block(
                    day,
                    PreviewBlock(
                        position=position,
                        block_type=block_type,
                        subject_id=source.subject_id if not isinstance(content, EmptyContent) else None,
                        content=content,
                        locked=source.locked,
                    ),
                )
            )
        result[day] = blocks
    return result


def allocate(state: WizardState) -> CalendarBlockMap:
    """Run the allocation engine; a reviewed preview wins over fresh generation."""
    if state.period.start_date is None or state.period.end_date is None:
        return {}
    check_weight_invariant(state)
    if state.preview_calendar is not None:
        return rematerialize_preview(state)
    return generate_calendar(state)


def generate_preview(state: WizardState) -> List[PreviewDay]:
    return _walk(state)


def _find_block(preview: List[PreviewDay], ref: SlotRef) -> Optional[PreviewBlock]:
    day, position = ref
    for preview_day in preview:
        if preview_day.date != day:
            continue
        for block in preview_day.blocks:
            if block.position == position:
                return block
    return None


def swap_preview_blocks(preview: List[PreviewDay], first: SlotRef, second: SlotRef) -> List[PreviewDay]:
    """Swap the content of two slots.

    Locked, missing or non-learning slots (free slots, vacation and buffer
    sentinels) leave the preview unchanged.
    """
    if first == second:
        return preview
    updated = [day.model_copy(deep=True) for day in preview]
    block_a = _find_block(updated, first)
    block_b = _find_block(updated, second)
    if block_a is None or block_b is None or block_a.locked or block_b.locked:
        return preview
    if block_a.block_type != LEARNING_BLOCK or block_b.block_type != LEARNING_BLOCK:
        logger.debug("Refusing swap between %s and %s; both slots must be learning blocks", first, second)
        return preview
    block_a.content, block_b.content = block_b.content, block_a.content
    block_a.subject_id, block_b.subject_id = block_b.subject_id, block_a.subject_id
    return updated


def set_preview_lock(preview: List[PreviewDay], ref: SlotRef, locked: bool) -> List[PreviewDay]:
    updated = [day.model_copy(deep=True) for day in preview]
    block = _find_block(updated, ref)
    if block is None:
        return preview
    block.locked = locked
    return updated


def regenerate_preview(state: WizardState) -> List[PreviewDay]:
    """Rebuild the preview, keeping locked blocks in place and out of the queue."""
    preserved: Dict[SlotRef, PreviewBlock] = {}
    for day in state.preview_calendar or []:
        for block in day.blocks:
            if block.locked:
                preserved[(day.date, block.position)] = block
    return _walk(state, preserved)


def distribution_summary(state: WizardState, blocks: CalendarBlockMap) -> Dict[str, Dict[str, float]]:
    """Per-subject share of content-carrying blocks against the target weight."""
    counts: Dict[str, int] = {subject_id: 0 for subject_id in state.subject_ids()}
    for day_blocks in blocks.values():
        for block in day_blocks:
            if block.subject_id is not None:
                counts[block.subject_id] = counts.get(block.subject_id, 0) + 1
    total = sum(counts.values())
    weights = state.weights()
    summary: Dict[str, Dict[str, float]] = {}
    for subject_id, count in counts.items():
        share = int(count / total * 100 + 0.5) if total else 0
        summary[subject_id] = {
            "blocks": count,
            "share": share,
            "target": weights.get(subject_id) or 0,
        }
    return summary


__all__ = [
    "SlotBudget",
    "allocate",
    "block_title",
    "build_block_skeleton",
    "check_weight_invariant",
    "distribution_summary",
    "generate_calendar",
    "generate_preview",
    "regenerate_preview",
    "rematerialize_preview",
    "set_preview_lock",
    "slot_budget",
    "slot_count",
    "subject_slot_counts",
    "swap_preview_blocks",
    "to_block_map",
    "total_learning_slots",
]
