"""Block assignment and catalog maintenance operations.

Every operation returns a new ``WizardState``; the input is never mutated.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from .errors import UnknownReferenceError
from .models import (
    BlockContent,
    EmptyContent,
    PlanningBlock,
    Task,
    TaskContent,
    TaskSnapshot,
    Theme,
    ThemeContent,
    WizardState,
)

logger = logging.getLogger(__name__)


def _snapshot(theme: Theme, task: Task) -> TaskSnapshot:
    return TaskSnapshot(
        task_id=task.task_id,
        theme_id=theme.theme_id,
        theme_name=theme.name,
        name=task.name,
        priority=task.priority,
        completed=task.completed,
    )


def _require_block(state: WizardState, subject_id: str, block_id: str) -> PlanningBlock:
    for block in state.block_assignments.get(subject_id, []):
        if block.block_id == block_id:
            return block
    raise UnknownReferenceError(f"Unknown block '{block_id}' for subject '{subject_id}'.")


def _require_theme(state: WizardState, subject_id: str, theme_id: str) -> Theme:
    for _, theme in state.iter_themes(subject_id):
        if theme.theme_id == theme_id:
            return theme
    raise UnknownReferenceError(f"Unknown theme '{theme_id}' for subject '{subject_id}'.")


def assign_theme(state: WizardState, subject_id: str, block_id: str, theme_id: str) -> WizardState:
    updated = state.model_copy(deep=True)
    theme = _require_theme(updated, subject_id, theme_id)
    block = _require_block(updated, subject_id, block_id)
    block.content = ThemeContent(
        theme_id=theme.theme_id,
        theme_name=theme.name,
        tasks=[_snapshot(theme, task) for task in theme.tasks],
    )
    return updated


def assign_tasks(state: WizardState, subject_id: str, block_id: str, task_ids: Iterable[str]) -> WizardState:
    updated = state.model_copy(deep=True)
    wanted = list(dict.fromkeys(task_ids))
    if not wanted:
        raise ValueError("At least one task is required.")
    found: Dict[str, TaskSnapshot] = {}
    for _, theme in updated.iter_themes(subject_id):
        for task in theme.tasks:
            if task.task_id in wanted:
                found[task.task_id] = _snapshot(theme, task)
    missing = [task_id for task_id in wanted if task_id not in found]
    if missing:
        raise UnknownReferenceError(f"Unknown tasks for subject '{subject_id}': {', '.join(missing)}")
    block = _require_block(updated, subject_id, block_id)
    block.content = TaskContent(tasks=[found[task_id] for task_id in wanted])
    return updated


def clear_block(state: WizardState, subject_id: str, block_id: str) -> WizardState:
    updated = state.model_copy(deep=True)
    _require_block(updated, subject_id, block_id).content = EmptyContent()
    return updated


def _find_task(state: WizardState, task_id: str) -> Optional[Task]:
    for subject_id in state.subject_catalog:
        for _, theme in state.iter_themes(subject_id):
            for task in theme.tasks:
                if task.task_id == task_id:
                    return task
    return None


def _iter_contents(state: WizardState) -> Iterable[BlockContent]:
    for blocks in state.block_assignments.values():
        for block in blocks:
            yield block.content
    for day in state.preview_calendar or []:
        for preview_block in day.blocks:
            yield preview_block.content


def _refresh_snapshots(state: WizardState, task_id: str, apply: Callable[[TaskSnapshot], None]) -> None:
    for content in _iter_contents(state):
        if isinstance(content, (ThemeContent, TaskContent)):
            for snapshot in content.tasks:
                if snapshot.task_id == task_id:
                    apply(snapshot)


def toggle_task_completed(state: WizardState, task_id: str) -> WizardState:
    updated = state.model_copy(deep=True)
    task = _find_task(updated, task_id)
    if task is None:
        raise UnknownReferenceError(f"Unknown task '{task_id}'.")
    task.completed = not task.completed
    completed = task.completed

    def _apply(snapshot: TaskSnapshot) -> None:
        snapshot.completed = completed

    _refresh_snapshots(updated, task_id, _apply)
    return updated


def set_task_priority(state: WizardState, task_id: str, priority: Optional[int]) -> WizardState:
    if priority is not None and not 0 <= priority <= 2:
        raise ValueError("Priority must be between 0 and 2.")
    updated = state.model_copy(deep=True)
    task = _find_task(updated, task_id)
    if task is None:
        raise UnknownReferenceError(f"Unknown task '{task_id}'.")
    task.priority = priority

    def _apply(snapshot: TaskSnapshot) -> None:
        snapshot.priority = priority

    _refresh_snapshots(updated, task_id, _apply)
    return updated


def delete_theme(state: WizardState, theme_id: str) -> WizardState:
    updated = state.model_copy(deep=True)
    removed = False
    for sub_areas in updated.subject_catalog.values():
        for sub_area in sub_areas:
            kept = [theme for theme in sub_area.themes if theme.theme_id != theme_id]
            removed = removed or len(kept) != len(sub_area.themes)
            sub_area.themes = kept
    if not removed:
        raise UnknownReferenceError(f"Unknown theme '{theme_id}'.")
    prune_block_assignments(updated)
    return updated


def delete_task(state: WizardState, task_id: str) -> WizardState:
    updated = state.model_copy(deep=True)
    removed = False
    for subject_id in updated.subject_catalog:
        for _, theme in updated.iter_themes(subject_id):
            kept = [task for task in theme.tasks if task.task_id != task_id]
            removed = removed or len(kept) != len(theme.tasks)
            theme.tasks = kept
    if not removed:
        raise UnknownReferenceError(f"Unknown task '{task_id}'.")
    prune_block_assignments(updated)
    return updated


def _prune_content(content: BlockContent, theme_ids: Set[str], task_ids: Set[str]) -> BlockContent:
    if isinstance(content, ThemeContent):
        if content.theme_id not in theme_ids:
            return EmptyContent()
        tasks = [task for task in content.tasks if task.task_id in task_ids]
        if len(tasks) != len(content.tasks):
            return content.model_copy(update={"tasks": tasks})
        return content
    if isinstance(content, TaskContent):
        tasks = [task for task in content.tasks if task.task_id in task_ids]
        if not tasks:
            return EmptyContent()
        if len(tasks) != len(content.tasks):
            return TaskContent(tasks=tasks)
        return content
    return content


def prune_block_assignments(state: WizardState) -> int:
    """Drop references to content no longer in the catalog. Mutates ``state``.

    Assignments of subjects that are no longer selected are removed too.
    Returns the number of blocks that changed.
    """
    theme_ids: Set[str] = set()
    task_ids: Set[str] = set()
    for subject_id in state.subject_catalog:
        for _, theme in state.iter_themes(subject_id):
            theme_ids.add(theme.theme_id)
            task_ids.update(task.task_id for task in theme.tasks)

    changed = 0
    selected = set(state.subject_ids())
    for subject_id in list(state.block_assignments):
        if subject_id not in selected:
            changed += len(state.block_assignments.pop(subject_id))
            continue
        blocks: List[PlanningBlock] = state.block_assignments[subject_id]
        for block in blocks:
            pruned = _prune_content(block.content, theme_ids, task_ids)
            if pruned is not block.content:
                block.content = pruned
                changed += 1

    for day in state.preview_calendar or []:
        for preview_block in day.blocks:
            pruned = _prune_content(preview_block.content, theme_ids, task_ids)
            if pruned is not preview_block.content:
                preview_block.content = pruned
                if isinstance(pruned, EmptyContent):
                    preview_block.subject_id = None
                changed += 1

    if changed:
        logger.info("Pruned %d blocks referencing removed content", changed)
    return changed


__all__ = [
    "assign_tasks",
    "assign_theme",
    "clear_block",
    "delete_task",
    "delete_theme",
    "prune_block_assignments",
    "set_task_priority",
    "toggle_task_completed",
]
