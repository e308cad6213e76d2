"""Flatten per-subject block assignments into a single FIFO content queue."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from .errors import report_violation
from .models import BlockContent, PlanningBlock, SubArea, TaskContent, TaskSnapshot, ThemeContent, content_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    subject_id: str
    block_id: str
    content: BlockContent
    theme_id: Optional[str] = None
    tasks: Tuple[TaskSnapshot, ...] = field(default_factory=tuple)

    @property
    def key(self) -> Optional[Tuple[str, ...]]:
        return content_key(self.content)


def _known_ids(sub_areas: Iterable[SubArea]) -> Tuple[Set[str], Set[str]]:
    theme_ids: Set[str] = set()
    task_ids: Set[str] = set()
    for sub_area in sub_areas:
        for theme in sub_area.themes:
            theme_ids.add(theme.theme_id)
            task_ids.update(task.task_id for task in theme.tasks)
    return theme_ids, task_ids


def _references_known_content(
    block: PlanningBlock,
    theme_ids: Set[str],
    task_ids: Set[str],
) -> bool:
    content = block.content
    if isinstance(content, ThemeContent):
        return content.theme_id in theme_ids
    if isinstance(content, TaskContent):
        return all(task.task_id in task_ids for task in content.tasks)
    return True


def build_content_queue(
    subject_ids: Iterable[str],
    block_assignments: Dict[str, List[PlanningBlock]],
    catalog: Optional[Dict[str, List[SubArea]]] = None,
) -> Deque[QueueEntry]:
    """Visit subjects in declared order, then their blocks in order.

    Empty blocks never take a queue position. When ``catalog`` is given,
    blocks pointing at deleted themes or tasks are reported and skipped.
    """
    queue: Deque[QueueEntry] = deque()
    for subject_id in subject_ids:
        blocks = block_assignments.get(subject_id, [])
        known: Optional[Tuple[Set[str], Set[str]]] = None
        if catalog is not None:
            known = _known_ids(catalog.get(subject_id, []))

        for block in blocks:
            if not block.is_filled:
                continue
            if known is not None and not _references_known_content(block, *known):
                report_violation(
                    "Block references content missing from the catalog",
                    subject_id=subject_id,
                    block_id=block.block_id,
                )
                continue
            content = block.content
            if isinstance(content, ThemeContent):
                entry = QueueEntry(
                    subject_id=subject_id,
                    block_id=block.block_id,
                    content=content,
                    theme_id=content.theme_id,
                    tasks=tuple(content.tasks),
                )
            elif isinstance(content, TaskContent):
                entry = QueueEntry(
                    subject_id=subject_id,
                    block_id=block.block_id,
                    content=content,
                    tasks=tuple(content.tasks),
                )
            else:
                continue
            queue.append(entry)

    logger.debug("Built content queue with %d entries", len(queue))
    return queue


__all__ = ["QueueEntry", "build_content_queue"]
