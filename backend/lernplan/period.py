"""Period calculator: partitions the plan range and resolves per-day slots."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterator, List, Literal, Optional, Sequence

from .constants import BUFFER_BLOCK, FREE_BLOCK, LEARNING_BLOCK, VACATION_BLOCK, WEEKDAYS
from .models import PeriodSettings, PeriodTag

DayKind = Literal["learning_day", "free", "mixed"]


def weekday_key(day: date) -> str:
    """Monday-first weekday name used to index week patterns."""
    return WEEKDAYS[day.weekday()]


@dataclass(frozen=True)
class PeriodBoundaries:
    start_date: date
    end_date: date
    buffer_days: int
    vacation_days: int

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    @property
    def vacation_start(self) -> date:
        return self.end_date - timedelta(days=self.buffer_days + self.vacation_days - 1)

    @property
    def learning_end(self) -> date:
        return self.vacation_start - timedelta(days=1)


def compute_boundaries(period: PeriodSettings) -> Optional[PeriodBoundaries]:
    """Resolve the three contiguous ranges, or None when the range is unusable.

    Null buffer/vacation values count as zero here only. Reserved days are
    clamped so they never extend before the start date.
    """
    if period.start_date is None or period.end_date is None:
        return None
    if period.end_date < period.start_date:
        return None

    total = (period.end_date - period.start_date).days + 1
    buffer_days = min(max(period.buffer_days or 0, 0), total)
    vacation_days = min(max(period.vacation_days or 0, 0), total - buffer_days)
    return PeriodBoundaries(
        start_date=period.start_date,
        end_date=period.end_date,
        buffer_days=buffer_days,
        vacation_days=vacation_days,
    )


def classify_date(boundaries: Optional[PeriodBoundaries], day: date) -> PeriodTag:
    if boundaries is None or day < boundaries.start_date or day > boundaries.end_date:
        return "out_of_range"
    remaining = (boundaries.end_date - day).days
    if remaining < boundaries.buffer_days:
        return "buffer"
    if remaining < boundaries.buffer_days + boundaries.vacation_days:
        return "vacation"
    return "learning"


def iter_days(boundaries: Optional[PeriodBoundaries]) -> Iterator[date]:
    if boundaries is None:
        return
    current = boundaries.start_date
    while current <= boundaries.end_date:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class DayPlan:
    date: date
    tag: PeriodTag
    slots: List[str]


def slots_for_day(
    boundaries: Optional[PeriodBoundaries],
    week_pattern: Dict[str, List[str]],
    day: date,
) -> DayPlan:
    tag = classify_date(boundaries, day)
    if tag == "buffer":
        return DayPlan(date=day, tag=tag, slots=[BUFFER_BLOCK])
    if tag == "vacation":
        return DayPlan(date=day, tag=tag, slots=[VACATION_BLOCK])
    if tag == "learning":
        return DayPlan(date=day, tag=tag, slots=list(week_pattern.get(weekday_key(day), [])))
    return DayPlan(date=day, tag=tag, slots=[])


def plan_days(period: PeriodSettings, week_pattern: Dict[str, List[str]]) -> List[DayPlan]:
    boundaries = compute_boundaries(period)
    return [slots_for_day(boundaries, week_pattern, day) for day in iter_days(boundaries)]


def learning_days(period: PeriodSettings, week_pattern: Dict[str, List[str]]) -> List[date]:
    """Learning-period dates that carry at least one learning slot."""
    return [
        plan.date
        for plan in plan_days(period, week_pattern)
        if plan.tag == "learning" and LEARNING_BLOCK in plan.slots
    ]


def learning_days_per_week(week_pattern: Dict[str, List[str]]) -> int:
    return sum(1 for weekday in WEEKDAYS if LEARNING_BLOCK in week_pattern.get(weekday, []))


def day_kind(tags: Sequence[str]) -> DayKind:
    if tags and all(tag == LEARNING_BLOCK for tag in tags):
        return "learning_day"
    if tags and all(tag == FREE_BLOCK for tag in tags):
        return "free"
    return "mixed"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def recommend_buffer_days(start_date: date, end_date: date) -> int:
    days = (end_date - start_date).days
    return max(2, _round_half_up(days / 30 * 2))


def recommend_vacation_days(start_date: date, end_date: date, week_pattern: Dict[str, List[str]]) -> int:
    days = (end_date - start_date).days
    weeks = days / 7
    return math.ceil(weeks / 6) * learning_days_per_week(week_pattern)


__all__ = [
    "DayKind",
    "DayPlan",
    "PeriodBoundaries",
    "classify_date",
    "compute_boundaries",
    "day_kind",
    "iter_days",
    "learning_days",
    "learning_days_per_week",
    "plan_days",
    "recommend_buffer_days",
    "recommend_vacation_days",
    "slots_for_day",
    "weekday_key",
]
