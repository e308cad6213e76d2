"""Period calculator partitioning and recommendations."""

from __future__ import annotations

import random
from datetime import date, timedelta
from typing import Dict, List

from lernplan.models import PeriodSettings
from lernplan.period import (
    classify_date,
    compute_boundaries,
    day_kind,
    iter_days,
    learning_days,
    learning_days_per_week,
    plan_days,
    recommend_buffer_days,
    recommend_vacation_days,
    weekday_key,
)


def _pattern(blocks: int = 2) -> Dict[str, List[str]]:
    pattern = {day: ["learning"] * blocks for day in ("monday", "tuesday", "wednesday", "thursday", "friday")}
    pattern.update({"saturday": ["free"] * blocks, "sunday": ["free"] * blocks})
    return pattern


def test_weekday_key_is_monday_first() -> None:
    assert weekday_key(date(2025, 1, 6)) == "monday"
    assert weekday_key(date(2025, 1, 12)) == "sunday"
    assert weekday_key(date(2025, 1, 1)) == "wednesday"


def test_missing_or_inverted_dates_have_no_boundaries() -> None:
    assert compute_boundaries(PeriodSettings()) is None
    assert compute_boundaries(PeriodSettings(start_date=date(2025, 1, 1))) is None
    assert compute_boundaries(PeriodSettings(start_date=date(2025, 2, 1), end_date=date(2025, 1, 1))) is None
    assert plan_days(PeriodSettings(), _pattern()) == []
    assert classify_date(None, date(2025, 1, 1)) == "out_of_range"


def test_period_partition_holds_for_random_ranges() -> None:
    rng = random.Random(20250101)
    for _ in range(200):
        start = date(2025, 1, 1) + timedelta(days=rng.randint(0, 300))
        total = rng.randint(2, 120)
        end = start + timedelta(days=total - 1)
        buffer_days = rng.randint(0, total - 1)
        vacation_days = rng.randint(0, total - 1 - buffer_days)
        period = PeriodSettings(
            start_date=start, end_date=end, buffer_days=buffer_days, vacation_days=vacation_days
        )
        boundaries = compute_boundaries(period)
        assert boundaries is not None

        days = list(iter_days(boundaries))
        assert len(days) == total == boundaries.total_days
        tags = [classify_date(boundaries, day) for day in days]
        assert all(tag in ("learning", "vacation", "buffer") for tag in tags)

        buffer = [day for day, tag in zip(days, tags) if tag == "buffer"]
        vacation = [day for day, tag in zip(days, tags) if tag == "vacation"]
        learning = [day for day, tag in zip(days, tags) if tag == "learning"]
        assert buffer == days[total - buffer_days:]
        assert vacation == days[total - buffer_days - vacation_days:total - buffer_days]
        assert learning == days[: total - buffer_days - vacation_days]
        assert boundaries.learning_end == (learning[-1] if learning else start - timedelta(days=1))


def test_null_reserve_days_count_as_zero_without_persisting() -> None:
    period = PeriodSettings(start_date=date(2025, 1, 1), end_date=date(2025, 1, 10))
    plans = plan_days(period, _pattern())
    assert {plan.tag for plan in plans} == {"learning"}
    assert period.buffer_days is None
    assert period.vacation_days is None


def test_reserve_days_produce_single_full_day_block() -> None:
    period = PeriodSettings(
        start_date=date(2025, 1, 1), end_date=date(2025, 1, 31), buffer_days=2, vacation_days=3
    )
    plans = {plan.date: plan for plan in plan_days(period, _pattern(blocks=4))}
    assert plans[date(2025, 1, 31)].slots == ["buffer"]
    assert plans[date(2025, 1, 30)].slots == ["buffer"]
    assert plans[date(2025, 1, 27)].slots == ["vacation"]
    assert plans[date(2025, 1, 29)].slots == ["vacation"]
    assert plans[date(2025, 1, 26)].tag == "learning"
    assert plans[date(2025, 1, 24)].slots == ["learning"] * 4


def test_reserve_days_are_clamped_to_range() -> None:
    period = PeriodSettings(
        start_date=date(2025, 1, 1), end_date=date(2025, 1, 5), buffer_days=3, vacation_days=10
    )
    boundaries = compute_boundaries(period)
    assert boundaries is not None
    assert boundaries.buffer_days == 3
    assert boundaries.vacation_days == 2
    assert [classify_date(boundaries, day) for day in iter_days(boundaries)] == [
        "vacation",
        "vacation",
        "buffer",
        "buffer",
        "buffer",
    ]


def test_learning_days_skip_weekends_and_reserves() -> None:
    period = PeriodSettings(
        start_date=date(2025, 1, 1), end_date=date(2025, 1, 31), buffer_days=2, vacation_days=3
    )
    days = learning_days(period, _pattern())
    assert len(days) == 18
    assert days[0] == date(2025, 1, 1)
    assert days[-1] == date(2025, 1, 24)


def test_learning_days_per_week_counts_days_with_learning_blocks() -> None:
    pattern = _pattern()
    pattern["saturday"] = ["free", "learning"]
    assert learning_days_per_week(pattern) == 6


def test_day_kind() -> None:
    assert day_kind(["learning", "learning"]) == "learning_day"
    assert day_kind(["free"]) == "free"
    assert day_kind(["learning", "free"]) == "mixed"
    assert day_kind(["exam"]) == "mixed"


def test_recommend_buffer_days() -> None:
    assert recommend_buffer_days(date(2025, 1, 1), date(2025, 1, 31)) == 2
    assert recommend_buffer_days(date(2025, 1, 1), date(2025, 6, 30)) == 12
    assert recommend_buffer_days(date(2025, 1, 1), date(2025, 2, 15)) == 3
    assert recommend_buffer_days(date(2025, 1, 1), date(2025, 1, 5)) == 2


def test_recommend_vacation_days_scales_with_learning_days() -> None:
    assert recommend_vacation_days(date(2025, 1, 1), date(2025, 1, 31), _pattern()) == 5
    pattern = _pattern()
    pattern["monday"] = ["free", "free"]
    assert recommend_vacation_days(date(2025, 1, 1), date(2025, 1, 31), pattern) == 4
    assert recommend_vacation_days(date(2025, 1, 1), date(2025, 4, 1), _pattern()) == 15
