"""Shared constants for the learning plan wizard."""

from typing import Tuple

WEEKDAYS: Tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

LEARNING_BLOCK = "learning"
FREE_BLOCK = "free"
VACATION_BLOCK = "vacation"
BUFFER_BLOCK = "buffer"

# Tags a weekday slot can carry. Vacation and buffer are whole-day tags produced
# by the period calculator and never appear in a week pattern.
WEEK_PATTERN_BLOCK_TYPES: Tuple[str, ...] = (LEARNING_BLOCK, "exam", "repetition", FREE_BLOCK, "private")

MIN_BLOCKS_PER_DAY = 1
MAX_BLOCKS_PER_DAY = 4
DEFAULT_BLOCKS_PER_DAY = 3

WEIGHT_TOTAL = 100
DEFAULT_WEIGHT_STEP = 5

DEFAULT_PLAN_NAME_FORMAT = "Learning plan %d.%m.%Y"
