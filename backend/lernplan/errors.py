"""Exception hierarchy for the learning plan wizard."""

from __future__ import annotations

import logging
from typing import Any

from .config import get_settings

logger = logging.getLogger(__name__)


class WizardError(Exception):
    """Base class for wizard failures."""


class InvariantViolation(WizardError):
    """Programming error: state reached a shape the engine never produces."""


class UnknownReferenceError(WizardError, LookupError):
    """A subject, block, theme or task id does not exist in the wizard state."""


class CompletionError(WizardError):
    """External call failed while completing the wizard; state is preserved."""


class PlanCreationError(CompletionError):
    pass


class CalendarHandoffError(CompletionError):
    pass


def report_violation(message: str, **context: Any) -> None:
    """Raise in debug mode, otherwise log so the caller can skip the offending entry."""
    if get_settings().debug_assertions:
        raise InvariantViolation(message)
    logger.warning("Skipping invariant violation: %s %s", message, context)


__all__ = [
    "CalendarHandoffError",
    "CompletionError",
    "InvariantViolation",
    "PlanCreationError",
    "UnknownReferenceError",
    "WizardError",
    "report_violation",
]
