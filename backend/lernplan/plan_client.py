"""Client for the external plan-creation API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import Settings
from .constants import DEFAULT_PLAN_NAME_FORMAT
from .errors import PlanCreationError
from .models import CreationMethod, DistributionMode, WizardState

logger = logging.getLogger(__name__)


class PlanSubjectPayload(BaseModel):
    subject_id: str
    label: str = ""
    weight: Optional[int] = None


class PlanRequestPayload(BaseModel):
    name: str
    start_date: date
    end_date: date
    buffer_days: int = 0
    vacation_days: int = 0
    blocks_per_day: int
    week_pattern: Dict[str, List[str]]
    creation_method: Optional[CreationMethod] = None
    distribution_mode: Optional[DistributionMode] = None
    subjects: List[PlanSubjectPayload] = Field(default_factory=list)


class PlanCreationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    plan_id: Optional[str] = Field(default=None, alias="planId")
    error: Optional[str] = None


class PlanCreationClient(Protocol):
    async def create_plan(self, payload: PlanRequestPayload) -> PlanCreationResult:  # pragma: no cover
        ...


def build_plan_request(state: WizardState, *, name: Optional[str] = None) -> PlanRequestPayload:
    """Serialisable subset of the wizard state; null reserve days are sent as 0."""
    period = state.period
    if period.start_date is None or period.end_date is None:
        raise PlanCreationError("Start and end date are required to create a plan.")
    return PlanRequestPayload(
        name=name or period.start_date.strftime(DEFAULT_PLAN_NAME_FORMAT),
        start_date=period.start_date,
        end_date=period.end_date,
        buffer_days=period.buffer_days or 0,
        vacation_days=period.vacation_days or 0,
        blocks_per_day=state.daily_structure.blocks_per_day,
        week_pattern={key: list(value) for key, value in state.daily_structure.week_pattern.items()},
        creation_method=state.creation_method,
        distribution_mode=state.distribution_mode,
        subjects=[
            PlanSubjectPayload(subject_id=subject.subject_id, label=subject.label, weight=subject.weight)
            for subject in state.subjects
        ],
    )


class HttpPlanCreationClient:
    """Posts plan requests to ``plan_api_url``; never retries."""

    def __init__(self, settings: Settings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._url = settings.plan_api_url
        self._timeout = settings.plan_api_timeout_seconds
        self._client = client

    async def create_plan(self, payload: PlanRequestPayload) -> PlanCreationResult:
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout)
        close_client = self._client is None
        try:
            response = await local_client.post(self._url, json=payload.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PlanCreationError(f"Plan creation request failed: {exc}") from exc
        finally:
            if close_client:
                await local_client.aclose()

        try:
            result = PlanCreationResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise PlanCreationError(f"Plan creation returned an invalid payload: {exc}") from exc

        logger.debug("Plan creation responded success=%s plan_id=%s", result.success, result.plan_id)
        return result


__all__ = [
    "HttpPlanCreationClient",
    "PlanCreationClient",
    "PlanCreationResult",
    "PlanRequestPayload",
    "PlanSubjectPayload",
    "build_plan_request",
]
