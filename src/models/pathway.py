"""
Diagnostic pathway models for Niraiva.

A pathway template is a guideline graph of care steps for one chronic
condition. Projecting a patient onto it marks each step with the
patient events that evidence it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StepType(str, Enum):
    INVESTIGATION = "investigation"
    DECISION = "decision"
    TREATMENT = "treatment"
    FOLLOW_UP = "follow_up"
    MILESTONE = "milestone"


class StepStatus(str, Enum):
    PENDING = "pending"
    CURRENT = "current"
    COMPLETED = "completed"
    WARNING = "warning"


class EventKind(str, Enum):
    DIAGNOSIS = "diagnosis"
    TEST = "test"
    MEDICATION = "medication"


class PathwayEvent(BaseModel):
    """One piece of patient evidence: a diagnosis, a test result or a medication."""
    id: str
    kind: EventKind
    name: str
    date: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class PathwayStep(BaseModel):
    id: str
    label: str
    type: StepType
    description: str | None = None
    criteria: list[str] = Field(default_factory=list)


class ProjectedStep(PathwayStep):
    """A template step with the patient's evidence attached."""
    status: StepStatus = StepStatus.PENDING
    matched_event: PathwayEvent | None = Field(
        default=None,
        description="Most recent matching event",
    )
    matches: list[PathwayEvent] = Field(default_factory=list)


class PathwayProjection(BaseModel):
    condition: str
    steps: list[ProjectedStep] = Field(default_factory=list)
    edges: list[tuple[str, str]] = Field(default_factory=list)

    @property
    def current_step(self) -> ProjectedStep | None:
        return next((s for s in self.steps if s.status == StepStatus.CURRENT), None)
