"""
Health record models for Niraiva.

These Pydantic models are the strict shapes that uploaded report data is
adapted into before reconciliation, and the shape of the reconciled view
that dashboards consume. Field aliases keep the camelCase keys the portal
clients read (``currentStatus``, ``startDate`` and so on).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================


class ParameterStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class ParameterSource(str, Enum):
    """Where a dashboard parameter came from."""
    SNAPSHOT = "snapshot"
    REPORT = "report"


# =============================================================================
# CLINICAL ENTITIES
# =============================================================================


class Parameter(BaseModel):
    """A measured value such as blood pressure or pulse."""
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str
    value: Any = None
    unit: str | None = None
    status: ParameterStatus = ParameterStatus.NORMAL
    timestamp: str | None = Field(
        default=None,
        description="Measurement time: the parameter's own, else its report's date or upload time",
    )
    source: ParameterSource = ParameterSource.REPORT


class Condition(BaseModel):
    """
    A diagnosis listed in a report or in the health snapshot.

    Keys the report carried beyond the known fields are preserved.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = None
    name: str
    severity: Severity | None = None
    current_status: str | None = Field(default=None, alias="currentStatus")
    diagnosed_date: str | None = Field(default=None, alias="diagnosedDate")
    related_parameters: list[str] | None = Field(default=None, alias="relatedParameters")


class Medication(BaseModel):
    """A medication from the newest report that lists any."""
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str
    dosage: str | None = None
    frequency: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")


class ReportPayload(BaseModel):
    """The adapted ``report_json.data`` block of one report."""
    profile: dict[str, Any] | None = None
    parameters: list[Parameter] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    medications: list[Medication] = Field(default_factory=list)
    lists_medications: bool = Field(
        default=False,
        description="True when the raw report carried a non-empty medications array",
    )


class Report(BaseModel):
    """An uploaded health report after adaptation."""
    id: str | None = None
    uploaded_at: str | None = None
    date: str | None = None
    file_type: str | None = None
    payload: ReportPayload = Field(default_factory=ReportPayload)


class HealthSnapshot(BaseModel):
    """
    Authoritative latest vitals for a patient.

    Maintained outside the portal; when present its values take precedence
    over anything inferred from uploaded reports.
    """
    patient_id: str | None = None
    systolic_bp: float | None = None
    diastolic_bp: float | None = None
    heart_rate: float | None = None
    spo2: float | None = None
    temperature: float | None = None
    hba1c: float | None = None
    ldl: float | None = None
    vitamin_b12: float | None = None
    chronic_conditions: list[str] = Field(default_factory=list)
    age: int | None = None
    last_updated: str | None = None
    source_report_id: str | None = None


# =============================================================================
# RECONCILED VIEW
# =============================================================================


class ReconciledView(BaseModel):
    """The merged, deduplicated record shown on dashboards."""
    profile: dict[str, Any] | None = None
    parameters: list[Parameter] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    medications: list[Medication] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.profile or self.parameters or self.conditions or self.medications)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys clients expect."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# PARAMETER TRENDS
# =============================================================================


class TrendDirection(str, Enum):
    """How the latest reading compares with the one before it."""
    IMPROVED = "improved"
    STABLE = "stable"
    WORSENED = "worsened"


class TrendPoint(BaseModel):
    """One stored reading of a parameter."""
    id: str | None = None
    value: Any = None
    unit: str | None = None
    status: ParameterStatus = ParameterStatus.NORMAL
    measured_at: str | None = None
    source: str | None = None
    delta: int | float | None = Field(
        default=None,
        description="Change from the previous numeric reading",
    )


class ParameterTrend(BaseModel):
    """Readings of one parameter over time, oldest first."""
    name: str
    points: list[TrendPoint] = Field(default_factory=list)
    trend: TrendDirection | None = None

    @property
    def latest(self) -> TrendPoint | None:
        return self.points[-1] if self.points else None
