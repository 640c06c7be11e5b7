"""
Data models for Niraiva.
"""

from .records import (
    ParameterStatus,
    ParameterSource,
    Severity,
    Parameter,
    Condition,
    Medication,
    ReportPayload,
    Report,
    HealthSnapshot,
    ReconciledView,
    TrendDirection,
    TrendPoint,
    ParameterTrend,
)
from .pathway import (
    StepType,
    StepStatus,
    EventKind,
    PathwayEvent,
    PathwayStep,
    ProjectedStep,
    PathwayProjection,
)
from .user import (
    UserRole,
    UserProfile,
    ConsentStatus,
    Consent,
    Authority,
    TimelineEvent,
    PersonalRecordType,
    PersonalRecord,
    DoctorNote,
)

__all__ = [
    "ParameterStatus",
    "ParameterSource",
    "Severity",
    "Parameter",
    "Condition",
    "Medication",
    "ReportPayload",
    "Report",
    "HealthSnapshot",
    "ReconciledView",
    "TrendDirection",
    "TrendPoint",
    "ParameterTrend",
    "StepType",
    "StepStatus",
    "EventKind",
    "PathwayEvent",
    "PathwayStep",
    "ProjectedStep",
    "PathwayProjection",
    "UserRole",
    "UserProfile",
    "ConsentStatus",
    "Consent",
    "Authority",
    "TimelineEvent",
    "PersonalRecordType",
    "PersonalRecord",
    "DoctorNote",
]
