"""
Adapters from raw report JSON to strict record models.

Uploaded reports are produced by an external parser and have no enforced
schema: fields go missing, arrive under alternative keys, or carry the
wrong type. Everything in this module is total. Malformed input degrades
to ``None`` or an empty list and never raises, so reconciliation can run
on whatever the database returned.

All fallback-key handling (``name``/``medication_name``/``drug_name`` and
friends) lives here rather than in the reconciliation engine.
"""

from __future__ import annotations

import copy
import json
import math
from typing import Any, Iterable

import structlog
from pydantic import ValidationError

from knowledge.vitals import normalize_clinical_name
from src.models.records import (
    Condition,
    HealthSnapshot,
    Medication,
    Parameter,
    ParameterStatus,
    Report,
    ReportPayload,
    Severity,
)

logger = structlog.get_logger(__name__)

# Status words some extractors use for trend rather than range
STATUS_ALIASES: dict[str, ParameterStatus] = {
    "normal": ParameterStatus.NORMAL,
    "improved": ParameterStatus.NORMAL,
    "stable": ParameterStatus.NORMAL,
    "warning": ParameterStatus.WARNING,
    "worsened": ParameterStatus.WARNING,
    "critical": ParameterStatus.CRITICAL,
}

_CONDITION_KEYS = {
    "id",
    "name",
    "condition",
    "severity",
    "currentStatus",
    "current_status",
    "diagnosedDate",
    "diagnosed_date",
    "relatedParameters",
    "related_parameters",
}


# =============================================================================
# SCALAR COERCION
# =============================================================================


def first_present(*values: Any) -> Any:
    """Return the first truthy value, or None."""
    for value in values:
        if value:
            return value
    return None


def as_text(value: Any) -> str | None:
    """Trimmed string for text or numbers; None for blanks and other types."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    return None


def as_number(value: Any) -> int | float | None:
    """Numeric value from a number or numeric string; integral floats become ints."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if isinstance(number, float):
        if not math.isfinite(number):
            return None
        if number.is_integer():
            return int(number)
    return number


def as_scalar(value: Any) -> Any:
    """Keep JSON scalars, stringify nothing else."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return None


def as_status(value: Any) -> ParameterStatus:
    if isinstance(value, str):
        return STATUS_ALIASES.get(value.strip().lower(), ParameterStatus.NORMAL)
    return ParameterStatus.NORMAL


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


# =============================================================================
# ENTITY ADAPTERS
# =============================================================================


def adapt_parameter(raw: Any, index: int, report: Report) -> Parameter | None:
    """Map one raw parameter; entries without a usable name are dropped."""
    if not isinstance(raw, dict):
        return None
    name = as_text(raw.get("name"))
    if not name:
        return None

    timestamp = first_present(
        as_text(raw.get("timestamp")),
        as_text(raw.get("date")),
        report.date,
        report.uploaded_at,
    )
    return Parameter(
        id=as_text(raw.get("id")) or f"param-{index}-{report.id}",
        name=name,
        value=as_scalar(raw.get("value")),
        unit=as_text(raw.get("unit")),
        status=as_status(first_present(raw.get("status"), raw.get("interpretation"))),
        timestamp=timestamp,
    )


def adapt_condition(raw: Any) -> Condition | None:
    """
    Map a condition given either as a bare string or an object.

    Object conditions keep their extra keys; the name comes from ``name``
    or ``condition``.
    """
    if isinstance(raw, str):
        name = as_text(raw)
        return Condition(name=name) if name else None
    if not isinstance(raw, dict):
        return None

    name = as_text(raw.get("name")) or as_text(raw.get("condition"))
    if not name:
        return None

    extras = {
        key: value
        for key, value in raw.items()
        if isinstance(key, str)
        and key not in _CONDITION_KEYS
        and key.isidentifier()
        and not key.startswith(("_", "model_"))
    }

    severity = as_text(raw.get("severity"))
    try:
        severity = Severity(severity.lower()) if severity else None
    except ValueError:
        severity = None

    related = raw.get("relatedParameters", raw.get("related_parameters"))
    related_names = [p for p in related if isinstance(p, str)] if isinstance(related, list) else None

    try:
        return Condition(
            **extras,
            id=as_text(raw.get("id")),
            name=name,
            severity=severity,
            currentStatus=as_text(first_present(raw.get("currentStatus"), raw.get("current_status"))),
            diagnosedDate=as_text(first_present(raw.get("diagnosedDate"), raw.get("diagnosed_date"))),
            relatedParameters=related_names,
        )
    except (ValidationError, TypeError) as e:
        logger.warning("condition_dropped", name=name, error=str(e))
        return None


def is_valid_medication_name(name: str | None) -> bool:
    """Reject empty names, a lone '.', and single characters."""
    return bool(name) and name != "." and len(name) > 1


def adapt_medication(raw: Any, index: int, report: Report) -> Medication | None:
    """Map one raw medication, resolving alternative key names."""
    if not isinstance(raw, dict):
        return None

    name = as_text(first_present(raw.get("name"), raw.get("medication_name"), raw.get("drug_name")))
    if not is_valid_medication_name(name):
        return None

    return Medication(
        id=as_text(raw.get("id")) or f"med-{normalize_clinical_name(name) or 'unnamed'}-{index}",
        name=name,
        dosage=as_text(first_present(raw.get("dosage"), raw.get("dose"), raw.get("strength"))),
        frequency=as_text(first_present(raw.get("frequency"), raw.get("freq"))),
        startDate=first_present(
            as_text(raw.get("startDate")),
            as_text(raw.get("start_date")),
            report.uploaded_at,
            report.date,
        ),
    )


def _load_report_json(value: Any) -> dict:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return value if isinstance(value, dict) else {}


def adapt_payload(data: Any, report: Report) -> ReportPayload:
    """Adapt the ``report_json.data`` block against its owning report."""
    if not isinstance(data, dict):
        return ReportPayload()

    profile = data.get("profile")
    raw_medications = _as_list(data.get("medications"))

    parameters = [adapt_parameter(p, i, report) for i, p in enumerate(_as_list(data.get("parameters")))]
    conditions = [adapt_condition(c) for c in _as_list(data.get("conditions"))]
    medications = [adapt_medication(m, i, report) for i, m in enumerate(raw_medications)]

    return ReportPayload(
        profile=copy.deepcopy(profile) if isinstance(profile, dict) else None,
        parameters=[p for p in parameters if p is not None],
        conditions=[c for c in conditions if c is not None],
        medications=[m for m in medications if m is not None],
        lists_medications=len(raw_medications) > 0,
    )


def adapt_report(raw: Any) -> Report | None:
    """
    Adapt one ``health_reports`` row.

    ``date`` falls back to ``uploaded_at``, matching how report listings
    label an upload.
    """
    if isinstance(raw, Report):
        return raw
    if not isinstance(raw, dict):
        return None

    uploaded_at = as_text(raw.get("uploaded_at"))
    report = Report(
        id=as_text(raw.get("id")),
        uploaded_at=uploaded_at,
        date=as_text(raw.get("date")) or uploaded_at,
        file_type=as_text(raw.get("file_type")),
    )
    report_json = _load_report_json(raw.get("report_json"))
    report.payload = adapt_payload(report_json.get("data"), report)
    return report


def adapt_reports(raws: Iterable[Any] | None) -> list[Report]:
    """Adapt a list of report rows, skipping entries that are not objects."""
    if not raws or isinstance(raws, (str, bytes, dict)):
        return []
    reports = [adapt_report(r) for r in raws]
    return [r for r in reports if r is not None]


def adapt_snapshot(raw: Any) -> HealthSnapshot | None:
    """Adapt a ``patient_health_snapshot`` row; None when absent or unusable."""
    if raw is None or isinstance(raw, HealthSnapshot):
        return raw
    if not isinstance(raw, dict):
        return None

    conditions = [as_text(c) for c in _as_list(raw.get("chronic_conditions"))]
    age = as_number(raw.get("age"))
    try:
        return HealthSnapshot(
            patient_id=as_text(raw.get("patient_id")),
            systolic_bp=as_number(raw.get("systolic_bp")),
            diastolic_bp=as_number(raw.get("diastolic_bp")),
            heart_rate=as_number(raw.get("heart_rate")),
            spo2=as_number(raw.get("spo2")),
            temperature=as_number(raw.get("temperature")),
            hba1c=as_number(raw.get("hba1c")),
            ldl=as_number(raw.get("ldl")),
            vitamin_b12=as_number(raw.get("vitamin_b12")),
            chronic_conditions=[c for c in conditions if c],
            age=int(age) if age is not None else None,
            last_updated=as_text(raw.get("last_updated")),
            source_report_id=as_text(raw.get("source_report_id")),
        )
    except ValidationError as e:
        logger.warning("snapshot_dropped", error=str(e))
        return None
