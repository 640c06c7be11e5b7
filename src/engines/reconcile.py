"""
Multi-source health record reconciliation.

Merges any number of uploaded reports and an optional authoritative health
snapshot into one deduplicated view of profile, vitals, conditions and
medications. With no reports the view is empty, whatever the snapshot
holds. The function is pure: it performs no I/O, never mutates its
inputs, and never raises for malformed data.

Precedence rules:
- Profile: newest report that has one.
- Parameters: snapshot-derived values win; report values fill the gaps.
- Medications: only the newest report with a non-empty medication list.
- Conditions: a non-empty snapshot condition list replaces report conditions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from knowledge.vitals import (
    normalize_clinical_name,
    primary_vitals,
    calculate_bmi,
    blood_pressure_status,
    heart_rate_status,
    spo2_status,
    temperature_status,
    hba1c_status,
    ldl_status,
)
from src.engines.adapters import adapt_reports, adapt_snapshot, as_number
from src.models.records import (
    Condition,
    HealthSnapshot,
    Medication,
    Parameter,
    ParameterSource,
    ParameterStatus,
    ReconciledView,
    Report,
)
from src.time_utils import parse_timestamp

SNAPSHOT_CONDITION_STATUS = "controlled"


def reconcile(reports: Iterable[Any] | None, snapshot: Any = None) -> ReconciledView:
    """
    Build the reconciled view for one patient.

    Args:
        reports: Report rows (raw dicts or adapted Report models), any order
        snapshot: Optional health snapshot row or model

    Returns:
        ReconciledView with profile, parameters, conditions and medications
    """
    ordered = sort_newest_first(adapt_reports(reports))
    if not ordered:
        return ReconciledView()
    health_snapshot = adapt_snapshot(snapshot)

    return ReconciledView(
        profile=select_profile(ordered),
        parameters=merge_parameters(
            snapshot_parameters(health_snapshot),
            collect_report_parameters(ordered),
        ),
        conditions=aggregate_conditions(ordered, health_snapshot),
        medications=select_medications(ordered),
    )


# =============================================================================
# ORDERING
# =============================================================================


def _report_time(report: Report) -> datetime | None:
    return parse_timestamp(report.uploaded_at) or parse_timestamp(report.date)


def sort_newest_first(reports: list[Report]) -> list[Report]:
    """
    Order reports newest first by upload time.

    Reports without a usable timestamp follow the dated ones, keeping
    their relative order.
    """
    dated = [(r, t) for r in reports if (t := _report_time(r)) is not None]
    undated = [r for r in reports if _report_time(r) is None]
    dated.sort(key=lambda pair: pair[1], reverse=True)
    return [r for r, _ in dated] + undated


# =============================================================================
# PROFILE
# =============================================================================


def _measure(profile: dict, key: str) -> int | float | None:
    measure = profile.get(key)
    if isinstance(measure, dict):
        return as_number(measure.get("value"))
    return None


def select_profile(reports: list[Report]) -> dict | None:
    """Profile of the newest report that carries one, with BMI back-filled."""
    for report in reports:
        if report.payload.profile is None:
            continue
        profile = dict(report.payload.profile)
        if not profile.get("bmi"):
            height_cm = _measure(profile, "height")
            weight_kg = _measure(profile, "weight")
            if height_cm and weight_kg:
                profile["bmi"] = calculate_bmi(weight_kg, height_cm)
        return profile
    return None


# =============================================================================
# PARAMETERS
# =============================================================================


def collect_report_parameters(reports: list[Report]) -> list[Parameter]:
    """Primary-vital parameters from every report, newest report first."""
    whitelist = primary_vitals()
    return [
        parameter
        for report in reports
        for parameter in report.payload.parameters
        if normalize_clinical_name(parameter.name) in whitelist
    ]


def _snapshot_parameter(
    key: str, name: str, value: Any, unit: str, status: str, snapshot: HealthSnapshot
) -> Parameter:
    return Parameter(
        id=f"snap-{key}",
        name=name,
        value=value,
        unit=unit,
        status=ParameterStatus(status),
        timestamp=snapshot.last_updated,
        source=ParameterSource.SNAPSHOT,
    )


def snapshot_parameters(snapshot: HealthSnapshot | None) -> list[Parameter]:
    """
    Derive up to six parameters from a health snapshot.

    Zero or missing readings are treated as not recorded.
    """
    if snapshot is None:
        return []

    s = snapshot
    params = []

    if s.systolic_bp and s.diastolic_bp:
        systolic, diastolic = as_number(s.systolic_bp), as_number(s.diastolic_bp)
        params.append(_snapshot_parameter(
            "bp", "Blood Pressure", f"{systolic}/{diastolic}", "mmHg",
            blood_pressure_status(systolic, diastolic), s,
        ))
    if s.heart_rate:
        params.append(_snapshot_parameter(
            "hr", "Pulse", as_number(s.heart_rate), "bpm", heart_rate_status(s.heart_rate), s,
        ))
    if s.spo2:
        params.append(_snapshot_parameter(
            "spo2", "Oxygen Saturation", as_number(s.spo2), "%", spo2_status(s.spo2), s,
        ))
    if s.temperature:
        params.append(_snapshot_parameter(
            "temp", "Temperature", as_number(s.temperature), "°C", temperature_status(s.temperature), s,
        ))
    if s.hba1c:
        params.append(_snapshot_parameter(
            "hba1c", "HbA1c", as_number(s.hba1c), "%", hba1c_status(s.hba1c), s,
        ))
    if s.ldl:
        params.append(_snapshot_parameter(
            "ldl", "LDL Cholesterol", as_number(s.ldl), "mg/dL", ldl_status(s.ldl), s,
        ))

    return params


def merge_parameters(
    snapshot_params: list[Parameter], report_params: list[Parameter]
) -> list[Parameter]:
    """Key by normalized name; snapshot entries first and unconditionally."""
    merged: dict[str, Parameter] = {}
    for parameter in snapshot_params:
        merged[normalize_clinical_name(parameter.name)] = parameter
    for parameter in report_params:
        merged.setdefault(normalize_clinical_name(parameter.name), parameter)
    return list(merged.values())


# =============================================================================
# MEDICATIONS
# =============================================================================


def select_medications(reports: list[Report]) -> list[Medication]:
    """
    Medications from the newest report whose medication list is non-empty.

    Empty lists are skipped over. Once a report with entries is found no
    older report is consulted, even if all of its entries were invalid.
    """
    for report in reports:
        if not report.payload.lists_medications:
            continue
        unique: dict[str, Medication] = {}
        for medication in report.payload.medications:
            key = normalize_clinical_name(medication.name) or medication.name.strip().lower()
            unique.setdefault(key, medication)
        return list(unique.values())
    return []


# =============================================================================
# CONDITIONS
# =============================================================================


def aggregate_conditions(
    reports: list[Report], snapshot: HealthSnapshot | None
) -> list[Condition]:
    """Snapshot conditions when listed, otherwise deduplicated report conditions."""
    if snapshot is not None and snapshot.chronic_conditions:
        return [
            Condition(
                id=f"snap-cond-{i}",
                name=name,
                currentStatus=SNAPSHOT_CONDITION_STATUS,
                diagnosedDate=None,
            )
            for i, name in enumerate(snapshot.chronic_conditions)
        ]

    unique: dict[str, Condition] = {}
    for report in reports:
        for condition in report.payload.conditions:
            unique.setdefault(normalize_clinical_name(condition.name), condition)
    return list(unique.values())
