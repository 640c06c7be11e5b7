"""
Parameter trends from stored health_parameters rows.
"""

from __future__ import annotations

from typing import Any, Iterable

from knowledge.vitals import normalize_clinical_name
from src.engines.adapters import as_number, as_scalar, as_status, as_text
from src.models.records import ParameterStatus, ParameterTrend, TrendDirection, TrendPoint
from src.time_utils import parse_timestamp

STATUS_RANK = {
    ParameterStatus.NORMAL: 0,
    ParameterStatus.WARNING: 1,
    ParameterStatus.CRITICAL: 2,
}


def _measured_at(row: dict) -> str | None:
    for key in ("measured_at", "timestamp", "recorded_at", "created_at"):
        if parse_timestamp(row.get(key)) is not None:
            return row[key]
    return None


def _point_order(point: TrendPoint):
    moment = parse_timestamp(point.measured_at)
    return (moment is not None, moment.timestamp() if moment else 0.0)


def direction(previous: ParameterStatus, latest: ParameterStatus) -> TrendDirection:
    """Compare two readings by status severity."""
    change = STATUS_RANK[latest] - STATUS_RANK[previous]
    if change < 0:
        return TrendDirection.IMPROVED
    if change > 0:
        return TrendDirection.WORSENED
    return TrendDirection.STABLE


def build_parameter_trend(rows: Iterable[Any] | None, name: str) -> ParameterTrend:
    """
    Readings of one parameter, oldest first, with deltas and a direction.

    Rows are matched on the normalized parameter name, so "Blood Pressure"
    and "blood-pressure" are one series. Undated readings come first. The
    direction compares the last two readings and is None with fewer than two.
    """
    key = normalize_clinical_name(name)
    points = []
    for row in rows or []:
        if not isinstance(row, dict) or not key or normalize_clinical_name(row.get("name")) != key:
            continue
        points.append(TrendPoint(
            id=as_text(row.get("id")),
            value=as_scalar(row.get("value")),
            unit=as_text(row.get("unit")),
            status=as_status(row.get("status")),
            measured_at=_measured_at(row),
            source=as_text(row.get("source")),
        ))
    points.sort(key=_point_order)

    previous_number = None
    for point in points:
        number = as_number(point.value)
        if number is not None and previous_number is not None:
            point.delta = round(number - previous_number, 2)
        if number is not None:
            previous_number = number

    trend = direction(points[-2].status, points[-1].status) if len(points) >= 2 else None
    return ParameterTrend(name=name, points=points, trend=trend)
