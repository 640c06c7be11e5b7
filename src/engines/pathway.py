"""
Diagnostic pathway projection.

Projects a patient's reconciled record onto the guideline pathway for one
of the tracked chronic conditions (hypertension, type 2 diabetes,
hyperlipidemia). Conditions become diagnosis events, parameters test
events and medications medication events. A step is completed when any
event name contains one of its criteria keywords; the first step without
evidence is the current one.
"""

from __future__ import annotations

from knowledge.pathways import compact_name, find_pathway
from src.models.pathway import (
    EventKind,
    PathwayEvent,
    PathwayProjection,
    PathwayStep,
    ProjectedStep,
    StepStatus,
)
from src.models.records import ReconciledView
from src.time_utils import parse_timestamp


def _event_order(event: PathwayEvent):
    moment = parse_timestamp(event.date)
    return (moment is not None, moment.timestamp() if moment else 0.0)


def collect_events(view: ReconciledView) -> list[PathwayEvent]:
    """
    Turn a reconciled view into pathway events, oldest first.

    Events without a usable date come first, so dated evidence is
    preferred as the most recent match.
    """
    events: list[PathwayEvent] = []
    seen: set[str] = set()

    def add(kind: EventKind, name: str, date: str | None, details: dict) -> None:
        key = f"{kind.value}-{compact_name(name)}"
        if not compact_name(name) or key in seen:
            return
        seen.add(key)
        events.append(PathwayEvent(id=key, kind=kind, name=name, date=date, details=details))

    for condition in view.conditions:
        add(EventKind.DIAGNOSIS, condition.name, condition.diagnosed_date, {
            "severity": condition.severity.value if condition.severity else None,
            "status": condition.current_status,
        })
    for parameter in view.parameters:
        add(EventKind.TEST, parameter.name, parameter.timestamp, {
            "value": parameter.value,
            "unit": parameter.unit,
            "status": parameter.status.value,
        })
    for medication in view.medications:
        add(EventKind.MEDICATION, medication.name, medication.start_date, {
            "dosage": medication.dosage,
            "frequency": medication.frequency,
        })

    return sorted(events, key=_event_order)


def _matches(step: PathwayStep, events: list[PathwayEvent]) -> list[PathwayEvent]:
    keywords = [compact_name(k) for k in step.criteria if compact_name(k)]
    return [e for e in events if any(k in compact_name(e.name) for k in keywords)]


def project_pathway(condition_name: str, view: ReconciledView) -> PathwayProjection | None:
    """
    Project a reconciled record onto a condition's care pathway.

    Args:
        condition_name: Any spelling of the condition ("High Blood Pressure",
            "Type 2 Diabetes Mellitus", "hyperlipidemia")
        view: The patient's reconciled view

    Returns:
        The projection, or None when no pathway exists for the condition
    """
    template = find_pathway(condition_name)
    if template is None:
        return None

    events = collect_events(view)
    steps = []
    for raw_step in template.get("steps", []):
        step = PathwayStep.model_validate(raw_step)
        matches = _matches(step, events)
        steps.append(ProjectedStep(
            **step.model_dump(),
            status=StepStatus.COMPLETED if matches else StepStatus.PENDING,
            matched_event=matches[-1] if matches else None,
            matches=matches,
        ))

    first_pending = next((s for s in steps if s.status == StepStatus.PENDING), None)
    if first_pending is not None:
        first_pending.status = StepStatus.CURRENT

    return PathwayProjection(
        condition=template["condition"],
        steps=steps,
        edges=[tuple(edge) for edge in template.get("edges", [])],
    )


def project_tracked_pathways(view: ReconciledView) -> list[PathwayProjection]:
    """One projection per distinct pathway the patient's conditions map to."""
    projections = []
    seen = set()
    for condition in view.conditions:
        template = find_pathway(condition.name)
        if template is None or template["condition"] in seen:
            continue
        seen.add(template["condition"])
        projections.append(project_pathway(condition.name, view))
    return projections
