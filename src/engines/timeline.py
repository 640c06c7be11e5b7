"""
Unified patient timeline.

Clinical events (uploaded reports, consultations) and personal records
(photos, wearable data, notes) share one timeline. Each entry is shown at
the best date available: the clinical event date extracted from the
document, then the report's own date, then the upload time.
"""

from __future__ import annotations

from typing import Any, Iterable

from src.models.user import Authority, TimelineEvent
from src.time_utils import parse_timestamp

# Keys the report parser uses for document dates, in order of preference
NESTED_DATE_KEYS = ("documentDate", "visitDate", "date", "testDate")


def is_valid_date_string(value: Any) -> bool:
    """A non-empty string that parses as a date."""
    if not value or not isinstance(value, str):
        return False
    return parse_timestamp(value) is not None


def _field(event: TimelineEvent | dict, key: str) -> Any:
    if isinstance(event, dict):
        return event.get(key)
    return getattr(event, key, None)


def _nested_report_date(event: TimelineEvent | dict) -> str | None:
    metadata = _field(event, "metadata")
    if not isinstance(metadata, dict):
        return None

    report_json = metadata.get("report_json")
    report_metadata = None
    if isinstance(report_json, dict) and isinstance(report_json.get("metadata"), dict):
        report_metadata = report_json["metadata"]
    elif isinstance(metadata.get("metadata"), dict):
        report_metadata = metadata["metadata"]
    if not report_metadata:
        return None

    for key in NESTED_DATE_KEYS:
        if report_metadata.get(key):
            return report_metadata[key]
    return None


def get_display_date(event: TimelineEvent | dict) -> str | None:
    """
    Resolve the date an event is displayed at.

    Falls back from the clinical event date, through the report date and
    dates nested in the parsed report metadata, to the upload time.
    Strings that do not parse are skipped.
    """
    for key in ("clinical_event_date", "report_date"):
        if is_valid_date_string(_field(event, key)):
            return _field(event, key)

    nested = _nested_report_date(event)
    if is_valid_date_string(nested):
        return nested

    for key in ("date", "upload_date", "event_time"):
        if is_valid_date_string(_field(event, key)):
            return _field(event, key)

    return None


def get_date_source(event: TimelineEvent | dict) -> str:
    """Which kind of date the display date came from."""
    if _field(event, "clinical_event_date"):
        return "clinical"
    if _field(event, "report_date"):
        return "report"
    if _field(event, "upload_date") or _field(event, "event_time"):
        return "upload"
    return "unknown"


def is_date_inferred(event: TimelineEvent | dict) -> bool:
    """True when the clinical date is missing and a fallback is shown instead."""
    return not _field(event, "clinical_event_date") and bool(
        _field(event, "report_date") or _field(event, "upload_date")
    )


def to_event(raw: TimelineEvent | dict) -> TimelineEvent:
    if isinstance(raw, TimelineEvent):
        return raw
    return TimelineEvent.model_validate(raw)


def _sort_key(event: TimelineEvent):
    moment = parse_timestamp(get_display_date(event))
    return (moment is not None, moment.timestamp() if moment else 0.0)


def build_timeline(
    events: Iterable[TimelineEvent | dict],
    authority: Authority | str | None = None,
    event_type: str | None = None,
) -> list[dict]:
    """
    Build the unified timeline, newest first.

    Args:
        events: timeline_events rows or models
        authority: Keep only clinical or only personal entries
        event_type: Keep only one event type

    Returns:
        Entries with the resolved display date and its source attached.
        Entries without any usable date sort last.
    """
    wanted = Authority(authority) if authority else None
    selected = []
    for raw in events:
        event = to_event(raw)
        if wanted and event.authority != wanted:
            continue
        if event_type and event.event_type != event_type:
            continue
        selected.append(event)

    selected.sort(key=_sort_key, reverse=True)

    return [
        {
            **event.model_dump(mode="json"),
            "display_date": get_display_date(event),
            "date_source": get_date_source(event),
            "date_inferred": is_date_inferred(event),
        }
        for event in selected
    ]


def group_by_date(events: Iterable[TimelineEvent | dict]) -> dict[str, list]:
    """
    Group events by calendar day of their display date.

    Keys are ``YYYY-MM-DD``, most recent first. Events without a usable
    date are left out.
    """
    grouped: dict[str, list] = {}
    for event in events:
        display_date = get_display_date(event)
        if not display_date:
            continue
        grouped.setdefault(display_date.split("T")[0][:10], []).append(event)

    return {day: grouped[day] for day in sorted(grouped, reverse=True)}
