"""
JSON exporter for Niraiva.

Exports a reconciled health view as clean, human-readable JSON.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

from src.models import ReconciledView


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles dates and datetimes."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        return super().default(obj)


def export_json(
    view: ReconciledView,
    output_path: Path | None = None,
    indent: int = 2,
    include_nulls: bool = True,
) -> str:
    """
    Export a reconciled view to JSON format.

    Args:
        view: The reconciled view to export
        output_path: Optional path to write the JSON file
        indent: JSON indentation level
        include_nulls: Whether to include null values in output

    Returns:
        JSON string with the camelCase keys portal clients read
    """
    data = view.model_dump(mode="json", by_alias=True, exclude_none=not include_nulls)
    json_str = json.dumps(data, indent=indent, cls=DateTimeEncoder, ensure_ascii=False)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_str, encoding="utf-8")

    return json_str


def export_json_summary(view: ReconciledView) -> dict[str, Any]:
    """
    Export a summary of the view (useful for listings/previews).

    Returns counts plus the names of flagged parameters, conditions and
    medications.
    """
    profile = view.profile or {}
    return {
        "name": profile.get("name"),
        "parameter_count": len(view.parameters),
        "flagged_parameters": [p.name for p in view.parameters if p.status.value != "normal"],
        "conditions": [c.name for c in view.conditions],
        "medications": [m.name for m in view.medications],
    }
