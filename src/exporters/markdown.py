"""
Markdown exporter for Niraiva.

Exports a reconciled health view as a human-readable Markdown summary.
"""

from __future__ import annotations

from pathlib import Path

from src.models import ReconciledView
from src.time_utils import utc_now


def _measure(profile: dict, key: str) -> str | None:
    value = profile.get(key)
    if isinstance(value, dict):
        if value.get("value") is None:
            return None
        unit = value.get("unit")
        return f"{value['value']} {unit}" if unit else str(value["value"])
    return str(value) if value not in (None, "") else None


def export_markdown(
    view: ReconciledView,
    output_path: Path | None = None,
    title: str = "Health Summary",
) -> str:
    """
    Export a reconciled view to Markdown format.

    Args:
        view: The reconciled view to export
        output_path: Optional path to write the Markdown file
        title: Document heading

    Returns:
        Markdown string representation of the view
    """
    lines = []
    profile = view.profile or {}

    lines.append(f"# {title}")
    lines.append("")
    lines.append(f"**Generated:** {utc_now().strftime('%Y-%m-%d %H:%M')} UTC")
    lines.append("")

    # Profile
    lines.append("## Profile")
    lines.append("")
    if profile:
        for label, key in (
            ("Name", "name"),
            ("Age", "age"),
            ("Gender", "gender"),
            ("Blood Type", "bloodType"),
            ("Height", "height"),
            ("Weight", "weight"),
            ("BMI", "bmi"),
        ):
            value = _measure(profile, key)
            if value:
                lines.append(f"- **{label}:** {value}")
    else:
        lines.append("*No profile information on file*")
    lines.append("")

    # Vitals
    lines.append("## Vitals")
    lines.append("")
    if view.parameters:
        lines.append("| Parameter | Value | Status | Recorded | Source |")
        lines.append("|-----------|-------|--------|----------|--------|")
        for p in view.parameters:
            value = f"{p.value} {p.unit}" if p.unit else f"{p.value}"
            flag = p.status.value.title()
            if p.status.value != "normal":
                flag = f"**{flag}**"
            lines.append(f"| {p.name} | {value} | {flag} | {p.timestamp or '-'} | {p.source.value} |")
    else:
        lines.append("*No vitals recorded*")
    lines.append("")

    # Conditions
    lines.append("## Conditions")
    lines.append("")
    if view.conditions:
        for c in view.conditions:
            severity = f" ({c.severity.value})" if c.severity else ""
            status = f" - {c.current_status}" if c.current_status else ""
            lines.append(f"- **{c.name}**{severity}{status}")
            if c.diagnosed_date:
                lines.append(f"  - Diagnosed: {c.diagnosed_date}")
    else:
        lines.append("*No known conditions*")
    lines.append("")

    # Medications
    lines.append("## Medications")
    lines.append("")
    if view.medications:
        for m in view.medications:
            details = " ".join(part for part in (m.dosage, m.frequency) if part)
            lines.append(f"- **{m.name}**" + (f" {details}" if details else ""))
            if m.start_date:
                lines.append(f"  - Since: {m.start_date}")
    else:
        lines.append("*No current medications*")
    lines.append("")

    content = "\n".join(lines)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")

    return content
