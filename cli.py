#!/usr/bin/env python3
"""
Niraiva CLI

Command-line tools for inspecting health-record reconciliation, the
unified timeline and route guard decisions offline.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

console = Console()


def setup_paths():
    """Add the project root to sys.path for imports."""
    root = Path(__file__).parent
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


setup_paths()

STATUS_COLORS = {"normal": "green", "warning": "yellow", "critical": "red"}


def _load_json(path: str):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}")


def _rows(data, key: str) -> list:
    """Accept either a bare list or an object wrapping the list under ``key``."""
    if isinstance(data, dict):
        data = data.get(key, [])
    return data if isinstance(data, list) else []


@click.group()
@click.version_option(version="0.1.0", prog_name="niraiva")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """
    Niraiva - Patient and Doctor Health Portal

    Reconcile uploaded health reports into one view, browse the
    unified timeline, and check who may see which page.
    """
    from src.logging_config import configure_logging

    configure_logging(level="DEBUG" if verbose else "WARNING", renderer="console")


@cli.command()
@click.argument("reports_path", type=click.Path(exists=True))
@click.option("--snapshot", "snapshot_path", type=click.Path(exists=True),
              help="Health snapshot JSON to apply on top of the reports")
@click.option("--format", "fmt", type=click.Choice(["table", "json", "markdown", "fhir"]),
              default="table", help="Output format")
@click.option("--output", "-o", type=click.Path(), help="Output file path")
def reconcile(reports_path: str, snapshot_path: Optional[str], fmt: str, output: Optional[str]):
    """
    Reconcile health reports into a single view.

    REPORTS_PATH holds a list of health_reports rows, or an object with
    "reports" (and optionally "snapshot").

    Example:

        niraiva reconcile ./reports.json --snapshot ./snapshot.json
    """
    from src.engines import reconcile as reconcile_reports
    from src.exporters import export_json, export_markdown, export_fhir

    data = _load_json(reports_path)
    snapshot = _load_json(snapshot_path) if snapshot_path else None
    if snapshot is None and isinstance(data, dict):
        snapshot = data.get("snapshot")

    view = reconcile_reports(_rows(data, "reports"), snapshot)

    if fmt == "table":
        _print_view(view)
        return

    if fmt == "json":
        content = export_json(view)
    elif fmt == "markdown":
        content = export_markdown(view)
    else:
        content = json.dumps(export_fhir(view), indent=2)

    if output:
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(content, encoding="utf-8")
        console.print(f"[green]✓ Exported to {out_path}[/green]")
    else:
        click.echo(content)


def _print_view(view):
    profile = view.profile or {}
    if profile:
        lines = []
        for key, value in profile.items():
            if isinstance(value, dict) and "value" in value:
                value = f"{value['value']} {value.get('unit') or ''}".strip()
            lines.append(f"{key}: {value}")
        console.print(Panel("\n".join(lines), title="Profile", border_style="blue"))
    else:
        console.print("[dim]No profile[/dim]")

    if view.parameters:
        table = Table(title="Vitals")
        table.add_column("Parameter")
        table.add_column("Value")
        table.add_column("Status")
        table.add_column("Recorded")
        table.add_column("Source")
        for p in view.parameters:
            color = STATUS_COLORS.get(p.status.value, "white")
            table.add_row(
                p.name,
                f"{p.value} {p.unit or ''}".strip(),
                f"[{color}]{p.status.value}[/{color}]",
                p.timestamp or "-",
                p.source.value,
            )
        console.print(table)
    else:
        console.print("[dim]No vitals[/dim]")

    tree = Tree("[bold]Conditions[/bold]")
    for c in view.conditions:
        detail = ", ".join(x for x in (c.severity.value if c.severity else None, c.current_status) if x)
        tree.add(f"{c.name}" + (f" ({detail})" if detail else ""))
    console.print(tree if view.conditions else "[dim]No conditions[/dim]")

    tree = Tree("[bold]Medications[/bold]")
    for m in view.medications:
        tree.add(" ".join(x for x in (m.name, m.dosage, m.frequency) if x))
    console.print(tree if view.medications else "[dim]No medications[/dim]")


@cli.command()
@click.argument("events_path", type=click.Path(exists=True))
@click.option("--authority", type=click.Choice(["clinical", "personal"]), help="Only show one kind of entry")
@click.option("--event-type", type=str, help="Only show one event type")
@click.option("--grouped", is_flag=True, help="Group entries by day")
def timeline(events_path: str, authority: Optional[str], event_type: Optional[str], grouped: bool):
    """
    Show a patient timeline from exported timeline_events rows.

    Example:

        niraiva timeline ./events.json --authority clinical
    """
    from src.engines import build_timeline, group_by_date

    entries = build_timeline(_rows(_load_json(events_path), "events"), authority=authority, event_type=event_type)

    if not entries:
        console.print("[yellow]No timeline entries[/yellow]")
        return

    if grouped:
        for day, day_entries in group_by_date(entries).items():
            tree = Tree(f"[bold]{day}[/bold]")
            for entry in day_entries:
                tree.add(f"{entry['event_type']} [dim]({entry['authority']})[/dim]")
            console.print(tree)
        return

    table = Table(title="Timeline")
    table.add_column("Date")
    table.add_column("Event")
    table.add_column("Authority")
    table.add_column("Date Source")
    for entry in entries:
        source = entry["date_source"] + (" (inferred)" if entry["date_inferred"] else "")
        table.add_row(entry["display_date"] or "Unknown Date", entry["event_type"], entry["authority"], source)
    console.print(table)


@cli.command()
@click.argument("role", type=click.Choice(["patient", "doctor", "clinical_staff", "admin", "none", "resolving"]))
@click.option("--patient-id", type=str, help="Linked patient record id")
def guard(role: str, patient_id: Optional[str]):
    """
    Show route guard decisions for a session.

    Use "none" for a signed-out visitor and "resolving" for a user
    whose role lookup has not finished.

    Example:

        niraiva guard patient --patient-id 1234
    """
    from src.auth.guards import check_authenticated, check_doctor, check_linked_record
    from src.auth.roles import RoleResolver, SessionStore

    store = SessionStore()
    if role == "none":
        store.clear()
    elif role == "resolving":
        store.begin("cli-user")
    else:
        resolver = RoleResolver(lambda user_id: {"role": role, "patient_id": patient_id})
        asyncio.run(store.enrich(resolver, "cli-user"))
    state = store.state

    table = Table(title=f"Guards for {role}")
    table.add_column("Guard")
    table.add_column("Decision")
    for name, check in (
        ("authenticated", check_authenticated),
        ("doctor", check_doctor),
        ("linked record", check_linked_record),
    ):
        decision = check(state).value
        color = "green" if decision == "allow" else "yellow"
        table.add_row(name, f"[{color}]{decision}[/{color}]")
    console.print(table)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
