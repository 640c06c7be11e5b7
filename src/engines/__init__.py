"""
Record engines: raw report adaptation, reconciliation, the timeline,
parameter trends and diagnostic pathways.
"""

from .adapters import adapt_report, adapt_reports, adapt_snapshot
from .reconcile import reconcile, sort_newest_first
from .timeline import (
    build_timeline,
    group_by_date,
    get_display_date,
    get_date_source,
    is_date_inferred,
)
from .trends import build_parameter_trend
from .pathway import collect_events, project_pathway, project_tracked_pathways

__all__ = [
    "adapt_report",
    "adapt_reports",
    "adapt_snapshot",
    "reconcile",
    "sort_newest_first",
    "build_timeline",
    "group_by_date",
    "get_display_date",
    "get_date_source",
    "is_date_inferred",
    "build_parameter_trend",
    "collect_events",
    "project_pathway",
    "project_tracked_pathways",
]
