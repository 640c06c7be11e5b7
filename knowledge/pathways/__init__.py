"""
Guideline care pathway templates.
"""

from .templates import compact_name, load_pathways, find_pathway

__all__ = [
    "compact_name",
    "load_pathways",
    "find_pathway",
]
