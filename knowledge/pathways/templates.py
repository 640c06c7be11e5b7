"""
Care pathway templates for chronic conditions.

Templates live in ``knowledge/condition_pathways.yaml``: one per
condition, each an ordered list of steps (investigation, decision,
treatment, follow-up, milestone) with the keywords that count as evidence
for a step, and the edges between steps.
"""

from __future__ import annotations

import re
from pathlib import Path

import yaml

KNOWLEDGE_DIR = Path(__file__).parent.parent
PATHWAYS_PATH = KNOWLEDGE_DIR / "condition_pathways.yaml"

_NOT_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")

_pathways_cache: list[dict] | None = None


def compact_name(value: object) -> str:
    """Lowercase and strip everything but letters and digits."""
    if not isinstance(value, str):
        return ""
    return _NOT_ALPHANUMERIC.sub("", value.lower())


def load_pathways(path: Path | None = None) -> list[dict]:
    """Load pathway templates from YAML, with caching."""
    global _pathways_cache
    if path is None and _pathways_cache is not None:
        return _pathways_cache

    pathways_path = path or PATHWAYS_PATH
    if pathways_path.exists():
        with open(pathways_path, "r") as f:
            pathways = (yaml.safe_load(f) or {}).get("pathways", [])
    else:
        pathways = []

    if path is None:
        _pathways_cache = pathways
    return pathways


def find_pathway(condition_name: object) -> dict | None:
    """First template whose match keyword occurs in the condition name."""
    name = compact_name(condition_name)
    if not name:
        return None
    for pathway in load_pathways():
        if any(compact_name(keyword) in name for keyword in pathway.get("match", [])):
            return pathway
    return None
