"""
Vital sign reference data for the Niraiva dashboard.

Provides the clinical-name normalization used as a deduplication key,
the primary vitals whitelist, and the warning thresholds applied to
values taken from a patient's health snapshot.

Thresholds (adult):
- Blood pressure: warning above 140 systolic or 90 diastolic
- Heart rate: warning above 100 or below 60 bpm
- SpO2: warning below 95 %
- Temperature: warning above 37.5 °C
- HbA1c: warning above 6.5 %
- LDL cholesterol: warning above 130 mg/dL
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

import yaml

Status = Literal["normal", "warning"]

KNOWLEDGE_DIR = Path(__file__).parent.parent
CLINICAL_TERMS_PATH = KNOWLEDGE_DIR / "clinical_terms.yaml"

_NON_LETTERS = re.compile(r"[^a-z\s]+")
_WHITESPACE = re.compile(r"\s+")

# Snapshot thresholds
SYSTOLIC_BP_MAX = 140
DIASTOLIC_BP_MAX = 90
HEART_RATE_MIN = 60
HEART_RATE_MAX = 100
SPO2_MIN = 95
TEMPERATURE_C_MAX = 37.5
HBA1C_MAX = 6.5
LDL_MAX = 130

_terms_cache: dict | None = None


def normalize_clinical_name(value: object) -> str:
    """
    Reduce a parameter, condition or medication name to its identity key.

    Lowercases, replaces every run of non-letter characters with a space,
    collapses whitespace and trims. Non-string input yields "".
    """
    if not isinstance(value, str):
        return ""
    text = _NON_LETTERS.sub(" ", value.lower())
    return _WHITESPACE.sub(" ", text).strip()


def load_clinical_terms(path: Path | None = None) -> dict:
    """Load the clinical vocabulary from YAML, with caching."""
    global _terms_cache
    if path is None and _terms_cache is not None:
        return _terms_cache

    terms_path = path or CLINICAL_TERMS_PATH
    if terms_path.exists():
        with open(terms_path, "r") as f:
            terms = yaml.safe_load(f) or {}
    else:
        terms = {}

    if path is None:
        _terms_cache = terms
    return terms


def _normalized_set(key: str) -> frozenset[str]:
    return frozenset(
        normalize_clinical_name(name)
        for name in load_clinical_terms().get(key, [])
        if normalize_clinical_name(name)
    )


def primary_vitals() -> frozenset[str]:
    """Normalized names of vitals eligible for the dashboard."""
    return _normalized_set("primary_vitals")


def primary_chronic_conditions() -> frozenset[str]:
    """Normalized names of chronic conditions doctors track."""
    return _normalized_set("primary_chronic_conditions")


def is_primary_vital(name: object) -> bool:
    return normalize_clinical_name(name) in primary_vitals()


def is_primary_chronic_condition(name: object) -> bool:
    return normalize_clinical_name(name) in primary_chronic_conditions()


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """Calculate BMI from weight and height, rounded to one decimal."""
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


# =============================================================================
# Snapshot status classification
# =============================================================================


def blood_pressure_status(systolic: float, diastolic: float) -> Status:
    if systolic > SYSTOLIC_BP_MAX or diastolic > DIASTOLIC_BP_MAX:
        return "warning"
    return "normal"


def heart_rate_status(bpm: float) -> Status:
    if bpm > HEART_RATE_MAX or bpm < HEART_RATE_MIN:
        return "warning"
    return "normal"


def spo2_status(percent: float) -> Status:
    return "warning" if percent < SPO2_MIN else "normal"


def temperature_status(celsius: float) -> Status:
    return "warning" if celsius > TEMPERATURE_C_MAX else "normal"


def hba1c_status(percent: float) -> Status:
    return "warning" if percent > HBA1C_MAX else "normal"


def ldl_status(mg_dl: float) -> Status:
    return "warning" if mg_dl > LDL_MAX else "normal"
