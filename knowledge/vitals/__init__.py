"""
Vital sign reference data.
"""

from .reference import (
    normalize_clinical_name,
    load_clinical_terms,
    primary_vitals,
    primary_chronic_conditions,
    is_primary_vital,
    is_primary_chronic_condition,
    calculate_bmi,
    blood_pressure_status,
    heart_rate_status,
    spo2_status,
    temperature_status,
    hba1c_status,
    ldl_status,
)

__all__ = [
    "normalize_clinical_name",
    "load_clinical_terms",
    "primary_vitals",
    "primary_chronic_conditions",
    "is_primary_vital",
    "is_primary_chronic_condition",
    "calculate_bmi",
    "blood_pressure_status",
    "heart_rate_status",
    "spo2_status",
    "temperature_status",
    "hba1c_status",
    "ldl_status",
]
