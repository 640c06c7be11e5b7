"""
Tests for raw report adaptation and the vitals reference data.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from conftest import make_report


class TestScalarCoercion:

    def test_as_number(self):
        from src.engines.adapters import as_number

        assert as_number(72) == 72
        assert as_number("98.6") == 98.6
        assert as_number(" 120 ") == 120
        assert isinstance(as_number(120.0), int)
        assert as_number("abc") is None
        assert as_number(True) is None
        assert as_number(float("nan")) is None
        assert as_number(None) is None

    def test_as_text(self):
        from src.engines.adapters import as_text

        assert as_text("  Pulse ") == "Pulse"
        assert as_text("   ") is None
        assert as_text(5) == "5"
        assert as_text(False) is None
        assert as_text(["a"]) is None

    def test_status_aliases(self):
        from src.engines.adapters import as_status
        from src.models import ParameterStatus

        assert as_status("Improved") == ParameterStatus.NORMAL
        assert as_status("stable") == ParameterStatus.NORMAL
        assert as_status("WORSENED") == ParameterStatus.WARNING
        assert as_status("critical") == ParameterStatus.CRITICAL
        assert as_status("unheard-of") == ParameterStatus.NORMAL
        assert as_status(None) == ParameterStatus.NORMAL


class TestReportAdapter:

    def test_report_date_falls_back_to_upload_time(self):
        from src.engines import adapt_report

        report = adapt_report(make_report("r1", "2024-01-01T00:00:00Z"))
        assert report.date == "2024-01-01T00:00:00Z"

    def test_parameter_ids_are_generated(self):
        from src.engines import adapt_report

        report = adapt_report(make_report("r9", "2024-01-01T00:00:00Z", parameters=[
            {"name": "Pulse", "value": 70},
            {"value": 10},
            {"id": "given", "name": "Weight", "value": 60},
        ]))
        assert [p.id for p in report.payload.parameters] == ["param-0-r9", "given"]

    def test_parameter_interpretation_used_as_status(self):
        from src.engines import adapt_report

        report = adapt_report(make_report("r1", "2024-01-01T00:00:00Z", parameters=[
            {"name": "Pulse", "value": 120, "interpretation": "worsened"},
        ]))
        assert report.payload.parameters[0].status.value == "warning"

    def test_non_scalar_values_are_dropped(self):
        from src.engines import adapt_report

        report = adapt_report(make_report("r1", "2024-01-01T00:00:00Z", parameters=[
            {"name": "Pulse", "value": {"nested": 1}},
        ]))
        assert report.payload.parameters[0].value is None

    def test_medication_list_flag(self):
        from src.engines import adapt_report

        empty = adapt_report(make_report("r1", "2024-01-01T00:00:00Z", medications=[]))
        invalid = adapt_report(make_report("r2", "2024-01-01T00:00:00Z", medications=[{"name": "."}]))
        assert empty.payload.lists_medications is False
        assert invalid.payload.lists_medications is True
        assert invalid.payload.medications == []

    def test_unknown_severity_is_ignored(self):
        from src.engines import adapt_report

        report = adapt_report(make_report("r1", "2024-01-01T00:00:00Z", conditions=[
            {"name": "Asthma", "severity": "extreme", "related_parameters": ["SpO2", 3]},
        ]))
        condition = report.payload.conditions[0]
        assert condition.severity is None
        assert condition.related_parameters == ["SpO2"]

    def test_non_dict_rows(self):
        from src.engines import adapt_report, adapt_reports

        assert adapt_report(42) is None
        assert adapt_reports({"id": "single"}) == []

    def test_medication_name_validity(self):
        from src.engines.adapters import is_valid_medication_name

        assert is_valid_medication_name("Metformin")
        assert is_valid_medication_name("B1")
        assert not is_valid_medication_name(".")
        assert not is_valid_medication_name("x")
        assert not is_valid_medication_name("")
        assert not is_valid_medication_name(None)


class TestSnapshotAdapter:

    def test_numeric_strings(self):
        from src.engines import adapt_snapshot

        snapshot = adapt_snapshot({"systolic_bp": "128", "heart_rate": "n/a", "chronic_conditions": ["CKD", "", 4]})
        assert snapshot.systolic_bp == 128
        assert snapshot.heart_rate is None
        assert snapshot.chronic_conditions == ["CKD", "4"]

    def test_absent(self):
        from src.engines import adapt_snapshot

        assert adapt_snapshot(None) is None
        assert adapt_snapshot("snapshot") is None


class TestVitalsReference:

    @pytest.mark.parametrize("raw,expected", [
        ("Blood Pressure", "blood pressure"),
        ("blood-pressure", "blood pressure"),
        ("  BLOOD_PRESSURE ", "blood pressure"),
        ("HbA1c", "hba c"),
        ("SpO2", "spo"),
        ("Type 2 Diabetes", "type diabetes"),
    ])
    def test_normalize_clinical_name(self, raw, expected):
        from knowledge.vitals import normalize_clinical_name

        assert normalize_clinical_name(raw) == expected

    def test_normalize_non_string(self):
        from knowledge.vitals import normalize_clinical_name

        assert normalize_clinical_name(None) == ""
        assert normalize_clinical_name(12) == ""

    def test_whitelist_loaded_from_yaml(self):
        from knowledge.vitals import primary_vitals, is_primary_vital

        vitals = primary_vitals()
        assert "blood pressure" in vitals
        assert "spo" in vitals
        assert is_primary_vital("Pulse Rate")
        assert not is_primary_vital("Vitamin D")

    def test_chronic_conditions(self):
        from knowledge.vitals import is_primary_chronic_condition

        assert is_primary_chronic_condition("Hypertension")
        assert is_primary_chronic_condition("COPD")
        assert not is_primary_chronic_condition("Common cold")

    def test_bmi(self):
        from knowledge.vitals import calculate_bmi

        assert calculate_bmi(70, 170) == 24.2

    def test_thresholds(self):
        from knowledge.vitals import (
            blood_pressure_status, heart_rate_status, spo2_status,
            temperature_status, hba1c_status, ldl_status,
        )

        assert blood_pressure_status(140, 90) == "normal"
        assert blood_pressure_status(141, 80) == "warning"
        assert blood_pressure_status(120, 91) == "warning"
        assert heart_rate_status(60) == "normal"
        assert heart_rate_status(59) == "warning"
        assert heart_rate_status(101) == "warning"
        assert spo2_status(95) == "normal"
        assert spo2_status(94) == "warning"
        assert temperature_status(37.5) == "normal"
        assert temperature_status(37.6) == "warning"
        assert hba1c_status(6.5) == "normal"
        assert hba1c_status(6.6) == "warning"
        assert ldl_status(130) == "normal"
        assert ldl_status(131) == "warning"
