"""
Tests for the JSON, Markdown and FHIR exporters.
"""

import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from conftest import make_report


@pytest.fixture
def view():
    from src.engines import reconcile

    report = make_report(
        "r1", "2024-01-05T09:00:00Z",
        profile={"name": "Asha Rao", "height": {"value": 170, "unit": "cm"}, "weight": {"value": 70, "unit": "kg"}},
        parameters=[
            {"name": "Blood Pressure", "value": "150/95", "unit": "mmHg", "status": "warning"},
            {"name": "Weight", "value": 70, "unit": "kg"},
            {"name": "Blood Sugar", "value": "high"},
        ],
        conditions=[{"name": "Hypertension", "severity": "moderate", "currentStatus": "active", "diagnosedDate": "2021-03-01"}],
        medications=[{"name": "Amlodipine", "dosage": "5mg", "frequency": "once daily"}],
    )
    return reconcile([report], {"heart_rate": 72, "last_updated": "2024-02-01T00:00:00Z"})


class TestJSONExport:

    def test_camel_case_keys(self, view):
        from src.exporters import export_json

        data = json.loads(export_json(view))
        assert data["conditions"][0]["currentStatus"] == "active"
        assert data["medications"][0]["startDate"] == "2024-01-05T09:00:00Z"
        assert data["profile"]["bmi"] == 24.2

    def test_exclude_nulls(self, view):
        from src.exporters import export_json

        data = json.loads(export_json(view, include_nulls=False))
        assert "relatedParameters" not in data["conditions"][0]

    def test_writes_file(self, view, tmp_path):
        from src.exporters import export_json

        out = tmp_path / "nested" / "view.json"
        export_json(view, output_path=out)
        assert json.loads(out.read_text())["profile"]["name"] == "Asha Rao"

    def test_summary(self, view):
        from src.exporters import export_json_summary

        summary = export_json_summary(view)
        assert summary["name"] == "Asha Rao"
        assert summary["flagged_parameters"] == ["Blood Pressure"]
        assert summary["medications"] == ["Amlodipine"]


class TestMarkdownExport:

    def test_sections(self, view):
        from src.exporters import export_markdown

        md = export_markdown(view, title="Asha's Summary")
        assert md.startswith("# Asha's Summary")
        for heading in ("## Profile", "## Vitals", "## Conditions", "## Medications"):
            assert heading in md
        assert "- **Height:** 170 cm" in md
        assert "| Blood Pressure | 150/95 mmHg | **Warning** |" in md
        assert "- **Hypertension** (moderate) - active" in md
        assert "- **Amlodipine** 5mg once daily" in md

    def test_empty_view(self):
        from src.engines import reconcile
        from src.exporters import export_markdown

        md = export_markdown(reconcile([]))
        assert "*No profile information on file*" in md
        assert "*No vitals recorded*" in md
        assert "*No current medications*" in md


class TestFHIRExport:

    def _resources(self, bundle, resource_type):
        return [e["resource"] for e in bundle["entry"] if e["resource"]["resourceType"] == resource_type]

    def test_bundle_shape(self, view):
        from src.exporters import export_fhir

        bundle = export_fhir(view, patient_id="p-1")
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "collection"
        assert bundle["total"] == len(bundle["entry"]) == 6
        for entry in bundle["entry"]:
            assert entry["fullUrl"] == f"urn:uuid:{entry['resource']['id']}"
            assert entry["resource"]["subject"] == {"reference": "Patient/p-1"}

    def test_blood_pressure_components(self, view):
        from src.exporters import export_fhir

        observations = self._resources(export_fhir(view), "Observation")
        bp = next(o for o in observations if o["code"]["text"] == "Blood Pressure")
        assert bp["code"]["coding"][0]["code"] == "85354-9"
        assert [c["valueQuantity"]["value"] for c in bp["component"]] == [150, 95]
        assert bp["interpretation"][0]["coding"][0]["code"] == "A"

    def test_observation_values(self, view):
        from src.exporters import export_fhir

        observations = {o["code"]["text"]: o for o in self._resources(export_fhir(view), "Observation")}
        assert observations["Pulse"]["valueQuantity"] == {"value": 72, "unit": "bpm"}
        assert observations["Pulse"]["effectiveDateTime"] == "2024-02-01T00:00:00Z"
        assert observations["Blood Sugar"]["valueString"] == "high"
        assert observations["Weight"]["code"]["coding"][0]["code"] == "29463-7"

    def test_condition_and_medication(self, view):
        from src.exporters import export_fhir

        bundle = export_fhir(view)
        condition = self._resources(bundle, "Condition")[0]
        assert condition["clinicalStatus"]["coding"][0]["code"] == "active"
        assert condition["onsetDateTime"] == "2021-03-01"
        assert condition["severity"] == {"text": "moderate"}

        statement = self._resources(bundle, "MedicationStatement")[0]
        assert statement["medicationCodeableConcept"] == {"text": "Amlodipine"}
        assert statement["dosage"] == [{"text": "5mg once daily"}]

    def test_resolved_condition(self):
        from src.engines import reconcile
        from src.exporters import FHIRExporter

        view = reconcile([make_report("r1", "2024-01-01T00:00:00Z", conditions=[{"name": "Asthma", "currentStatus": "Resolved"}])])
        data = json.loads(FHIRExporter("p-1").export_json(view))
        assert data["entry"][0]["resource"]["clinicalStatus"]["coding"][0]["code"] == "resolved"

    def test_lab_codes_for_snapshot_values(self):
        from src.engines import reconcile
        from src.exporters import export_fhir

        view = reconcile([make_report("r1", "2024-01-01T00:00:00Z")], {"hba1c": 7.1, "ldl": 140, "spo2": 97})
        observations = {o["code"]["text"]: o for o in self._resources(export_fhir(view), "Observation")}
        assert observations["HbA1c"]["code"]["coding"][0]["code"] == "4548-4"
        assert observations["LDL Cholesterol"]["code"]["coding"][0]["code"] == "13457-7"
        assert observations["Oxygen Saturation"]["code"]["coding"][0]["code"] == "2708-6"
