"""
FHIR R4 Exporter for Niraiva.

Converts a reconciled health view to a FHIR R4 collection Bundle:
an Observation per parameter, a Condition per condition and a
MedicationStatement per medication.
Reference: https://www.hl7.org/fhir/R4/
"""

from __future__ import annotations

import json
import re
from typing import Any
from uuid import uuid4

from knowledge.vitals import normalize_clinical_name
from src.models import Condition, Medication, Parameter, ParameterStatus, ReconciledView
from src.time_utils import isoformat, utc_now


def generate_uuid() -> str:
    """Generate a UUID for FHIR resources."""
    return str(uuid4())


# LOINC codes by parameter name; keyed through normalize_clinical_name below
_LOINC_BY_NAME: dict[str, tuple[str, str]] = {
    "blood pressure": ("85354-9", "Blood pressure panel"),
    "systolic blood pressure": ("8480-6", "Systolic blood pressure"),
    "diastolic blood pressure": ("8462-4", "Diastolic blood pressure"),
    "heart rate": ("8867-4", "Heart rate"),
    "pulse": ("8867-4", "Heart rate"),
    "pulse rate": ("8867-4", "Heart rate"),
    "oxygen saturation": ("2708-6", "Oxygen saturation"),
    "SpO2": ("2708-6", "Oxygen saturation"),
    "respiratory rate": ("9279-1", "Respiratory rate"),
    "temperature": ("8310-5", "Body temperature"),
    "body temperature": ("8310-5", "Body temperature"),
    "blood glucose": ("2339-0", "Glucose"),
    "blood sugar": ("2339-0", "Glucose"),
    "random blood sugar": ("2339-0", "Glucose"),
    "fasting blood sugar": ("1558-6", "Fasting glucose"),
    "weight": ("29463-7", "Body weight"),
    "height": ("8302-2", "Body height"),
    "bmi": ("39156-5", "Body mass index"),
    "HbA1c": ("4548-4", "Hemoglobin A1c"),
    "LDL": ("13457-7", "LDL cholesterol"),
    "ldl cholesterol": ("13457-7", "LDL cholesterol"),
}

LOINC_CODES: dict[str, tuple[str, str]] = {
    normalize_clinical_name(name): code for name, code in _LOINC_BY_NAME.items()
}

INTERPRETATION_CODES = {
    ParameterStatus.NORMAL: ("N", "Normal"),
    ParameterStatus.WARNING: ("A", "Abnormal"),
    ParameterStatus.CRITICAL: ("AA", "Critical abnormal"),
}

_BLOOD_PRESSURE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)\s*$")


class FHIRExporter:
    """
    Exports a ReconciledView to a FHIR R4 Bundle.
    """

    def __init__(self, patient_id: str | None = None):
        self.base_url = "urn:uuid:"
        self.patient_id = patient_id or generate_uuid()

    def export(self, view: ReconciledView) -> dict[str, Any]:
        """
        Export a reconciled view to a FHIR R4 Bundle.

        Returns a dictionary that can be serialized to JSON.
        """
        entries = []

        for parameter in view.parameters:
            obs_id = generate_uuid()
            entries.append(self._bundle_entry(self._create_observation_resource(parameter, obs_id), obs_id))

        for condition in view.conditions:
            condition_id = generate_uuid()
            entries.append(self._bundle_entry(self._create_condition_resource(condition, condition_id), condition_id))

        for med in view.medications:
            med_id = generate_uuid()
            entries.append(self._bundle_entry(self._create_medication_statement_resource(med, med_id), med_id))

        return {
            "resourceType": "Bundle",
            "id": generate_uuid(),
            "type": "collection",
            "timestamp": isoformat(utc_now()),
            "entry": entries,
            "total": len(entries),
        }

    def export_json(self, view: ReconciledView, indent: int = 2) -> str:
        """Export to JSON string."""
        return json.dumps(self.export(view), indent=indent, default=str)

    def _bundle_entry(self, resource: dict, resource_id: str) -> dict:
        """Wrap a resource in a bundle entry."""
        return {
            "fullUrl": f"{self.base_url}{resource_id}",
            "resource": resource,
        }

    def _subject(self) -> dict:
        return {"reference": f"Patient/{self.patient_id}"}

    def _create_observation_resource(self, parameter: Parameter, obs_id: str) -> dict:
        """Create FHIR Observation resource for one parameter."""
        coding = {"display": parameter.name}
        loinc = LOINC_CODES.get(normalize_clinical_name(parameter.name))
        if loinc:
            coding = {"system": "http://loinc.org", "code": loinc[0], "display": loinc[1]}

        interpretation_code, interpretation_display = INTERPRETATION_CODES[parameter.status]
        resource = {
            "resourceType": "Observation",
            "id": obs_id,
            "status": "final",
            "category": [{
                "coding": [{
                    "system": "http://terminology.hl7.org/CodeSystem/observation-category",
                    "code": "vital-signs",
                    "display": "Vital Signs",
                }],
            }],
            "code": {
                "coding": [coding],
                "text": parameter.name,
            },
            "subject": self._subject(),
            "interpretation": [{
                "coding": [{
                    "system": "http://terminology.hl7.org/CodeSystem/v3-ObservationInterpretation",
                    "code": interpretation_code,
                    "display": interpretation_display,
                }],
            }],
        }

        if parameter.timestamp:
            resource["effectiveDateTime"] = parameter.timestamp

        bp = _BLOOD_PRESSURE.match(parameter.value) if isinstance(parameter.value, str) else None
        if bp:
            resource["component"] = [
                self._bp_component("8480-6", "Systolic blood pressure", bp.group(1)),
                self._bp_component("8462-4", "Diastolic blood pressure", bp.group(2)),
            ]
        elif isinstance(parameter.value, (int, float)) and not isinstance(parameter.value, bool):
            resource["valueQuantity"] = {"value": parameter.value, "unit": parameter.unit}
        elif parameter.value is not None:
            resource["valueString"] = str(parameter.value)

        return resource

    def _bp_component(self, loinc: str, display: str, value: str) -> dict:
        number = float(value)
        return {
            "code": {"coding": [{"system": "http://loinc.org", "code": loinc, "display": display}]},
            "valueQuantity": {
                "value": int(number) if number.is_integer() else number,
                "unit": "mmHg",
                "system": "http://unitsofmeasure.org",
                "code": "mm[Hg]",
            },
        }

    def _create_condition_resource(self, condition: Condition, condition_id: str) -> dict:
        """Create FHIR Condition resource."""
        # Portal statuses are free text; controlled/active both map to active
        status = (condition.current_status or "active").lower()
        clinical_status = "resolved" if status in ("resolved", "cured") else "active"

        resource = {
            "resourceType": "Condition",
            "id": condition_id,
            "clinicalStatus": {
                "coding": [{
                    "system": "http://terminology.hl7.org/CodeSystem/condition-clinical",
                    "code": clinical_status,
                }],
            },
            "code": {
                "text": condition.name,
            },
            "subject": self._subject(),
        }

        if condition.severity:
            resource["severity"] = {"text": condition.severity.value}
        if condition.diagnosed_date:
            resource["onsetDateTime"] = condition.diagnosed_date
        if condition.current_status:
            resource["note"] = [{"text": f"Status: {condition.current_status}"}]

        return resource

    def _create_medication_statement_resource(self, med: Medication, med_id: str) -> dict:
        """Create FHIR MedicationStatement resource."""
        resource = {
            "resourceType": "MedicationStatement",
            "id": med_id,
            "status": "active",
            "medicationCodeableConcept": {
                "text": med.name,
            },
            "subject": self._subject(),
        }

        if med.start_date:
            resource["effectivePeriod"] = {"start": med.start_date}

        dosage_text = " ".join(part for part in (med.dosage, med.frequency) if part)
        if dosage_text:
            resource["dosage"] = [{"text": dosage_text}]

        return resource


def export_to_fhir(view: ReconciledView, patient_id: str | None = None) -> dict[str, Any]:
    """Convenience function to export a reconciled view to FHIR."""
    return FHIRExporter(patient_id).export(view)
