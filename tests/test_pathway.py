"""
Tests for care pathway templates and pathway projection.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest


def make_view(conditions=(), parameters=(), medications=()):
    from src.models import Condition, Medication, Parameter, ReconciledView

    return ReconciledView(
        conditions=[Condition(**c) for c in conditions],
        parameters=[Parameter(**p) for p in parameters],
        medications=[Medication(**m) for m in medications],
    )


@pytest.fixture
def hypertensive_view():
    return make_view(
        conditions=[{"name": "Hypertension", "diagnosed_date": "2023-01-10T00:00:00Z"}],
        parameters=[{"name": "Blood Pressure", "value": "150/95", "timestamp": "2023-01-05T00:00:00Z"}],
        medications=[{"name": "Amlodipine", "dosage": "5mg", "start_date": "2023-02-01T00:00:00Z"}],
    )


class TestTemplates:

    @pytest.mark.parametrize("name,expected", [
        ("Essential Hypertension", "Hypertension"),
        ("High Blood Pressure", "Hypertension"),
        ("Type 2 Diabetes Mellitus", "Type 2 Diabetes"),
        ("High Cholesterol", "Hyperlipidemia"),
        ("hyperlipidemia", "Hyperlipidemia"),
    ])
    def test_find_pathway(self, name, expected):
        from knowledge.pathways import find_pathway

        assert find_pathway(name)["condition"] == expected

    @pytest.mark.parametrize("name", ["Migraine", "", None])
    def test_no_pathway(self, name):
        from knowledge.pathways import find_pathway

        assert find_pathway(name) is None

    def test_compact_name(self):
        from knowledge.pathways import compact_name

        assert compact_name("GLP-1 RA") == "glp1ra"
        assert compact_name(42) == ""

    def test_every_edge_joins_known_steps(self):
        from knowledge.pathways import load_pathways

        for pathway in load_pathways():
            ids = {step["id"] for step in pathway["steps"]}
            for source, target in pathway["edges"]:
                assert source in ids and target in ids

    def test_missing_file_loads_nothing(self, tmp_path):
        from knowledge.pathways import load_pathways

        assert load_pathways(tmp_path / "missing.yaml") == []


class TestCollectEvents:

    def test_kinds_and_order(self, hypertensive_view):
        from src.engines import collect_events

        events = collect_events(hypertensive_view)
        assert [(e.kind.value, e.name) for e in events] == [
            ("test", "Blood Pressure"),
            ("diagnosis", "Hypertension"),
            ("medication", "Amlodipine"),
        ]
        assert events[2].details == {"dosage": "5mg", "frequency": None}

    def test_duplicate_names_collapse(self):
        from src.engines import collect_events

        view = make_view(conditions=[{"name": "Hypertension"}, {"name": "hyper-tension"}])
        assert len(collect_events(view)) == 1

    def test_undated_events_come_first(self):
        from src.engines import collect_events

        view = make_view(
            conditions=[{"name": "Hypertension", "diagnosed_date": "2023-01-10T00:00:00Z"}],
            parameters=[{"name": "Blood Pressure", "value": "150/95"}],
        )
        assert [e.name for e in collect_events(view)] == ["Blood Pressure", "Hypertension"]


class TestProjection:

    def test_steps_follow_evidence(self, hypertensive_view):
        from src.engines import project_pathway

        projection = project_pathway("Hypertension", hypertensive_view)
        status = {s.id: s.status.value for s in projection.steps}

        assert status["bp_monitoring"] == "completed"
        assert status["diagnosis_confirmed"] == "current"
        assert status["cardiovascular_assessment"] == "pending"
        assert status["antihypertensive_therapy"] == "completed"
        assert projection.current_step.id == "diagnosis_confirmed"
        assert ("bp_monitoring", "diagnosis_confirmed") in projection.edges

    def test_matched_event_is_the_most_recent(self, hypertensive_view):
        from src.engines import project_pathway

        step = project_pathway("Hypertension", hypertensive_view).steps[0]
        assert [e.name for e in step.matches] == ["Blood Pressure", "Hypertension"]
        assert step.matched_event.name == "Hypertension"

    def test_only_one_current_step(self):
        from src.engines import project_pathway

        projection = project_pathway("Diabetes", make_view())
        statuses = [s.status.value for s in projection.steps]
        assert statuses[0] == "current"
        assert set(statuses[1:]) == {"pending"}

    def test_unknown_condition(self, hypertensive_view):
        from src.engines import project_pathway

        assert project_pathway("Asthma", hypertensive_view) is None

    def test_tracked_pathways(self):
        from src.engines import project_tracked_pathways

        view = make_view(conditions=[
            {"name": "Hypertension"},
            {"name": "High Blood Pressure"},
            {"name": "Type 2 Diabetes"},
            {"name": "Migraine"},
        ])
        assert [p.condition for p in project_tracked_pathways(view)] == ["Hypertension", "Type 2 Diabetes"]

    def test_no_conditions_no_pathways(self):
        from src.engines import project_tracked_pathways

        assert project_tracked_pathways(make_view()) == []
