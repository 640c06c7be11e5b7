"""
Shared pytest fixtures for Niraiva tests.

API tests run against in-memory fake repositories wired in through
``app.dependency_overrides``; no Supabase project is needed.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest


# =============================================================================
# Report builders
# =============================================================================


def make_report(report_id, uploaded_at, profile=None, parameters=None, conditions=None, medications=None, **extra):
    """Build a raw health_reports row."""
    data = {}
    if profile is not None:
        data["profile"] = profile
    if parameters is not None:
        data["parameters"] = parameters
    if conditions is not None:
        data["conditions"] = conditions
    if medications is not None:
        data["medications"] = medications
    return {
        "id": report_id,
        "uploaded_at": uploaded_at,
        "report_json": {"data": data},
        **extra,
    }


@pytest.fixture
def report_factory():
    return make_report


# =============================================================================
# Chainable Supabase query fake
# =============================================================================


class FakeQuery:
    """Records a postgrest-style call chain and returns canned data."""

    def __init__(self, table, data=None):
        self.table = table
        self.calls = []
        self._data = data

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return record

    def execute(self):
        if self._data is not None:
            return SimpleNamespace(data=self._data)
        for name, args, _ in self.calls:
            if name in ("insert", "upsert", "update"):
                payload = args[0]
                rows = payload if isinstance(payload, list) else [payload]
                return SimpleNamespace(data=[{"id": str(uuid4()), **row} for row in rows])
        return SimpleNamespace(data=self.table.rows)


class FakeTable:
    def __init__(self, name, rows=None):
        self.name = name
        self.rows = rows or []
        self.queries = []

    def query(self):
        q = FakeQuery(self)
        self.queries.append(q)
        return q


class FakeBucket:
    def __init__(self):
        self.uploads = []

    def upload(self, path, content, options=None):
        self.uploads.append((path, content, options))
        return {"Key": path}

    def create_signed_url(self, path, expires_in):
        return {"signedURL": f"https://storage.example/{path}?expires={expires_in}"}


class FakeSupabase:
    """Stands in for SupabaseClient at the table() / storage() seam."""

    def __init__(self):
        self.tables = {}
        self.buckets = {}

    def table(self, name):
        return self.tables.setdefault(name, FakeTable(name)).query()

    def storage(self, bucket):
        return self.buckets.setdefault(bucket, FakeBucket())


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


# =============================================================================
# In-memory repositories for API tests
# =============================================================================


class MemoryProfiles:
    def __init__(self):
        self.rows = {}

    def get(self, user_id):
        return self.rows.get(user_id)

    def ensure(self, user_id, email=None, **kwargs):
        if user_id not in self.rows:
            self.rows[user_id] = {"user_id": user_id, "email": email, "allergies": [], **kwargs}
        return self.rows[user_id]

    def update(self, user_id, **kwargs):
        if user_id not in self.rows:
            return None
        self.rows[user_id].update(kwargs)
        return self.rows[user_id]

    def add_allergy(self, user_id, allergy):
        row = self.ensure(user_id)
        if allergy.lower() not in {a.lower() for a in row["allergies"]}:
            row["allergies"].append(allergy)
        return row["allergies"]

    def remove_allergy(self, user_id, allergy):
        row = self.ensure(user_id)
        row["allergies"] = [a for a in row["allergies"] if a.lower() != allergy.lower()]
        return row["allergies"]


class MemoryRoles:
    def __init__(self):
        self.rows = {}

    def get(self, user_id):
        return self.rows.get(user_id)

    def ensure(self, user_id, role="patient"):
        return self.rows.setdefault(user_id, {"role": role, "patient_id": None})


class MemoryReports:
    def __init__(self):
        self.rows = []

    def list_for_user(self, user_id):
        return [r for r in self.rows if r.get("user_id") == user_id]

    def delete(self, report_id, user_id):
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r["id"] == report_id and r.get("user_id") == user_id)]
        return len(self.rows) < before


class MemorySnapshots:
    def __init__(self):
        self.rows = {}

    def get(self, patient_id):
        return self.rows.get(patient_id)

    def upsert(self, patient_id, **values):
        row = {**self.rows.get(patient_id, {}), "patient_id": patient_id, **values}
        self.rows[patient_id] = row
        return row


class MemoryParameters:
    def __init__(self):
        self.rows = []

    def list_for_user(self, user_id):
        rows = [r for r in self.rows if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["measured_at"], reverse=True)

    def add(self, user_id, name, value, unit=None, status="normal", measured_at=None, source="dashboard"):
        row = {
            "id": f"param-{len(self.rows) + 1}",
            "user_id": user_id,
            "name": name,
            "value": value,
            "unit": unit,
            "status": status,
            "measured_at": measured_at or "2024-06-01T00:00:00+00:00",
            "source": source,
        }
        self.rows.append(row)
        return row


class MemoryUserRows:
    """Shared shape of the per-user condition and medication tables."""

    prefix = "row"

    def __init__(self):
        self.rows = []

    def list_for_user(self, user_id):
        return [r for r in self.rows if r["user_id"] == user_id]

    def add(self, user_id, item):
        data = item.model_dump(mode="json", exclude_none=True) if hasattr(item, "model_dump") else dict(item)
        row = {"id": f"{self.prefix}-{len(self.rows) + 1}", "user_id": user_id, **data}
        self.rows.append(row)
        return row

    def delete(self, row_id, user_id):
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r["id"] == row_id and r["user_id"] == user_id)]
        return len(self.rows) < before


class MemoryConditions(MemoryUserRows):
    prefix = "cond"


class MemoryMedications(MemoryUserRows):
    prefix = "med"


class MemoryNotes:
    def __init__(self):
        self.rows = []

    def list_for_patient(self, patient_user_id):
        return [n for n in self.rows if n["patient_user_id"] == patient_user_id]

    def create(self, doctor_id, patient_user_id, content):
        row = {
            "id": f"note-{len(self.rows) + 1}",
            "doctor_id": doctor_id,
            "patient_user_id": patient_user_id,
            "note": content,
            "created_at": "2024-05-01T10:00:00Z",
        }
        self.rows.append(row)
        return row


class MemoryConsents:
    def __init__(self):
        self.rows = {}

    def grant(self, patient_id, granted_to, scopes, purpose="", expires_in_days=None):
        consent_id = f"consent-{len(self.rows) + 1}"
        self.rows[consent_id] = {
            "id": consent_id,
            "patient_id": patient_id,
            "granted_to": granted_to,
            "scopes": scopes,
            "purpose": purpose,
            "expires_at": "2999-01-01T00:00:00Z",
            "status": "active",
        }
        return self.rows[consent_id]

    def get(self, consent_id):
        return self.rows.get(consent_id)

    def list_for_patient(self, patient_id):
        return [c for c in self.rows.values() if c["patient_id"] == patient_id]

    def active_for_grantee(self, granted_to, patient_id):
        return [
            c for c in self.rows.values()
            if c["granted_to"] == granted_to and c["patient_id"] == patient_id and c["status"] == "active"
        ]

    def revoke(self, consent_id):
        self.rows[consent_id]["status"] = "revoked"
        return self.rows[consent_id]


class MemoryTimeline:
    def __init__(self):
        self.rows = []

    def list_for_patient(self, patient_id, limit=50, offset=0):
        return [e for e in self.rows if e["patient_id"] == patient_id][offset:offset + limit]


class MemoryPersonalRecords:
    def __init__(self, timeline):
        self.rows = {}
        self.timeline = timeline

    def list_for_patient(self, patient_id):
        return [r for r in self.rows.values() if r["patient_id"] == patient_id]

    def get(self, record_id):
        return self.rows.get(record_id)

    def create(self, patient_id, record_type, data=None, file_url=None):
        record_id = f"rec-{len(self.rows) + 1}"
        self.rows[record_id] = {
            "id": record_id,
            "patient_id": patient_id,
            "type": record_type,
            "authority": "personal",
            "data": data or {},
            "file_url": file_url,
        }
        self.timeline.rows.append({
            "id": f"evt-{record_id}",
            "patient_id": patient_id,
            "event_type": f"personal_{record_type}",
            "authority": "personal",
            "event_time": "2024-05-01T09:00:00Z",
        })
        return self.rows[record_id]

    def delete(self, record_id):
        return self.rows.pop(record_id, None) is not None


class MemoryDoctorPatients:
    def __init__(self):
        self.links = []

    def list_patients(self, doctor_id):
        return [link for link in self.links if link["doctor_id"] == doctor_id]

    def is_linked(self, doctor_id, patient_user_id):
        return any(
            link["doctor_id"] == doctor_id and link["patient_user_id"] == patient_user_id for link in self.links
        )

    def link(self, doctor_id, patient_user_id):
        row = {"doctor_id": doctor_id, "patient_user_id": patient_user_id}
        self.links.append(row)
        return row


class MemoryStorage:
    def __init__(self):
        self.uploads = []

    def upload(self, patient_id, filename, content, content_type=None):
        path = f"patient_{patient_id}/1700000000000_{filename}"
        self.uploads.append((path, content))
        return path

    def signed_url(self, path, expires_in=3600):
        if not any(p == path for p, _ in self.uploads):
            return None
        return f"https://storage.example/{path}?expires={expires_in}"


class FakeParser:
    def __init__(self):
        self.calls = []

    async def upload_report(self, token, filename, content, content_type=None):
        self.calls.append(("upload", filename))
        return {"success": True, "filename": filename}

    async def process_doctor_report(self, token, patient_user_id, file_path, document_type="lab_report"):
        self.calls.append(("doctor", patient_user_id, file_path))
        return {"success": True}


class FakeResolver:
    def __init__(self, roles):
        self.roles = roles

    async def resolve(self, user_id):
        from src.auth.roles import RoleInfo
        return RoleInfo.from_row(self.roles.get(user_id))


class FakeAuthClient:
    """Fake of the SupabaseClient auth convenience methods."""

    def __init__(self):
        self.revoked = []
        self.exchanged = None

    def _response(self, user_id="user-1", email="pat@example.com"):
        return SimpleNamespace(
            user=SimpleNamespace(id=user_id, email=email, user_metadata={"full_name": "Pat Example"}),
            session=SimpleNamespace(access_token="access-token", refresh_token="refresh-token"),
        )

    def sign_up(self, email, password, metadata=None):
        return self._response(email=email)

    def sign_in(self, email, password):
        if password != "correct-horse":
            raise ValueError("Invalid login credentials")
        user_id = "doctor-1" if email.startswith("doc") else "user-1"
        return self._response(user_id=user_id, email=email)

    def sign_in_with_oauth(self, provider, redirect_to):
        return f"https://auth.example/{provider}?redirect_to={redirect_to}", "verifier-123"

    def exchange_code_for_session(self, code, code_verifier=None):
        self.exchanged = (code, code_verifier)
        return self._response()

    def refresh_session(self, refresh_token):
        return self._response()

    def sign_out(self, access_token):
        self.revoked.append(access_token)


@pytest.fixture
def store():
    """All in-memory repositories, seeded with one patient and one doctor."""
    timeline = MemoryTimeline()
    s = SimpleNamespace(
        profiles=MemoryProfiles(),
        roles=MemoryRoles(),
        reports=MemoryReports(),
        snapshots=MemorySnapshots(),
        parameters=MemoryParameters(),
        conditions=MemoryConditions(),
        medications=MemoryMedications(),
        notes=MemoryNotes(),
        consents=MemoryConsents(),
        timeline=timeline,
        personal=MemoryPersonalRecords(timeline),
        links=MemoryDoctorPatients(),
        storage=MemoryStorage(),
        parser=FakeParser(),
        auth=FakeAuthClient(),
    )
    s.profiles.ensure("user-1", email="pat@example.com", first_name="Pat", last_name="Example", dob="1980-06-15")
    s.roles.rows["user-1"] = {"role": "patient", "patient_id": "record-1"}
    s.profiles.ensure("doctor-1", email="doc@example.com", full_name="Dr. Rao")
    s.roles.rows["doctor-1"] = {"role": "doctor", "patient_id": None}
    return s


@pytest.fixture
def as_user(store):
    """Return a function that switches the authenticated caller."""
    from server import app
    from src.auth import get_current_user, AuthenticatedUser

    def switch(user_id):
        role = store.roles.get(user_id) or {}
        user = AuthenticatedUser(
            id=user_id,
            email=f"{user_id}@example.com",
            role=role.get("role", "patient"),
            patient_id=role.get("patient_id"),
            token="test-token",
        )
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return switch


@pytest.fixture
def client(store):
    """FastAPI TestClient with every data dependency replaced by the store."""
    from fastapi.testclient import TestClient

    import server
    from src.auth import get_role_resolver

    overrides = {
        server.get_auth_client: lambda: store.auth,
        server.get_profile_repo: lambda: store.profiles,
        server.get_role_repo: lambda: store.roles,
        server.get_report_repo: lambda: store.reports,
        server.get_snapshot_repo: lambda: store.snapshots,
        server.get_parameter_repo: lambda: store.parameters,
        server.get_condition_repo: lambda: store.conditions,
        server.get_medication_repo: lambda: store.medications,
        server.get_note_repo: lambda: store.notes,
        server.get_consent_repo: lambda: store.consents,
        server.get_timeline_repo: lambda: store.timeline,
        server.get_personal_record_repo: lambda: store.personal,
        server.get_doctor_patient_repo: lambda: store.links,
        server.get_document_storage: lambda: store.storage,
        server.get_parsing_client: lambda: store.parser,
        get_role_resolver: lambda: FakeResolver(store.roles),
    }
    server.app.dependency_overrides.update(overrides)
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()
