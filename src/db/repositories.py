"""
Repository classes for database operations.

Each repository handles CRUD operations for a specific table,
providing a clean interface for the rest of the application.
Row Level Security still applies when the anon client is used, so
every query is additionally scoped to the owning user where the table
has one.
"""

import re
from datetime import timedelta
from typing import Optional, Any
from uuid import UUID

import structlog

from src.db.client import get_client, get_admin_client, SupabaseClient
from src.time_utils import utc_now, isoformat

logger = structlog.get_logger(__name__)

DEFAULT_CONSENT_DAYS = 30
DOCUMENT_BUCKET = "medical-documents"
SIGNED_URL_SECONDS = 60


class BaseRepository:
  """Base class for all repositories."""

  table_name: str = ""

  def __init__(self, client: Optional[SupabaseClient] = None, use_admin: bool = False):
    """
    Initialize repository with optional client.

    Args:
      client: Supabase client to use. If None, gets default client.
      use_admin: If True and no client provided, use admin client.
    """
    if client:
      self._client = client
    elif use_admin:
      self._client = get_admin_client()
    else:
      self._client = get_client()

  @property
  def table(self):
    """Get the table reference."""
    return self._client.table(self.table_name)

  def _to_dict(self, obj: Any) -> dict:
    """Convert object to dict for storage."""
    if hasattr(obj, "model_dump"):
      return obj.model_dump(mode="json", exclude_none=True)
    elif isinstance(obj, dict):
      return obj
    else:
      raise ValueError(f"Cannot convert {type(obj)} to dict")

  @staticmethod
  def _first(response) -> Optional[dict]:
    return response.data[0] if response.data else None


class ProfileRepository(BaseRepository):
  """Repository for user profiles."""

  table_name = "user_profiles"

  def get(self, user_id: str | UUID) -> Optional[dict]:
    """Get profile by auth user id."""
    response = self.table.select("*").eq("user_id", str(user_id)).limit(1).execute()
    return self._first(response)

  def ensure(self, user_id: str | UUID, email: Optional[str] = None, **kwargs) -> dict:
    """Return the profile, creating an empty one first if missing."""
    existing = self.get(user_id)
    if existing:
      return existing
    data = {"user_id": str(user_id), "email": email, **kwargs}
    response = self.table.insert(data).execute()
    logger.info("profile_created", user_id=str(user_id))
    return self._first(response)

  def update(self, user_id: str | UUID, **kwargs) -> Optional[dict]:
    """Update profile fields."""
    response = self.table.update(kwargs).eq("user_id", str(user_id)).execute()
    return self._first(response)

  def add_allergy(self, user_id: str | UUID, allergy: str) -> list[str]:
    """Add an allergy; duplicates (ignoring case) are not added twice."""
    profile = self.get(user_id) or {}
    allergies = list(profile.get("allergies") or [])
    allergy = allergy.strip()
    if allergy and allergy.lower() not in {a.lower() for a in allergies}:
      allergies.append(allergy)
      self.update(user_id, allergies=allergies)
    return allergies

  def remove_allergy(self, user_id: str | UUID, allergy: str) -> list[str]:
    """Remove an allergy, matching case-insensitively."""
    profile = self.get(user_id) or {}
    allergies = list(profile.get("allergies") or [])
    remaining = [a for a in allergies if a.lower() != allergy.strip().lower()]
    if len(remaining) != len(allergies):
      self.update(user_id, allergies=remaining)
    return remaining


class RoleRepository(BaseRepository):
  """Repository for portal roles and linked patient records."""

  table_name = "user_roles"

  def get(self, user_id: str | UUID) -> Optional[dict]:
    """Get the role row for a user."""
    response = self.table.select("role, patient_id").eq("user_id", str(user_id)).limit(1).execute()
    return self._first(response)

  def ensure(self, user_id: str | UUID, role: str = "patient") -> dict:
    """Return the role row, creating a patient row if missing."""
    existing = self.get(user_id)
    if existing:
      return existing
    response = self.table.insert({"user_id": str(user_id), "role": role}).execute()
    logger.info("role_created", user_id=str(user_id), role=role)
    return self._first(response)

  def set(self, user_id: str | UUID, role: str, patient_id: Optional[str] = None) -> Optional[dict]:
    """Set a user's role and linked patient record."""
    data = {"user_id": str(user_id), "role": role, "patient_id": patient_id}
    response = self.table.upsert(data, on_conflict="user_id").execute()
    return self._first(response)


class ReportRepository(BaseRepository):
  """Repository for uploaded health reports."""

  table_name = "health_reports"

  def list_for_user(self, user_id: str | UUID) -> list[dict]:
    """All reports for a user, newest first."""
    response = (
      self.table.select("*")
      .eq("user_id", str(user_id))
      .order("uploaded_at", desc=True)
      .execute()
    )
    return response.data or []

  def get(self, report_id: str | UUID) -> Optional[dict]:
    """Get report by ID."""
    response = self.table.select("*").eq("id", str(report_id)).limit(1).execute()
    return self._first(response)

  def delete(self, report_id: str | UUID, user_id: str | UUID) -> bool:
    """Delete a report owned by the user."""
    response = self.table.delete().eq("id", str(report_id)).eq("user_id", str(user_id)).execute()
    return len(response.data) > 0 if response.data else False


class SnapshotRepository(BaseRepository):
  """Repository for the authoritative latest-vitals snapshot."""

  table_name = "patient_health_snapshot"

  def get(self, patient_id: str | UUID) -> Optional[dict]:
    """Get the snapshot for a patient, if one exists."""
    response = self.table.select("*").eq("patient_id", str(patient_id)).limit(1).execute()
    return self._first(response)

  def upsert(self, patient_id: str | UUID, **values) -> Optional[dict]:
    """Create or replace the snapshot."""
    data = {"patient_id": str(patient_id), "last_updated": isoformat(utc_now()), **values}
    response = self.table.upsert(data, on_conflict="patient_id").execute()
    return self._first(response)


class HealthParameterRepository(BaseRepository):
  """Repository for extracted health parameters."""

  table_name = "health_parameters"

  def list_for_user(self, user_id: str | UUID) -> list[dict]:
    """Readings for a user, newest first."""
    response = (
      self.table.select("*")
      .eq("user_id", str(user_id))
      .order("measured_at", desc=True)
      .execute()
    )
    return response.data or []

  def add(
    self,
    user_id: str | UUID,
    name: str,
    value: Any,
    unit: Optional[str] = None,
    status: str = "normal",
    measured_at: Optional[str] = None,
    source: str = "dashboard",
  ) -> Optional[dict]:
    """Record one reading; it is stamped with the current time unless given one."""
    data = {
      "user_id": str(user_id),
      "name": name,
      "value": value,
      "unit": unit,
      "status": status,
      "measured_at": measured_at or isoformat(utc_now()),
      "source": source,
    }
    response = self.table.insert(data).execute()
    return self._first(response)


class ConditionRepository(BaseRepository):
  """Repository for chronic conditions."""

  table_name = "chronic_conditions"

  def list_for_user(self, user_id: str | UUID) -> list[dict]:
    """Conditions for a user, most recently diagnosed first."""
    response = (
      self.table.select("*")
      .eq("user_id", str(user_id))
      .order("diagnosed_date", desc=True)
      .execute()
    )
    return response.data or []

  def add(self, user_id: str | UUID, condition: Any) -> Optional[dict]:
    """Add a condition from a model or dict."""
    response = self.table.insert({"user_id": str(user_id), **self._to_dict(condition)}).execute()
    return self._first(response)

  def delete(self, condition_id: str | UUID, user_id: str | UUID) -> bool:
    response = self.table.delete().eq("id", str(condition_id)).eq("user_id", str(user_id)).execute()
    return len(response.data) > 0 if response.data else False


class MedicationRepository(BaseRepository):
  """Repository for current medications."""

  table_name = "medications"

  def list_for_user(self, user_id: str | UUID) -> list[dict]:
    response = self.table.select("*").eq("user_id", str(user_id)).execute()
    return response.data or []

  def add(self, user_id: str | UUID, medication: Any) -> Optional[dict]:
    response = self.table.insert({"user_id": str(user_id), **self._to_dict(medication)}).execute()
    return self._first(response)

  def delete(self, medication_id: str | UUID, user_id: str | UUID) -> bool:
    response = self.table.delete().eq("id", str(medication_id)).eq("user_id", str(user_id)).execute()
    return len(response.data) > 0 if response.data else False


class DoctorNoteRepository(BaseRepository):
  """Repository for doctor notes on patients."""

  table_name = "doctor_notes"

  def list_for_patient(self, patient_user_id: str | UUID) -> list[dict]:
    """Notes on a patient, newest first."""
    response = (
      self.table.select("*")
      .eq("patient_user_id", str(patient_user_id))
      .order("created_at", desc=True)
      .execute()
    )
    return response.data or []

  def create(self, doctor_id: str | UUID, patient_user_id: str | UUID, content: str) -> Optional[dict]:
    data = {
      "doctor_id": str(doctor_id),
      "patient_user_id": str(patient_user_id),
      "note": content,
    }
    response = self.table.insert(data).execute()
    return self._first(response)


class ConsentRepository(BaseRepository):
  """Repository for patient consents."""

  table_name = "consents"

  def grant(
    self,
    patient_id: str | UUID,
    granted_to: str | UUID,
    scopes: list[str],
    purpose: str = "",
    expires_in_days: Optional[int] = None,
  ) -> Optional[dict]:
    """Grant a consent; expires after 30 days unless told otherwise."""
    expires_at = utc_now() + timedelta(days=expires_in_days or DEFAULT_CONSENT_DAYS)
    data = {
      "patient_id": str(patient_id),
      "granted_to": str(granted_to),
      "scopes": scopes,
      "purpose": purpose,
      "expires_at": isoformat(expires_at),
      "status": "active",
    }
    response = self.table.insert(data).execute()
    return self._first(response)

  def get(self, consent_id: str | UUID) -> Optional[dict]:
    response = self.table.select("*").eq("id", str(consent_id)).limit(1).execute()
    return self._first(response)

  def list_for_patient(self, patient_id: str | UUID) -> list[dict]:
    """Consents granted by a patient, newest first."""
    response = (
      self.table.select("*")
      .eq("patient_id", str(patient_id))
      .order("created_at", desc=True)
      .execute()
    )
    return response.data or []

  def active_for_grantee(self, granted_to: str | UUID, patient_id: str | UUID) -> list[dict]:
    """Active, unexpired consents a patient granted to one user."""
    response = (
      self.table.select("*")
      .eq("granted_to", str(granted_to))
      .eq("patient_id", str(patient_id))
      .eq("status", "active")
      .gt("expires_at", isoformat(utc_now()))
      .execute()
    )
    return response.data or []

  def revoke(self, consent_id: str | UUID) -> Optional[dict]:
    data = {"status": "revoked", "revoked_at": isoformat(utc_now())}
    response = self.table.update(data).eq("id", str(consent_id)).execute()
    return self._first(response)


class TimelineRepository(BaseRepository):
  """Repository for unified timeline events."""

  table_name = "timeline_events"

  def list_for_patient(self, patient_id: str | UUID, limit: int = 50, offset: int = 0) -> list[dict]:
    """
    Events for a patient.

    Ordered by clinical event date (nulls last), then upload date.
    """
    response = (
      self.table.select("*")
      .eq("patient_id", str(patient_id))
      .order("clinical_event_date", desc=True, nullsfirst=False)
      .order("upload_date", desc=True)
      .range(offset, offset + limit - 1)
      .execute()
    )
    return response.data or []

  def create(
    self,
    patient_id: str | UUID,
    event_type: str,
    reference_table: str,
    reference_id: str | UUID,
    authority: str,
    display_priority: int = 0,
    metadata: Optional[dict] = None,
    **kwargs,
  ) -> Optional[dict]:
    data = {
      "patient_id": str(patient_id),
      "event_type": event_type,
      "reference_table": reference_table,
      "reference_id": str(reference_id),
      "authority": authority,
      "display_priority": display_priority,
      "event_time": isoformat(utc_now()),
      "metadata": metadata or {},
      **kwargs,
    }
    response = self.table.insert(data).execute()
    return self._first(response)


class PersonalRecordRepository(BaseRepository):
  """Repository for patient-entered personal records."""

  table_name = "personal_records"

  def __init__(self, client: Optional[SupabaseClient] = None, use_admin: bool = False):
    super().__init__(client, use_admin)
    self.timeline = TimelineRepository(self._client)

  def list_for_patient(self, patient_id: str | UUID) -> list[dict]:
    response = (
      self.table.select("*")
      .eq("patient_id", str(patient_id))
      .order("created_at", desc=True)
      .execute()
    )
    return response.data or []

  def get(self, record_id: str | UUID) -> Optional[dict]:
    response = self.table.select("*").eq("id", str(record_id)).limit(1).execute()
    return self._first(response)

  def create(
    self,
    patient_id: str | UUID,
    record_type: str,
    data: Optional[dict] = None,
    file_url: Optional[str] = None,
  ) -> Optional[dict]:
    """Create a record and its personal timeline event."""
    row = {
      "patient_id": str(patient_id),
      "type": record_type,
      "authority": "personal",
      "data": data or {},
      "file_url": file_url,
    }
    response = self.table.insert(row).execute()
    record = self._first(response)
    if record:
      self.timeline.create(
        patient_id=patient_id,
        event_type=f"personal_{record_type}",
        reference_table=self.table_name,
        reference_id=record["id"],
        authority="personal",
        metadata={"type": record_type, "data": data or {}},
      )
    return record

  def delete(self, record_id: str | UUID) -> bool:
    response = self.table.delete().eq("id", str(record_id)).execute()
    return len(response.data) > 0 if response.data else False


class DoctorPatientRepository(BaseRepository):
  """Repository for doctor to patient links."""

  table_name = "doctor_patients"

  def list_patients(self, doctor_id: str | UUID) -> list[dict]:
    """Patients linked to a doctor, with their profile rows."""
    response = (
      self.table.select("patient_user_id, user_profiles!inner(*)")
      .eq("doctor_id", str(doctor_id))
      .execute()
    )
    return response.data or []

  def is_linked(self, doctor_id: str | UUID, patient_user_id: str | UUID) -> bool:
    response = (
      self.table.select("patient_user_id")
      .eq("doctor_id", str(doctor_id))
      .eq("patient_user_id", str(patient_user_id))
      .limit(1)
      .execute()
    )
    return bool(response.data)

  def link(self, doctor_id: str | UUID, patient_user_id: str | UUID) -> Optional[dict]:
    data = {"doctor_id": str(doctor_id), "patient_user_id": str(patient_user_id)}
    response = self.table.upsert(data, on_conflict="doctor_id,patient_user_id").execute()
    return self._first(response)


class DocumentStorage:
  """Object storage for original medical documents."""

  bucket = DOCUMENT_BUCKET

  def __init__(self, client: Optional[SupabaseClient] = None, use_admin: bool = False):
    if client:
      self._client = client
    elif use_admin:
      self._client = get_admin_client()
    else:
      self._client = get_client()

  @staticmethod
  def build_path(patient_id: str | UUID, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Storage path ``patient_{id}/{ts}_{name}``."""
    if timestamp_ms is None:
      timestamp_ms = int(utc_now().timestamp() * 1000)
    safe_name = re.sub(r"[\\/]+", "_", filename or "document")
    return f"patient_{patient_id}/{timestamp_ms}_{safe_name}"

  def upload(self, patient_id: str | UUID, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
    """Upload a document and return its storage path."""
    path = self.build_path(patient_id, filename)
    options = {"content-type": content_type} if content_type else None
    self._client.storage(self.bucket).upload(path, content, options)
    logger.info("document_uploaded", path=path, size=len(content))
    return path

  def signed_url(self, path: str, expires_in: int = SIGNED_URL_SECONDS) -> Optional[str]:
    """Short-lived URL for viewing the original document."""
    result = self._client.storage(self.bucket).create_signed_url(path, expires_in)
    if not isinstance(result, dict):
      return None
    return result.get("signedURL") or result.get("signedUrl")
