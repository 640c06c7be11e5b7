"""
User, consent and timeline models for Niraiva.

These models represent portal accounts and the records that hang off a
patient: consents granted to clinicians, timeline events, personal records
and doctor notes.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field

from src.time_utils import utc_now


class UserRole(str, Enum):
  """User roles for access control."""

  PATIENT = "patient"
  DOCTOR = "doctor"
  CLINICAL_STAFF = "clinical_staff"
  ADMIN = "admin"

  @classmethod
  def parse(cls, value: Any) -> "UserRole":
    """Resolve a stored role string, falling back to patient."""
    try:
      return cls(str(value).strip().lower())
    except ValueError:
      return cls.PATIENT


class UserProfile(BaseModel):
  """
  Profile row for a portal user.

  Links to Supabase auth.users through user_id.
  """

  user_id: str
  email: Optional[str] = None
  full_name: Optional[str] = None
  first_name: Optional[str] = None
  middle_name: Optional[str] = None
  last_name: Optional[str] = None
  dob: Optional[date] = None
  gender: Optional[str] = None
  phone: Optional[str] = None
  allergies: list[str] = Field(default_factory=list)

  class Config:
    from_attributes = True

  @property
  def display_name(self) -> str:
    """Name shown in headers: full name, joined parts, email prefix, then 'User'."""
    if self.full_name and self.full_name.strip():
      return self.full_name.strip()
    parts = [p for p in (self.first_name, self.middle_name, self.last_name) if p]
    if parts:
      return " ".join(parts)
    if self.email:
      return self.email.split("@")[0]
    return "User"

  def age_on(self, today: date) -> Optional[int]:
    """Age in whole years on the given day."""
    if not self.dob:
      return None
    age = today.year - self.dob.year
    if (today.month, today.day) < (self.dob.month, self.dob.day):
      age -= 1
    return age

  @property
  def age(self) -> Optional[int]:
    return self.age_on(date.today())

  @classmethod
  def from_db(cls, data: dict) -> "UserProfile":
    """Create UserProfile from database row."""
    dob = data.get("dob")
    if isinstance(dob, str):
      try:
        dob = date.fromisoformat(dob[:10])
      except ValueError:
        dob = None

    return cls(
      user_id=str(data["user_id"]),
      email=data.get("email"),
      full_name=data.get("full_name"),
      first_name=data.get("first_name") or None,
      middle_name=data.get("middle_name"),
      last_name=data.get("last_name"),
      dob=dob,
      gender=data.get("gender") or None,
      phone=data.get("phone") or data.get("mobile_number") or None,
      allergies=[a for a in (data.get("allergies") or []) if isinstance(a, str)],
    )


class ConsentStatus(str, Enum):
  ACTIVE = "active"
  REVOKED = "revoked"
  EXPIRED = "expired"


class Consent(BaseModel):
  """
  Permission from a patient for a clinician to read their records.

  Scopes name record categories such as 'labs', 'imaging' or 'notes'.
  """

  id: str
  patient_id: str
  granted_to: str
  scopes: list[str] = Field(default_factory=list)
  purpose: str = ""
  expires_at: Optional[datetime] = None
  status: ConsentStatus = ConsentStatus.ACTIVE
  created_at: Optional[datetime] = None
  revoked_at: Optional[datetime] = None

  class Config:
    from_attributes = True

  def is_active(self, now: Optional[datetime] = None) -> bool:
    """Active status and not yet expired."""
    if self.status != ConsentStatus.ACTIVE:
      return False
    if self.expires_at is None:
      return True
    now = now or utc_now()
    expires_at = self.expires_at
    if expires_at.tzinfo is None:
      expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > now

  def covers(self, scopes: Optional[list[str]]) -> bool:
    """Check that every required scope was granted."""
    if not scopes:
      return True
    return all(scope in self.scopes for scope in scopes)


class Authority(str, Enum):
  """Who vouches for a timeline entry."""

  CLINICAL = "clinical"
  PERSONAL = "personal"


class TimelineEvent(BaseModel):
  """
  An entry on the unified patient timeline.

  Clinical entries reference medical_records, personal ones personal_records.
  Dates are kept as the raw strings the database returned.
  """

  id: str
  patient_id: str
  event_type: str
  reference_table: Optional[str] = None
  reference_id: Optional[str] = None
  authority: Authority = Authority.CLINICAL
  display_priority: int = 0
  event_time: Optional[str] = None
  clinical_event_date: Optional[str] = None
  report_date: Optional[str] = None
  upload_date: Optional[str] = None
  date: Optional[str] = None
  status: Optional[str] = None
  source: Optional[str] = None
  metadata: Optional[dict[str, Any]] = None

  class Config:
    from_attributes = True


class PersonalRecordType(str, Enum):
  PHOTO = "photo"
  WEARABLE = "wearable"
  LIFESTYLE = "lifestyle"
  NOTE = "note"
  SYMPTOM = "symptom"


class PersonalRecord(BaseModel):
  """Patient-entered record; never clinically authoritative."""

  id: str
  patient_id: str
  type: PersonalRecordType
  authority: Authority = Authority.PERSONAL
  data: dict[str, Any] = Field(default_factory=dict)
  file_url: Optional[str] = None
  created_at: Optional[str] = None

  class Config:
    from_attributes = True


class DoctorNote(BaseModel):
  """Free-text note a doctor keeps on a patient."""

  id: str
  doctor_id: str
  patient_user_id: str
  content: str
  created_at: Optional[str] = None

  class Config:
    from_attributes = True

  @classmethod
  def from_db(cls, data: dict) -> "DoctorNote":
    """Create DoctorNote from a doctor_notes row (text stored as 'note')."""
    return cls(
      id=str(data["id"]),
      doctor_id=str(data["doctor_id"]),
      patient_user_id=str(data["patient_user_id"]),
      content=data.get("note") or data.get("content") or "",
      created_at=data.get("created_at"),
    )
