"""
Consent checks for access to patient records.

Clinicians read a patient's record only under an active consent the
patient granted them. Admins bypass the check, and a patient always
reaches their own linked record.
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from src.errors import AccessDeniedError, NotFoundError
from src.models.user import Consent, UserRole

logger = structlog.get_logger(__name__)


def has_consent(
  consents: Iterable[Consent | dict],
  required_scopes: Optional[list[str]] = None,
  now: Optional[datetime] = None,
) -> bool:
  """
  True when any active, unexpired consent covers every required scope.

  With no required scopes any active consent is enough.
  """
  for raw in consents:
    consent = raw if isinstance(raw, Consent) else Consent.model_validate(raw)
    if consent.is_active(now) and consent.covers(required_scopes):
      return True
  return False


def can_access_patient(
  user,
  patient_id: str,
  consents: Iterable[Consent | dict] = (),
  required_scopes: Optional[list[str]] = None,
) -> bool:
  """
  Decide whether ``user`` may read ``patient_id``'s record.

  ``user`` is anything with ``id``, ``role`` and ``patient_id``
  attributes, such as an AuthenticatedUser.
  """
  role = UserRole.parse(user.role)
  if role == UserRole.ADMIN:
    return True
  if role == UserRole.PATIENT:
    return patient_id in (user.id, user.patient_id)
  return has_consent(consents, required_scopes)


def enforce_patient_access(user, patient_id: str, consent_repo, required_scopes: Optional[list[str]] = None) -> None:
  """Raise AccessDeniedError unless the user may read the patient's record."""
  role = UserRole.parse(user.role)
  consents = []
  if role not in (UserRole.ADMIN, UserRole.PATIENT):
    consents = consent_repo.active_for_grantee(user.id, patient_id)
  if not can_access_patient(user, patient_id, consents, required_scopes):
    logger.warning("patient_access_denied", user_id=user.id, patient_id=patient_id, scopes=required_scopes)
    raise AccessDeniedError("Access denied. Consent required.")


def revoke_consent(consent_repo, consent_id: str, patient_id: str) -> dict:
  """Revoke a consent; only the patient who granted it may do so."""
  consent = consent_repo.get(consent_id)
  if not consent:
    raise NotFoundError("Consent not found")
  if consent.get("patient_id") != patient_id:
    raise AccessDeniedError("Not authorized to revoke this consent")
  logger.info("consent_revoked", consent_id=consent_id, patient_id=patient_id)
  return consent_repo.revoke(consent_id) or {**consent, "status": "revoked"}
