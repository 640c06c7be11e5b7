"""
Authentication module for Niraiva.

Provides JWT verification, role resolution, route guards and consent
checks for FastAPI.
"""

from src.auth.middleware import (
  get_current_user,
  get_current_user_optional,
  get_doctor_user,
  get_linked_patient_user,
  get_role_resolver,
  AuthenticatedUser,
)
from src.auth.roles import RoleInfo, RoleResolver, SessionState, SessionStore
from src.auth.guards import (
  GuardDecision,
  check_authenticated,
  check_doctor,
  check_linked_record,
  post_login_redirect,
)
from src.auth.consent import has_consent, can_access_patient, enforce_patient_access, revoke_consent

__all__ = [
  "get_current_user",
  "get_current_user_optional",
  "get_doctor_user",
  "get_linked_patient_user",
  "get_role_resolver",
  "AuthenticatedUser",
  "RoleInfo",
  "RoleResolver",
  "SessionState",
  "SessionStore",
  "GuardDecision",
  "check_authenticated",
  "check_doctor",
  "check_linked_record",
  "post_login_redirect",
  "has_consent",
  "can_access_patient",
  "enforce_patient_access",
  "revoke_consent",
]
