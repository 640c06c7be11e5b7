"""
Route guard decisions.

Guards are pure functions of the session state: they never touch the
network. The FastAPI dependencies in ``src.auth.middleware`` map the same
decisions onto 401/403 responses.
"""

from enum import Enum

from src.auth.roles import SessionState
from src.models.user import UserRole


class GuardDecision(str, Enum):
  ALLOW = "allow"
  REDIRECT_LOGIN = "redirect:/login"
  REDIRECT_DOCTOR_LOGIN = "redirect:/doctor/login"
  LOADING = "loading"
  ACCESS_ERROR = "access_error"


def check_authenticated(state: SessionState) -> GuardDecision:
  """Any signed-in user may pass."""
  if not state.authenticated:
    return GuardDecision.REDIRECT_LOGIN
  return GuardDecision.ALLOW


def check_doctor(state: SessionState) -> GuardDecision:
  """
  Doctor-only routes.

  While the role lookup is still running the route shows a loading state
  rather than bouncing a doctor to the login page.
  """
  if state.authenticated and state.resolving:
    return GuardDecision.LOADING
  if not state.authenticated or state.role != UserRole.DOCTOR:
    return GuardDecision.REDIRECT_DOCTOR_LOGIN
  return GuardDecision.ALLOW


def check_linked_record(state: SessionState) -> GuardDecision:
  """
  After sign-in, a patient must be linked to a patient record.

  Clinicians are not linked to a record of their own and pass through.
  """
  if not state.authenticated:
    return GuardDecision.REDIRECT_LOGIN
  if state.resolving:
    return GuardDecision.LOADING
  if state.role in (None, UserRole.PATIENT) and not state.patient_id:
    return GuardDecision.ACCESS_ERROR
  return GuardDecision.ALLOW


def post_login_redirect(role: UserRole) -> str:
  """Where a user lands after signing in."""
  if role == UserRole.DOCTOR:
    return "/doctor/dashboard"
  return "/dashboard"
