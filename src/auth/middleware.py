"""
Auth middleware for FastAPI.

Provides dependency injection for authenticated routes. Tokens are
Supabase access tokens; the portal role comes from the ``user_roles``
table via the RoleResolver, with patient as the fallback.
"""

from typing import Optional
from dataclasses import dataclass

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from src.auth.guards import GuardDecision, check_doctor, check_linked_record
from src.auth.roles import RoleResolver, SessionState
from src.db.client import get_client, get_config, is_configured
from src.db.repositories import RoleRepository
from src.models.user import UserRole

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
  """Represents an authenticated user with their resolved role."""
  id: str
  email: str
  role: str = UserRole.PATIENT.value
  patient_id: Optional[str] = None
  token: Optional[str] = None

  @property
  def record_id(self) -> str:
    """Id of the patient record this user's own data is filed under."""
    return self.patient_id or self.id

  def session_state(self) -> SessionState:
    return SessionState(
      user_id=self.id,
      email=self.email,
      role=UserRole.parse(self.role),
      patient_id=self.patient_id,
    )


def _unauthorized(detail: str) -> HTTPException:
  return HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail=detail,
    headers={"WWW-Authenticate": "Bearer"},
  )


def decode_token(token: str) -> dict:
  """
  Decode and verify a Supabase JWT token.

  With SUPABASE_JWT_SECRET set the signature is checked locally.
  Otherwise the token is verified by calling Supabase's auth.get_user().
  """
  secret = get_config().jwt_secret
  if secret:
    try:
      claims = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=AUDIENCE)
    except JWTError as e:
      raise _unauthorized(f"Token validation failed: {str(e)}")
    if not claims.get("sub"):
      raise _unauthorized("Invalid or expired token")
    return {"sub": claims["sub"], "email": claims.get("email", "")}

  if not is_configured():
    raise HTTPException(
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      detail="Database not configured"
    )

  try:
    user_response = get_client().get_user(token)
  except Exception as e:
    raise _unauthorized(f"Token validation failed: {str(e)}")

  if not user_response or not user_response.user:
    raise _unauthorized("Invalid or expired token")

  return {
    "sub": user_response.user.id,
    "email": user_response.user.email or "",
  }


def _role_repository() -> RoleRepository:
  # Role rows are read with the service key when one is configured.
  return RoleRepository(use_admin=bool(get_config().service_key))


def get_role_resolver() -> RoleResolver:
  """Dependency providing the role resolver."""
  return RoleResolver(lambda user_id: _role_repository().get(user_id))


async def _authenticate(token: str, resolver: RoleResolver) -> AuthenticatedUser:
  # Verification may call Supabase; keep it off the event loop
  token_data = await run_in_threadpool(decode_token, token)
  info = await resolver.resolve(token_data["sub"])
  return AuthenticatedUser(
    id=token_data["sub"],
    email=token_data["email"],
    role=info.role.value,
    patient_id=info.patient_id,
    token=token,
  )


async def get_current_user(
  credentials: HTTPAuthorizationCredentials = Depends(security),
  resolver: RoleResolver = Depends(get_role_resolver),
) -> AuthenticatedUser:
  """
  Dependency to get the current authenticated user.

  Use this for routes that REQUIRE authentication.
  Raises 401 if not authenticated.
  """
  if not credentials:
    raise _unauthorized("Authentication required")

  return await _authenticate(credentials.credentials, resolver)


async def get_current_user_optional(
  credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
  resolver: RoleResolver = Depends(get_role_resolver),
) -> Optional[AuthenticatedUser]:
  """
  Dependency to get the current user if authenticated.

  Use this for routes that work with OR without authentication.
  Returns None if not authenticated.
  """
  if not credentials:
    return None

  try:
    return await _authenticate(credentials.credentials, resolver)
  except HTTPException as e:
    logger.info("optional_auth_rejected", status=e.status_code, detail=e.detail)
    return None


async def get_doctor_user(
  user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
  """
  Dependency to require the doctor role.

  Raises 403 if user is not a doctor.
  """
  if check_doctor(user.session_state()) != GuardDecision.ALLOW:
    raise HTTPException(
      status_code=status.HTTP_403_FORBIDDEN,
      detail="Doctor access required"
    )
  return user


async def get_linked_patient_user(
  user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
  """
  Dependency for routes that read the caller's patient record.

  Raises 403 for a patient whose account has no linked record.
  """
  if check_linked_record(user.session_state()) != GuardDecision.ALLOW:
    raise HTTPException(
      status_code=status.HTTP_403_FORBIDDEN,
      detail="No patient record is linked to this account"
    )
  return user
