"""
Role resolution for signed-in users.

A session user from Supabase Auth carries only an id and email. The portal
role and the linked patient record live in the ``user_roles`` table and are
looked up after sign-in. The lookup is bounded by a timeout; on timeout or
any error the user is treated as a patient without a linked record, so a
slow database never grants more than least privilege.
"""

import asyncio
import itertools
import os
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

import structlog

from src.models.user import UserRole

logger = structlog.get_logger(__name__)

DEFAULT_ROLE_LOOKUP_TIMEOUT = 5.0


def role_lookup_timeout() -> float:
  """Timeout in seconds, from ROLE_LOOKUP_TIMEOUT when set."""
  try:
    return float(os.environ.get("ROLE_LOOKUP_TIMEOUT", DEFAULT_ROLE_LOOKUP_TIMEOUT))
  except ValueError:
    return DEFAULT_ROLE_LOOKUP_TIMEOUT


@dataclass(frozen=True)
class RoleInfo:
  """Role and linked patient record for one user."""
  role: UserRole = UserRole.PATIENT
  patient_id: Optional[str] = None

  @classmethod
  def from_row(cls, row: Optional[dict]) -> "RoleInfo":
    if not row:
      return cls()
    return cls(role=UserRole.parse(row.get("role")), patient_id=row.get("patient_id") or None)


FALLBACK_ROLE = RoleInfo()


class RoleResolver:
  """
  Look up ``{role, patient_id}`` for a user id.

  ``fetch`` is any blocking callable returning the ``user_roles`` row (or
  None). It runs in a worker thread so the timeout can be enforced.
  """

  def __init__(self, fetch: Callable[[str], Optional[dict]], timeout: Optional[float] = None):
    self._fetch = fetch
    self.timeout = role_lookup_timeout() if timeout is None else timeout

  async def resolve(self, user_id: str) -> RoleInfo:
    """Resolve the role, never raising."""
    try:
      row = await asyncio.wait_for(asyncio.to_thread(self._fetch, user_id), timeout=self.timeout)
    except asyncio.TimeoutError:
      logger.warning("role_lookup_timeout", user_id=user_id, timeout=self.timeout)
      return FALLBACK_ROLE
    except Exception as e:
      logger.warning("role_lookup_failed", user_id=user_id, error=str(e))
      return FALLBACK_ROLE

    info = RoleInfo.from_row(row)
    logger.debug("role_resolved", user_id=user_id, role=info.role.value)
    return info


# -----------------------------------------------------------------------------
# Session state
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionState:
  """
  What the guards see about the current session.

  ``role`` is None while the role lookup is still in flight.
  """
  user_id: Optional[str] = None
  email: Optional[str] = None
  role: Optional[UserRole] = None
  patient_id: Optional[str] = None
  resolving: bool = False

  @property
  def authenticated(self) -> bool:
    return self.user_id is not None


class SessionStore:
  """
  Versioned holder for the current session state.

  Every role enrichment takes a sequence number from ``begin``. A result
  applied with a sequence older than the last one applied is stale (a
  later sign-in or sign-out already superseded it) and is discarded.
  """

  def __init__(self):
    self._state = SessionState()
    self._counter = itertools.count(1)
    self._latest = 0
    self._lock = threading.Lock()

  @property
  def state(self) -> SessionState:
    return self._state

  @property
  def version(self) -> int:
    return self._latest

  def begin(self, user_id: str, email: Optional[str] = None) -> int:
    """Start enrichment for a newly signed-in user; returns its sequence number."""
    with self._lock:
      seq = next(self._counter)
      self._latest = seq
      self._state = SessionState(user_id=user_id, email=email, resolving=True)
      return seq

  def apply(self, seq: int, info: RoleInfo) -> bool:
    """Apply a resolved role. Returns False when the result was stale."""
    with self._lock:
      if seq < self._latest or not self._state.resolving:
        logger.info("stale_role_discarded", seq=seq, latest=self._latest)
        return False
      self._state = replace(
        self._state, role=info.role, patient_id=info.patient_id, resolving=False
      )
      return True

  def clear(self) -> None:
    """Sign out. Any enrichment still in flight becomes stale."""
    with self._lock:
      self._latest = next(self._counter)
      self._state = SessionState()

  async def enrich(self, resolver: RoleResolver, user_id: str, email: Optional[str] = None) -> SessionState:
    """Begin, resolve and apply in one step."""
    seq = self.begin(user_id, email)
    info = await resolver.resolve(user_id)
    self.apply(seq, info)
    return self.state
