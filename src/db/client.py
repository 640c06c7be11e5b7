"""
Supabase client wrapper for Niraiva.

Provides singleton access to the Supabase client (auth, tables, storage)
with configuration read from the environment.
"""

import os
from typing import Optional

import structlog
from supabase import create_client, Client
from supabase.client import ClientOptions

logger = structlog.get_logger(__name__)


class SupabaseConfig:
  """Configuration for Supabase connection."""

  def __init__(self):
    self.url = os.environ.get("SUPABASE_URL")
    self.anon_key = os.environ.get("SUPABASE_ANON_KEY")
    self.service_key = os.environ.get("SUPABASE_SERVICE_KEY")
    self.jwt_secret = os.environ.get("SUPABASE_JWT_SECRET")
    self.frontend_url = os.environ.get("FRONTEND_URL", "http://localhost:5173")

  @property
  def is_configured(self) -> bool:
    """Check if Supabase is properly configured."""
    return bool(self.url and self.anon_key)

  def validate(self) -> None:
    """Raise error if not properly configured."""
    if not self.url:
      raise ValueError("SUPABASE_URL environment variable not set")
    if not self.anon_key:
      raise ValueError("SUPABASE_ANON_KEY environment variable not set")


class SupabaseClient:
  """
  Wrapper around Supabase client with convenience methods.

  Provides both authenticated (user context) and admin (service role) access.
  """

  def __init__(self, client: Client):
    self._client = client

  def table(self, name: str):
    """Get a table reference for queries."""
    return self._client.table(name)

  def storage(self, bucket: str):
    """Get a storage bucket reference."""
    return self._client.storage.from_(bucket)

  # -------------------------------------------------------------------------
  # Auth convenience methods
  # -------------------------------------------------------------------------

  def sign_up(self, email: str, password: str, metadata: Optional[dict] = None):
    """Sign up a new user, storing metadata (names, dob) on the auth user."""
    credentials = {"email": email, "password": password}
    if metadata:
      credentials["options"] = {"data": metadata}
    return self._client.auth.sign_up(credentials)

  def sign_in(self, email: str, password: str):
    """Sign in an existing user."""
    response = self._client.auth.sign_in_with_password({
      "email": email,
      "password": password,
    })
    return response

  def sign_in_with_oauth(self, provider: str, redirect_to: str) -> tuple[str, Optional[str]]:
    """
    Start an OAuth sign-in.

    Returns the provider URL to send the browser to, and the PKCE code
    verifier the callback has to present with the authorization code.
    """
    response = self._client.auth.sign_in_with_oauth({
      "provider": provider,
      "options": {"redirect_to": redirect_to},
    })
    return response.url, self._code_verifier()

  def _code_verifier(self) -> Optional[str]:
    # Sign-in storage of this client; memory-backed for per-request clients
    storage = getattr(getattr(self._client, "options", None), "storage", None)
    items = getattr(storage, "storage", None) or {}
    return next((v for k, v in items.items() if k.endswith("-code-verifier")), None)

  def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None):
    """Complete an OAuth sign-in with the code from the callback."""
    params = {"auth_code": code}
    if code_verifier:
      params["code_verifier"] = code_verifier
    return self._client.auth.exchange_code_for_session(params)

  def refresh_session(self, refresh_token: str):
    """Get a fresh session from a refresh token."""
    return self._client.auth.refresh_session(refresh_token)

  def sign_out(self, access_token: str) -> None:
    """Revoke every session of the user the access token belongs to."""
    self._client.auth.admin.sign_out(access_token)

  def get_user(self, token: Optional[str] = None):
    """Get the user for an access token, or the current session's user."""
    return self._client.auth.get_user(token)


# -----------------------------------------------------------------------------
# Singleton instances
# -----------------------------------------------------------------------------

_client: Optional[SupabaseClient] = None
_admin_client: Optional[SupabaseClient] = None
_config: Optional[SupabaseConfig] = None


def get_config() -> SupabaseConfig:
  """Get the Supabase configuration (singleton)."""
  global _config
  if _config is None:
    _config = SupabaseConfig()
  return _config


def get_client() -> SupabaseClient:
  """
  Get the Supabase client (singleton).

  Uses the anon key, which respects Row Level Security.
  Use this for user-facing operations.
  """
  global _client
  if _client is None:
    config = get_config()
    config.validate()
    raw_client = create_client(config.url, config.anon_key)
    _client = SupabaseClient(raw_client)
    logger.info("supabase_client_created", url=config.url, admin=False)
  return _client


def get_admin_client() -> SupabaseClient:
  """
  Get the admin Supabase client (singleton).

  Uses the service_role key, which bypasses Row Level Security.
  Use this for admin operations and background jobs.
  """
  global _admin_client
  if _admin_client is None:
    config = get_config()
    config.validate()
    if not config.service_key:
      raise ValueError("SUPABASE_SERVICE_KEY environment variable not set")
    raw_client = create_client(config.url, config.service_key)
    _admin_client = SupabaseClient(raw_client)
    logger.info("supabase_client_created", url=config.url, admin=True)
  return _admin_client


def create_auth_client() -> SupabaseClient:
  """
  Create a new, unshared anon client for one sign-in exchange.

  Sign-in stores the session on the client it ran on, so password, OAuth
  and refresh exchanges must never run on the shared singleton that the
  repositories query through.
  """
  config = get_config()
  config.validate()
  options = ClientOptions(persist_session=False, auto_refresh_token=False, flow_type="pkce")
  return SupabaseClient(create_client(config.url, config.anon_key, options=options))


def is_configured() -> bool:
  """Check if Supabase is configured without raising errors."""
  return get_config().is_configured


def reset_clients() -> None:
  """Reset client singletons (useful for testing)."""
  global _client, _admin_client, _config
  _client = None
  _admin_client = None
  _config = None
