"""
Domain errors raised by the portal service tier.

Endpoints translate these into HTTP responses; each class carries the
status code it maps to.
"""


class PortalError(Exception):
  """Base class for portal errors."""

  status_code: int = 400

  def __init__(self, message: str):
    super().__init__(message)
    self.message = message


class NotFoundError(PortalError):
  """A requested record does not exist (or is not visible to the caller)."""

  status_code = 404


class AccessDeniedError(PortalError):
  """The caller may not act on the requested record."""

  status_code = 403


class ParsingBackendError(PortalError):
  """The external report-parsing backend failed or is unreachable."""

  status_code = 502
