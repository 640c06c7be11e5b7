"""
Logging setup for Niraiva.

Configures structlog on top of the standard library logger so every module
can use ``structlog.get_logger(__name__)``. The server emits JSON lines; the
CLI asks for the console renderer.
"""

import logging
import os

import structlog

_configured = False


def configure_logging(level: str | None = None, renderer: str | None = None) -> None:
  """
  Configure structlog once per process.

  Args:
    level: Log level name. Defaults to LOG_LEVEL or INFO.
    renderer: "json" or "console". Defaults to LOG_FORMAT or json.
  """
  global _configured
  if _configured:
    return

  level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
  renderer_name = (renderer or os.getenv("LOG_FORMAT", "json")).lower()
  logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format="%(message)s")

  final_processor = (
    structlog.dev.ConsoleRenderer()
    if renderer_name == "console"
    else structlog.processors.JSONRenderer()
  )

  structlog.configure(
    processors=[
      structlog.contextvars.merge_contextvars,
      structlog.processors.TimeStamper(fmt="iso", utc=True),
      structlog.stdlib.add_log_level,
      structlog.stdlib.add_logger_name,
      structlog.stdlib.PositionalArgumentsFormatter(),
      structlog.processors.StackInfoRenderer(),
      structlog.processors.format_exc_info,
      final_processor,
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
  )
  _configured = True
