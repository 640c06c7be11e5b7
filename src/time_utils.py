"""Utilities for working with timestamps in UTC."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

# Fractional seconds directly before the offset or the end of the string
_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d{2}:?\d{2}$|$)")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime string into a UTC ``datetime``.

    Returns ``None`` for anything that is not a parseable string, including
    the ``"Invalid Date"`` and ``"NaN"`` placeholders some extractors emit.
    """

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    text = value.strip()
    lowered = text.lower()
    if not text or "invalid" in lowered or "nan" in lowered:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # PostgREST trims trailing zeros; 3.10 fromisoformat takes only 3 or 6 digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat(dt: datetime) -> str:
    """Return ``dt`` as an ISO-8601 string in UTC."""

    return ensure_utc(dt).isoformat()


__all__ = ["utc_now", "ensure_utc", "parse_timestamp", "isoformat"]
