"""
Date/time helpers and expiry-string parsing.

MongoDB hands back naive datetimes unless the client is tz-aware; every
comparison in the auth core goes through ``ensure_utc`` so both shapes work.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# Fixed unit table for "15m" / "7d" style expiry strings.
TIME_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
DEFAULT_EXPIRY_SECONDS = 900

_EXPIRY_RE = re.compile(r"^(\d+)([smhd])$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime. Naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_expiry(expiry: str) -> int:
    """Convert an expiry string such as ``"15m"`` or ``"7d"`` to seconds.

    Strings that do not match ``<digits><s|m|h|d>`` fall back to 900 seconds.
    """
    match = _EXPIRY_RE.match(expiry.strip()) if expiry else None
    if not match:
        return DEFAULT_EXPIRY_SECONDS
    amount, unit = match.groups()
    return int(amount) * TIME_UNITS[unit]
