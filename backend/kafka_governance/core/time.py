from __future__ import annotations

import re
from datetime import datetime, timezone


# Java-style pattern of the wire format: yyyy-MM-dd'T'HH:mm:ss.SSSZ
OFFSET_RESET_TIMESTAMP_FORMAT = "yyyy-MM-dd'T'HH:mm:ss.SSSZ"
_OFFSET_RESET_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}(Z|[+-]\d{2}:?\d{2})$"
)
_OFFSET_RESET_STRPTIME = "%Y-%m-%dT%H:%M:%S.%f%z"


def utcnow() -> datetime:
    """Get the current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to an aware UTC value.
    Naive values are treated as UTC (SQLite drops tzinfo on read).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_offset_reset_timestamp(value: str) -> datetime:
    """
    Parse a reset timestamp such as 2024-01-01T00:00:00.000+0000.
    Returns an aware UTC datetime; raises ValueError when the string does not match.
    """
    candidate = (value or "").strip()
    if not _OFFSET_RESET_TIMESTAMP_RE.match(candidate):
        raise ValueError(f"Timestamp must match {OFFSET_RESET_TIMESTAMP_FORMAT}: {value!r}")
    parsed = datetime.strptime(candidate, _OFFSET_RESET_STRPTIME)
    return parsed.astimezone(timezone.utc)


def format_offset_reset_timestamp(value: datetime) -> str:
    utc_value = as_utc(value)
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_value.microsecond // 1000:03d}+0000"
