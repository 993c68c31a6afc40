"""
Timestamp helpers - canonical text format for every date/time the broker emits.

Google returns RFC 3339 timestamps with a variable number of fractional
digits ("2024-05-01T10:20:30.1Z", "2024-05-01T10:20:30.123456+02:00").
The platform expects a single shape, with millisecond precision and an
explicit numeric offset:

    yyyy-MM-dd'T'HH:mm:ss.SSSZ   ->   2024-05-01T10:20:30.123+0000

The same format is used for the stored token expiration time.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S.{millis}%z"

# Full RFC 3339 date-time; dates without a time component are left alone
_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"(Z|z|[+-]\d{2}:?\d{2})$"
)

# Drive date-time fields whose names do not end in Time/Date
TIMESTAMP_FIELDS = frozenset({"time", "expiration"})


def format_timestamp(value: datetime) -> str:
    """
    Render a datetime in the canonical format.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    millis = f"{value.microsecond // 1000:03d}"
    return value.strftime(CANONICAL_FORMAT.format(millis=millis))


def parse_timestamp(text: Optional[str]) -> Optional[datetime]:
    """
    Parse canonical or RFC 3339 text into an aware datetime.

    Returns None for empty or unparseable input.
    """
    if not text:
        return None

    match = _RFC3339.match(text.strip())
    if not match:
        return None

    year, month, day, hour, minute, second, fraction, offset = match.groups()

    # Fractions are truncated to microseconds; "1" means 100 ms, not 1 ms
    micros = int((fraction or "0")[:6].ljust(6, "0"))

    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        digits = offset[1:].replace(":", "")
        minutes = int(digits[:2]) * 60 + int(digits[2:])
        tz = timezone(sign * timedelta(minutes=minutes))

    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            micros, tzinfo=tz,
        )
    except ValueError:
        return None


def normalize_timestamp(text: str) -> str:
    """Rewrite one RFC 3339 string canonically; other strings pass through."""
    parsed = parse_timestamp(text)
    if parsed is None:
        return text
    return format_timestamp(parsed)


def is_timestamp_field(key: Optional[str]) -> bool:
    """True for Drive fields that carry a date-time (createdTime, modifiedTime...)."""
    if not key:
        return False
    return key in TIMESTAMP_FIELDS or key.endswith(("Time", "Date"))


def normalize_timestamps(value: Any, key: Optional[str] = None) -> Any:
    """
    Walk a decoded JSON value and normalize the date-time fields in it.

    Only strings held under a date-time key are rewritten; names,
    descriptions and custom properties come back exactly as sent.
    Lists inherit the key of the field that holds them.
    """
    if isinstance(value, dict):
        return {name: normalize_timestamps(item, name) for name, item in value.items()}
    if isinstance(value, list):
        return [normalize_timestamps(item, key) for item in value]
    if isinstance(value, str) and is_timestamp_field(key):
        return normalize_timestamp(value)
    return value
