"""Date-time helpers.

Timestamps are stored as naive UTC values; QR payloads carry them as ISO-8601
strings with millisecond precision and a ``Z`` suffix.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime | None) -> datetime:
    """Normalise an aware or naive timestamp to naive UTC, defaulting to now."""

    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_wire(value: datetime) -> str:
    """Render a timestamp for a signed payload."""

    return as_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


def from_wire(raw: str) -> datetime:
    """Parse a payload timestamp back to naive UTC; raises ``ValueError`` on junk."""

    if not isinstance(raw, str):
        raise ValueError("timestamp must be a string")
    text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    return as_naive_utc(datetime.fromisoformat(text))
