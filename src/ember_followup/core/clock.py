# src/ember_followup/core/clock.py

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime) -> str:
    """
    Render an aware datetime as an ISO-8601 UTC string with millisecond precision
    ("2026-10-19T08:00:00.000Z"), the format stored in the document.
    """
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(raw: str) -> datetime:
    """
    Parse an ISO-8601 timestamp or date into an aware datetime.

    Naive values (including plain dates like "2026-10-20") are read as local time.
    Raises ValueError on anything unparsable.
    """
    if not raw or not isinstance(raw, str):
        raise ValueError(f"not a timestamp: {raw!r}")
    dt = datetime.fromisoformat(raw.strip())
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


def try_parse_iso(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return parse_iso(raw)
    except ValueError:
        return None


def js_day_of_week(dt: datetime) -> int:
    """Day of week with Sunday=0 .. Saturday=6 (the digest preference convention)."""
    return (dt.weekday() + 1) % 7
