# Overview: UTC-naive storage times and the fixed-offset local clock used for order dates.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a UTC-naive datetime; every stored timestamp uses this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read an ISO-8601 string from a request into the storage form (UTC, naive).

    Blank input gives None. Strings without an offset are taken as UTC;
    "Z" and "+09:00" style offsets are converted. Raises ValueError on junk.
    """
    if value is None or not value.strip():
        return None

    raw = value.strip()
    if raw[-1] in ("Z", "z"):
        raw = f"{raw[:-1]}+00:00"

    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp for JSON: second precision, trailing 'Z'."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def to_local(dt: datetime, offset_hours: int) -> datetime:
    """Shift a UTC-naive datetime into a fixed-offset local wall clock (still naive)."""
    return dt + timedelta(hours=offset_hours)


def local_date_key(dt: datetime, offset_hours: int) -> str:
    """YYMMDD of the local calendar day, e.g. 240105; order numbers reset on it."""
    return f"{to_local(dt, offset_hours):%y%m%d}"
