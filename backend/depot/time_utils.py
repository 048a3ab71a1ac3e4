# Overview: UTC clock and ISO-8601 helpers shared by models, services and routes.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime; the database stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2024-05-01T08:00", "...Z" or "...+01:00" -> naive UTC datetime.

    A value without an offset is taken as UTC. Blank -> None; anything
    unparseable raises ValueError.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso_date(value) -> Optional[date]:
    """Calendar day from a date, a datetime or a "YYYY-MM-DD..." string."""
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    text = str(value).strip()
    return date.fromisoformat(text[:10]) if text else None


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    # naive values are UTC already
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
