"""Shared model helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

# Wire payloads use camelCase keys (``createdAt``); Python code uses snake_case.
CAMEL_CASE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


def utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime | None = None) -> str:
    """Render ``moment`` (default: now) as an ISO-8601 UTC timestamp with millisecond precision."""
    moment = moment or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or date-time string; ``None`` if it is not one."""

    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        try:
            parsed_date = date.fromisoformat(candidate)
        except ValueError:
            return None
        parsed = datetime(parsed_date.year, parsed_date.month, parsed_date.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["CAMEL_CASE_CONFIG", "isoformat_utc", "parse_iso_datetime", "utcnow"]
