"""
Instants -- ISO-8601 parsing/formatting and time-zone resolution.

Responsibility:
    The single place where textual instants and IANA zone names become
    timezone-aware ``datetime`` values, and where UTC instants are rendered
    back to the persisted ISO-8601 shape (``2025-05-28T11:30:00.000Z``).

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Failure modes:
    - InvalidInstantError for unparseable timestamps or unknown zones.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskflow_kernel.exceptions import InvalidInstantError


def resolve_zone(time_zone: str | None) -> ZoneInfo | timezone:
    """Return the tzinfo for an IANA name; ``None``/``"UTC"`` map to UTC."""
    if not time_zone or time_zone.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInstantError(time_zone, "unknown time zone") from exc


def parse_instant(value: str | datetime, time_zone: str | None = None) -> datetime:
    """
    Interpret ``value`` as an instant expressed in ``time_zone``.

    Strings without an offset (and naive datetimes) are wall-clock times in
    ``time_zone``; values carrying an offset are converted into it.

    Raises:
        InvalidInstantError: empty, unparseable or wrongly typed input.
    """
    zone = resolve_zone(time_zone)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidInstantError(value, "not an ISO-8601 timestamp") from exc
    else:
        raise InvalidInstantError(str(value), "a timestamp is required")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=zone)
    return parsed.astimezone(zone)


def to_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = to_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_calendar_date(value: str | date | datetime) -> date:
    """Reduce a holiday/leave entry (date, datetime or ISO string) to its date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        if len(text) > 10:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidInstantError(value, "not an ISO-8601 date") from exc
