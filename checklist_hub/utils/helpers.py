"""Shared parsing helpers for blueprints and services.

parse_date_input:    raises ValueError on bad input (callers answer 400)
parse_time_of_day:   "HH:MM" → datetime.time, raises ValueError
parse_datetime_input: ISO timestamp → aware datetime, raises ValueError
round_half_up / percent: integer percentages, halves rounded up
"""
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS (→ date part), DD.MM.YYYY,
    date objects.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    value = str(value).strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def parse_time_of_day(value):
    """Parse "HH:MM" (or "HH:MM:SS") into a ``time``. Empty input gives None."""
    if value in (None, ""):
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValueError("Invalid time format. Use HH:MM.") from exc


def parse_datetime_input(value):
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValueError("Invalid timestamp. Use ISO-8601.") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def as_utc(dt):
    """Normalize a datetime to aware UTC.

    SQLite returns naive datetimes even for ``DateTime(timezone=True)``
    columns; those are UTC by construction.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero (66.5 → 67)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part, whole) -> int:
    """Integer percentage 0-100, 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return round_half_up(Decimal(str(part)) * 100 / Decimal(str(whole)))
