"""
Calendar day keys.

A day key identifies a calendar day in the user's local time, not an
instant. Keys are ISO ``YYYY-MM-DD`` strings so they sort naturally and
never depend on the process locale.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

from .exceptions import ValidationError

_ISO_DAY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

# Browser Date.toDateString() output, e.g. "Mon Jan 01 2024"
_LEGACY_DAY = re.compile(r"^[A-Za-z]{3} ([A-Za-z]{3}) (\d{1,2}) (\d{4})$")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def day_key(value: date | datetime | str) -> str:
    """Normalize a date-like value to its local calendar day key.

    Args:
        value: A date, a datetime (aware values are converted to local
            time, naive values are taken as local), or a string in ISO
            date/datetime form or the legacy ``"Mon Jan 01 2024"`` form.

    Returns:
        The ``YYYY-MM-DD`` key for that day.

    Raises:
        ValidationError: If the value cannot be interpreted as a day.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return _parse_day_string(value.strip())
    raise ValidationError("day", f"unsupported type {type(value).__name__}")


def parse_day_key(key: str) -> date:
    """Convert a day key back into a date."""
    match = _ISO_DAY.match(key)
    if not match:
        raise ValidationError("day", "not a day key", key)
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as e:
        raise ValidationError("day", str(e), key) from e


def today_key(now: datetime | None = None) -> str:
    """Get the key for the current local day."""
    return day_key(now if now is not None else datetime.now())


def previous_day_key(key: str) -> str:
    """Get the key of the calendar day before ``key``."""
    return (parse_day_key(key) - timedelta(days=1)).isoformat()


def _parse_day_string(text: str) -> str:
    if _ISO_DAY.match(text):
        return parse_day_key(text).isoformat()

    legacy = _LEGACY_DAY.match(text)
    if legacy:
        month_name, day_str, year_str = legacy.groups()
        if month_name not in _MONTHS:
            raise ValidationError("day", "unknown month", text)
        try:
            return date(int(year_str), _MONTHS.index(month_name) + 1, int(day_str)).isoformat()
        except ValueError as e:
            raise ValidationError("day", str(e), text) from e

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationError("day", "unrecognized day format", text) from e
    return day_key(parsed)
