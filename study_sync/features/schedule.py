"""
Scheduled event operations.

Events are bucketed by day key. Functions return the complete new
events mapping for ``engine.mutate({"scheduled_events": ...})``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time

from ..day_key import day_key, parse_day_key, today_key
from ..exceptions import ValidationError
from ..snapshot import Event

EventMap = Mapping[str, Sequence[Event]]

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _parse_time(value: str) -> time:
    match = _TIME_OF_DAY.match(value)
    if not match:
        raise ValidationError("time", "expected HH:MM", value)
    return time(int(match.group(1)), int(match.group(2)))


def add_event(
    events: EventMap,
    day: date | datetime | str,
    text: str,
    time_of_day: str | None = None,
    now: datetime | None = None,
) -> dict[str, tuple[Event, ...]]:
    """Append an event to the bucket of ``day``.

    The day is normalized to its local day key, so a datetime and a
    plain date for the same day land in the same bucket.

    Raises:
        ValidationError: On blank text or a malformed time of day
    """
    text = text.strip()
    if not text:
        raise ValidationError("text", "event text must not be blank")
    if time_of_day:
        _parse_time(time_of_day)

    key = day_key(day)
    bucket = tuple(events.get(key, ()))
    now = now or datetime.now()
    event_id = int(now.timestamp() * 1000)
    taken = {event.id for event in bucket}
    while event_id in taken:
        event_id += 1

    updated = {k: tuple(v) for k, v in events.items()}
    updated[key] = (*bucket, Event(id=event_id, text=text, time=time_of_day or None))
    return updated


def remove_event(
    events: EventMap, day: date | datetime | str, event_id: int
) -> dict[str, tuple[Event, ...]]:
    """Remove one event; a bucket left empty is dropped."""
    key = day_key(day)
    updated = {k: tuple(v) for k, v in events.items()}
    if key not in updated:
        return updated
    remaining = tuple(e for e in updated[key] if e.id != event_id)
    if remaining:
        updated[key] = remaining
    else:
        del updated[key]
    return updated


def events_for_day(events: EventMap, day: date | datetime | str) -> list[Event]:
    """Events of one day in display order.

    Sorted by time of day; untimed events sort first. Ties keep
    insertion order.
    """
    return sorted(events.get(day_key(day), ()), key=lambda e: e.time or "")


def time_until_event(
    day: date | datetime | str,
    time_of_day: str | None = None,
    now: datetime | None = None,
) -> str | None:
    """Countdown label for an event.

    Returns "2d 3h", "4h 5m" or "6m" for future events, "TODAY" for
    an event earlier today, and None for past days.
    """
    now = now or datetime.now()
    key = day_key(day)
    start = datetime.combine(parse_day_key(key), _parse_time(time_of_day) if time_of_day else time())
    local_now = now.astimezone().replace(tzinfo=None) if now.tzinfo else now
    remaining = (start - local_now).total_seconds()

    if remaining <= 0:
        return "TODAY" if key == today_key(now) else None

    days, rest = divmod(int(remaining), 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
