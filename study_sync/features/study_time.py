"""
Study time tracking.

Per-day totals only ever grow: a stopped stopwatch adds its elapsed
seconds to the day it was stopped on.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timedelta

from ..day_key import day_key, parse_day_key, today_key
from ..exceptions import ValidationError


def record_study_time(
    durations: Mapping[str, int],
    seconds: int,
    day: date | datetime | str | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Add ``seconds`` to a day's total (today by default).

    Returns the complete new durations mapping for
    ``engine.mutate({"study_durations": ...})``.

    Raises:
        ValidationError: If seconds is negative
    """
    if seconds < 0:
        raise ValidationError("seconds", "must not be negative", str(seconds))
    key = day_key(day) if day is not None else today_key(now)
    updated = dict(durations)
    updated[key] = updated.get(key, 0) + int(seconds)
    return updated


def study_seconds_for_day(durations: Mapping[str, int], day: date | datetime | str) -> int:
    return durations.get(day_key(day), 0)


def last_n_days(
    durations: Mapping[str, int],
    n: int = 7,
    today: date | datetime | str | None = None,
) -> list[tuple[str, int]]:
    """Totals for the last ``n`` days, oldest first, today last."""
    end = parse_day_key(day_key(today) if today is not None else today_key())
    days = [(end - timedelta(days=offset)).isoformat() for offset in range(n - 1, -1, -1)]
    return [(key, durations.get(key, 0)) for key in days]


def format_duration(seconds: int) -> str:
    """Human label such as "1h 2m 3s", "2m 3s" or "3s"."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_stopwatch(seconds: int) -> str:
    """Clock label such as "01:02:03"."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class Stopwatch:
    """Study stopwatch.

    Holds only the start time; the elapsed total is recorded into the
    durations slice when the stopwatch stops.
    """

    def __init__(self) -> None:
        self._started_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def start(self, now: datetime | None = None) -> None:
        if self._started_at is None:
            self._started_at = now or datetime.now()

    def elapsed(self, now: datetime | None = None) -> int:
        """Whole seconds since start, 0 when stopped."""
        if self._started_at is None:
            return 0
        now = now or datetime.now()
        return max(0, int((now - self._started_at).total_seconds()))

    def stop(self, now: datetime | None = None) -> int:
        """Stop and return the elapsed whole seconds."""
        seconds = self.elapsed(now)
        self._started_at = None
        return seconds
