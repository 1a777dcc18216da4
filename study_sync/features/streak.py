"""Login streak bookkeeping."""

from __future__ import annotations

from datetime import date, datetime

from ..day_key import day_key, previous_day_key, today_key


def record_visit(
    streak: int,
    last_visit_day: str,
    today: date | datetime | str | None = None,
) -> tuple[int, str]:
    """Update the streak for a visit on ``today``.

    A second visit on the same day changes nothing, a visit on the day
    after the last one extends the streak, anything else restarts it.

    Returns:
        (login_streak, last_visit_day) for
        ``engine.mutate({"login_streak": ..., "last_visit_day": ...})``
    """
    key = day_key(today) if today is not None else today_key()
    if last_visit_day == key:
        return streak, key
    if last_visit_day and previous_day_key(key) == last_visit_day:
        return streak + 1, key
    return 1, key
