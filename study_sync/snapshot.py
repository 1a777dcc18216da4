"""
Snapshot data model.

A Snapshot is the full state of a user's study data at a point in time,
made of independently replaceable slices:

- tasks: ordered task list (order is the display order)
- scheduled_events: day key -> events in insertion order
- study_durations: day key -> accumulated study seconds
- login_streak: consecutive visit days
- last_visit_day: day key of the last streak update

Every slice has an explicit empty default, so merge logic never has to
deal with missing values. Snapshots are immutable; a mutation produces
a new Snapshot through ``with_slices``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from .day_key import day_key
from .exceptions import ValidationError

SLICE_NAMES = (
    "tasks",
    "scheduled_events",
    "study_durations",
    "login_streak",
    "last_visit_day",
)

# Field names used in the account document and the local cache
WIRE_NAMES = {
    "tasks": "todos",
    "scheduled_events": "events",
    "study_durations": "studySessions",
    "login_streak": "loginStreak",
    "last_visit_day": "lastLogin",
}

PartialSnapshot = Mapping[str, Any]


@dataclass(frozen=True)
class Task:
    """A single to-do item.

    The id is unique within the task list; creation-time millisecond
    ordinals are used by ``features.tasks.new_task_id``.
    """

    id: int
    text: str
    completed: bool = False
    priority: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data: dict[str, Any] = {"id": self.id, "text": self.text, "completed": self.completed}
        if self.priority is not None:
            data["priority"] = self.priority
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Task:
        """Deserialize from dictionary."""
        if "id" not in data:
            raise ValidationError("tasks", "task is missing an id")
        priority = data.get("priority")
        return cls(
            id=_to_int("tasks", data["id"]),
            text=str(data.get("text", "")),
            completed=bool(data.get("completed", False)),
            priority=_to_int("tasks", priority) if priority is not None else None,
        )


@dataclass(frozen=True)
class Event:
    """A scheduled event inside one day bucket."""

    id: int
    text: str
    time: str | None = None  # "HH:MM", local time of day

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data: dict[str, Any] = {"id": self.id, "text": self.text}
        if self.time:
            data["time"] = self.time
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Deserialize from dictionary."""
        if "id" not in data:
            raise ValidationError("scheduled_events", "event is missing an id")
        return cls(
            id=_to_int("scheduled_events", data["id"]),
            text=str(data.get("text", "")),
            time=str(data["time"]) if data.get("time") else None,
        )


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class Snapshot:
    """Canonical, immutable view of a user's study data."""

    tasks: tuple[Task, ...] = ()
    scheduled_events: Mapping[str, tuple[Event, ...]] = field(default_factory=_empty_mapping)
    study_durations: Mapping[str, int] = field(default_factory=_empty_mapping)
    login_streak: int = 0
    last_visit_day: str = ""

    @classmethod
    def empty(cls) -> Snapshot:
        """Snapshot for a brand-new identity."""
        return cls()

    @classmethod
    def build(cls, **slices: Any) -> Snapshot:
        """Create a snapshot from loosely typed slice values."""
        return cls().with_slices(slices)

    @property
    def is_empty(self) -> bool:
        """True when no slice holds any data."""
        return self == Snapshot()

    def with_slices(self, partial: PartialSnapshot) -> Snapshot:
        """Return a copy with the named slices replaced.

        Callers pass the complete new value of each slice they touch.
        Slices not named in ``partial`` are carried over unchanged.

        Raises:
            ValidationError: On unknown slice names or invalid values.
        """
        unknown = [name for name in partial if name not in _COERCERS]
        if unknown:
            raise ValidationError("slice", "unknown slice name", ", ".join(sorted(unknown)))
        changes = {name: _COERCERS[name](value) for name, value in partial.items()}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the account document format."""
        return {
            "todos": [task.to_dict() for task in self.tasks],
            "events": {
                key: [event.to_dict() for event in events]
                for key, events in self.scheduled_events.items()
            },
            "studySessions": dict(self.study_durations),
            "loginStreak": self.login_streak,
            "lastLogin": self.last_visit_day,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Snapshot:
        """Deserialize from the account document format.

        Missing or null fields fall back to empty defaults.
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ValidationError("snapshot", "expected a document object", type(data).__name__)
        partial = {
            name: data[wire]
            for name, wire in WIRE_NAMES.items()
            if data.get(wire) is not None
        }
        return cls().with_slices(partial)


def _to_int(field_name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(field_name, "expected an integer", str(value))
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(field_name, "expected an integer", str(value)) from e


def _items(field_name: str, value: Any, item_type: type) -> list[Any]:
    """Check that ``value`` is a sequence of ``item_type`` or mappings."""
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise ValidationError(field_name, "expected a sequence", repr(value))
    items = list(value)
    for item in items:
        if not isinstance(item, (item_type, Mapping)):
            raise ValidationError(field_name, "unexpected item", repr(item))
    return items


def _coerce_tasks(value: Iterable[Task | Mapping[str, Any]]) -> tuple[Task, ...]:
    tasks = tuple(
        item if isinstance(item, Task) else Task.from_dict(item)
        for item in _items("tasks", value, Task)
    )
    seen: set[int] = set()
    for task in tasks:
        if task.id in seen:
            raise ValidationError("tasks", "duplicate task id", str(task.id))
        seen.add(task.id)
    return tasks


def _coerce_events(
    value: Mapping[str, Iterable[Event | Mapping[str, Any]]],
) -> Mapping[str, tuple[Event, ...]]:
    if not isinstance(value, Mapping):
        raise ValidationError("scheduled_events", "expected a mapping of day key to events")
    buckets: dict[str, tuple[Event, ...]] = {}
    for raw_key, items in value.items():
        key = day_key(raw_key)
        events = tuple(
            item if isinstance(item, Event) else Event.from_dict(item)
            for item in _items("scheduled_events", items, Event)
        )
        # Legacy and ISO keys for the same day collapse into one bucket
        buckets[key] = buckets.get(key, ()) + events
    return MappingProxyType(buckets)


def _coerce_durations(value: Mapping[str, int]) -> Mapping[str, int]:
    if not isinstance(value, Mapping):
        raise ValidationError("study_durations", "expected a mapping of day key to seconds")
    totals: dict[str, int] = {}
    for raw_key, raw_seconds in value.items():
        try:
            seconds = int(raw_seconds)
        except (TypeError, ValueError) as e:
            raise ValidationError("study_durations", "expected seconds", str(raw_seconds)) from e
        if seconds < 0:
            raise ValidationError("study_durations", "negative duration", str(seconds))
        key = day_key(raw_key)
        totals[key] = totals.get(key, 0) + seconds
    return MappingProxyType(totals)


def _coerce_streak(value: int) -> int:
    try:
        streak = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("login_streak", "expected an integer", str(value)) from e
    if isinstance(value, bool) or streak < 0:
        raise ValidationError("login_streak", "expected a non-negative integer", str(value))
    return streak


def _coerce_last_visit(value: str | None) -> str:
    if not value:
        return ""
    return day_key(value)


_COERCERS = {
    "tasks": _coerce_tasks,
    "scheduled_events": _coerce_events,
    "study_durations": _coerce_durations,
    "login_streak": _coerce_streak,
    "last_visit_day": _coerce_last_visit,
}
