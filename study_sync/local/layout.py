"""
Snapshot layout inside the durable local store.

The whole snapshot is kept as one JSON document under SNAPSHOT_KEY so
every mutation lands atomically. Older installs kept one key per slice;
those are still read when the combined document is absent.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..exceptions import LocalStoreError, StudySyncError
from ..snapshot import Snapshot
from .store import LocalStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "study_snapshot"

# Per-slice keys written by the browser client
LEGACY_KEYS = {
    "todos": "study_todos",
    "events": "study_events",
    "studySessions": "study_sessions",
    "loginStreak": "study_streak",
    "lastLogin": "study_last_login",
}


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Serialize a snapshot for the local store."""
    return json.dumps(snapshot.to_dict(), separators=(",", ":")).encode("utf-8")


def decode_snapshot(data: bytes, key: str = SNAPSHOT_KEY) -> Snapshot:
    """Parse a snapshot document read from the local store."""
    try:
        return Snapshot.from_dict(json.loads(data.decode("utf-8")))
    except (ValueError, TypeError, StudySyncError) as e:
        raise LocalStoreError("decode", key, e) from e


async def load_snapshot(store: LocalStore) -> Snapshot:
    """Load the locally cached snapshot.

    Returns an empty snapshot when nothing has been stored yet.

    Raises:
        LocalStoreError: If stored data cannot be read or parsed
    """
    data = await store.read(SNAPSHOT_KEY)
    if data is not None:
        return decode_snapshot(data)
    return await _load_legacy(store)


async def save_snapshot(store: LocalStore, snapshot: Snapshot) -> None:
    """Persist ``snapshot`` as the local copy of record."""
    await store.write(SNAPSHOT_KEY, encode_snapshot(snapshot))


async def clear_snapshot(store: LocalStore) -> None:
    """Remove the local copy, including any legacy per-slice keys."""
    await store.delete(SNAPSHOT_KEY)
    for key in LEGACY_KEYS.values():
        await store.delete(key)


async def _load_legacy(store: LocalStore) -> Snapshot:
    document: dict[str, Any] = {}
    for wire_name, key in LEGACY_KEYS.items():
        raw = await store.read(key)
        if raw is None:
            continue
        text = raw.decode("utf-8", errors="replace")
        if wire_name == "lastLogin":
            document[wire_name] = text
            continue
        try:
            document[wire_name] = json.loads(text) if text.strip() else None
        except json.JSONDecodeError as e:
            raise LocalStoreError("decode", key, e) from e

    if not document:
        return Snapshot.empty()

    logger.info("Loaded snapshot from legacy per-slice keys")
    try:
        return Snapshot.from_dict(document)
    except (ValueError, TypeError, StudySyncError) as e:
        raise LocalStoreError("decode", SNAPSHOT_KEY, e) from e
