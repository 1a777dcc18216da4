"""
Durable local storage for snapshots.

Provides the LocalStore contract, a file-backed and an in-memory
implementation, and the snapshot layout helpers.
"""

from .file_store import FileLocalStore
from .layout import (
    LEGACY_KEYS,
    SNAPSHOT_KEY,
    clear_snapshot,
    decode_snapshot,
    encode_snapshot,
    load_snapshot,
    save_snapshot,
)
from .store import LocalStore, MemoryLocalStore

__all__ = [
    "LocalStore",
    "FileLocalStore",
    "MemoryLocalStore",
    "SNAPSHOT_KEY",
    "LEGACY_KEYS",
    "load_snapshot",
    "save_snapshot",
    "clear_snapshot",
    "encode_snapshot",
    "decode_snapshot",
]
