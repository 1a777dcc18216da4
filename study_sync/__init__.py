"""
Study Sync

Local/remote state synchronization for a personal study tracker.

Provides:
- One canonical snapshot per session (tasks, scheduled events,
  study time, login streak)
- Immediate local persistence of every mutation
- Mirroring to a Cosmos DB account store for signed-in users
- Safe startup reconciliation: an empty or stale local copy never
  overwrites a populated account

Usage:

    >>> from study_sync import IdentityState, SyncConfig, create_engine
    >>> from study_sync.features import add_task
    >>> engine = create_engine(SyncConfig.from_environment())
    >>> await engine.initialize(IdentityState.authenticated("user-123"))
    >>> tasks = add_task(engine.get_snapshot().tasks, "read ch.1")
    >>> await engine.mutate({"tasks": tasks})
    >>> engine.get_sync_status().last_synced_at

Anonymous use keeps everything on the device:

    >>> await engine.initialize(IdentityState.anonymous())
"""

from .config import CosmosAuthMethod, SyncConfig
from .day_key import day_key, previous_day_key, today_key
from .engine import ReconciliationEngine, SyncState, SyncStatus, create_engine

# Exceptions
from .exceptions import (
    AuthError,
    LocalStoreError,
    NetworkError,
    RemoteReadError,
    RemoteStoreError,
    RemoteWriteError,
    StaleCompletionDiscarded,
    StudySyncError,
    ValidationError,
)

# Identity module
from .identity import (
    ConfigFileIdentityProvider,
    IdentityProvider,
    IdentityState,
    IdentityStatus,
    StaticIdentityProvider,
)
from .local import FileLocalStore, LocalStore, MemoryLocalStore
from .remote import CosmosRemoteStore, RemoteStore
from .snapshot import SLICE_NAMES, Event, PartialSnapshot, Snapshot, Task

__all__ = [
    # Engine
    "ReconciliationEngine",
    "SyncState",
    "SyncStatus",
    "create_engine",
    # Configuration
    "SyncConfig",
    "CosmosAuthMethod",
    # Data model
    "Snapshot",
    "PartialSnapshot",
    "Task",
    "Event",
    "SLICE_NAMES",
    "day_key",
    "today_key",
    "previous_day_key",
    # Stores
    "LocalStore",
    "FileLocalStore",
    "MemoryLocalStore",
    "RemoteStore",
    "CosmosRemoteStore",
    # Identity
    "IdentityProvider",
    "IdentityState",
    "IdentityStatus",
    "StaticIdentityProvider",
    "ConfigFileIdentityProvider",
    # Exceptions
    "StudySyncError",
    "LocalStoreError",
    "RemoteStoreError",
    "NetworkError",
    "AuthError",
    "RemoteReadError",
    "RemoteWriteError",
    "StaleCompletionDiscarded",
    "ValidationError",
]

__version__ = "0.1.0"
