"""
State reconciliation engine.

Owns the canonical in-memory snapshot and keeps the local and remote
copies in step with it:
- Load: local cache first (fast first paint), then the account document,
  which wins unconditionally when present
- Mutate: replace slices in memory, persist locally, mirror remotely
- Gate: no remote write for an identity until its first remote read
  has completed in this session
- Ordering: remote writes are serialized FIFO in mutation order, and
  completions from a superseded identity are discarded
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from .config import SyncConfig
from .exceptions import (
    LocalStoreError,
    RemoteReadError,
    RemoteWriteError,
    StaleCompletionDiscarded,
)
from .identity import IdentityProvider, IdentityState, IdentityStatus
from .local import FileLocalStore, LocalStore, clear_snapshot, load_snapshot, save_snapshot
from .logging_utils import SyncLoggerAdapter, configure_structured_logging, get_sync_logger
from .remote import CosmosRemoteStore, RemoteStore
from .snapshot import PartialSnapshot, Snapshot

logger = get_sync_logger("engine")


class SyncState(Enum):
    """Current state of remote synchronization."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass(frozen=True)
class SyncStatus:
    """Sync indicator state exposed to views."""

    state: SyncState = SyncState.IDLE
    last_synced_at: datetime | None = None
    last_error: str | None = None
    pending_writes: int = 0

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncState.SYNCING


class ReconciliationEngine:
    """Single owner of a session's study data.

    Views read through ``get_snapshot`` and change data only through
    ``mutate``. Storage failures never propagate to callers; they are
    logged and reflected in ``get_sync_status``.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: RemoteStore | None = None,
        config: SyncConfig | None = None,
    ):
        """Initialize the engine.

        Args:
            local_store: Durable local store for the device cache
            remote_store: Account store; None keeps data on this device only
            config: Sync configuration
        """
        self.local = local_store
        self.remote = remote_store
        self.config = config or SyncConfig()

        self._snapshot = Snapshot.empty()
        self._identity = IdentityState.unknown()
        self._generation = 0
        self._gate_open = False
        self._load_task: asyncio.Task[None] | None = None
        self._local_loaded = False
        # Slices replaced by mutate since the local cache was last read
        self._touched_slices: set[str] = set()

        self._state = SyncState.IDLE
        self._last_synced_at: datetime | None = None
        self._last_error: str | None = None

        # Remote write ordering
        self._write_sequence = 0
        self._pushed_sequence = 0
        self._pending_writes = 0
        self._local_lock = asyncio.Lock()
        self._remote_lock = asyncio.Lock()
        self._writes_idle = asyncio.Event()
        self._writes_idle.set()

        self.blocked_writes = 0
        self._log = SyncLoggerAdapter(logger, {"user_id": None, "generation": 0})

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def identity(self) -> IdentityState:
        return self._identity

    @property
    def gate_open(self) -> bool:
        """Whether remote writes are allowed for the current identity."""
        return self._gate_open

    @property
    def generation(self) -> int:
        return self._generation

    def get_snapshot(self) -> Snapshot:
        """Get the current canonical snapshot."""
        return self._snapshot

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            state=self._state,
            last_synced_at=self._last_synced_at,
            last_error=self._last_error,
            pending_writes=self._pending_writes,
        )

    # =========================================================================
    # Load
    # =========================================================================

    async def initialize(self, identity: IdentityState) -> None:
        """Load and reconcile data for ``identity``.

        A different identity than the current one re-arms the gate.
        Calling again for the same identity joins an in-flight load, and
        is a no-op once the gate is open.
        """
        if not identity.same_identity(self._identity):
            self._begin_transition(identity)
        elif self._gate_open:
            self._log.debug("Already reconciled for current identity")
            return

        task = self._load_task
        if task is None:
            task = asyncio.create_task(self._load(identity, self._generation))
            task.add_done_callback(self._clear_load_task)
            self._load_task = task
        await asyncio.shield(task)

    async def _load(self, identity: IdentityState, generation: int) -> None:
        try:
            async with self._local_lock:
                local_snapshot = await load_snapshot(self.local)
        except LocalStoreError as e:
            self._log.error(f"Could not load local snapshot, starting empty: {e}")
            local_snapshot = Snapshot.empty()

        if not self._is_current(generation):
            self._discard_stale(identity, generation)
            return
        self._local_loaded = True
        if self._touched_slices:
            # Mutations made while the cache was being read win over it
            touched = {name: getattr(self._snapshot, name) for name in self._touched_slices}
            self._touched_slices = set()
            local_snapshot = local_snapshot.with_slices(touched)
            self._snapshot = local_snapshot
            await self._persist_local(local_snapshot)
            if not self._is_current(generation):
                self._discard_stale(identity, generation)
                return
        else:
            self._snapshot = local_snapshot

        if identity.status == IdentityStatus.UNKNOWN:
            self._log.debug("Identity unresolved, waiting before reconciling")
            return

        if identity.status == IdentityStatus.ANONYMOUS:
            self._gate_open = True
            self._log.debug("Anonymous session, local data is authoritative")
            return

        if self.remote is None:
            self._gate_open = True
            self._log.warning("No remote store configured, keeping data on this device")
            return

        user_id = identity.user_id or ""
        self._state = SyncState.SYNCING
        try:
            remote_snapshot = await self.remote.read_document(user_id)
        except Exception as e:
            if not self._is_current(generation):
                self._discard_stale(identity, generation)
                return
            self._handle_read_failure(RemoteReadError(user_id, e))
            return

        if not self._is_current(generation):
            self._discard_stale(identity, generation)
            return

        if remote_snapshot is not None:
            # Remote wins unconditionally on first load
            self._snapshot = remote_snapshot
        self._gate_open = True
        self._state = SyncState.IDLE
        self._last_synced_at = datetime.now(UTC)
        self._last_error = None
        self._log.info(
            "Reconciled with remote document"
            if remote_snapshot is not None
            else "No remote document yet, keeping local snapshot"
        )

        if remote_snapshot is not None:
            await self._persist_local(remote_snapshot)
        elif self.config.push_local_on_new_identity:
            sequence = self._reserve_remote_write()
            await self._push_remote(identity, generation, sequence, self._snapshot)

    def _handle_read_failure(self, error: RemoteReadError) -> None:
        self._state = SyncState.ERROR
        self._last_error = str(error.cause or error)
        if self.config.fail_open_on_read_error:
            self._gate_open = True
            self._log.warning(
                f"{error.message}; continuing with local data: {error.cause}",
                extra={"operation": "read_document"},
            )
        else:
            self._log.warning(
                f"{error.message}; remote writes stay blocked until a read succeeds: "
                f"{error.cause}",
                extra={"operation": "read_document"},
            )

    def _clear_load_task(self, task: asyncio.Task[None]) -> None:
        if self._load_task is task:
            self._load_task = None

    # =========================================================================
    # Mutation
    # =========================================================================

    async def mutate(self, partial: PartialSnapshot) -> None:
        """Replace the named slices and persist the result.

        The canonical snapshot changes before any I/O. The local write
        always happens, although a mutation made before the local cache
        was first read is written by that load instead. The remote write
        happens only for an authenticated identity whose gate is open.

        Raises:
            ValidationError: If ``partial`` names unknown slices or holds
                invalid values. Nothing is changed in that case.
        """
        next_snapshot = self._snapshot.with_slices(partial)
        self._snapshot = next_snapshot
        if not self._local_loaded or self._load_task is not None:
            self._touched_slices.update(partial)
        identity = self._identity
        generation = self._generation

        sequence: int | None = None
        if identity.is_authenticated and self.remote is not None:
            if self._gate_open:
                sequence = self._reserve_remote_write()
            else:
                self.blocked_writes += 1
                self._log.warning("Sync blocked: initial remote data not yet merged")

        if self._local_loaded:
            await self._persist_local(next_snapshot)
        else:
            self._log.debug("Local cache not read yet, deferring local write to the load")

        if sequence is not None:
            await self._push_remote(identity, generation, sequence, next_snapshot)

    def _reserve_remote_write(self) -> int:
        self._write_sequence += 1
        self._pending_writes += 1
        self._writes_idle.clear()
        return self._write_sequence

    async def _persist_local(self, snapshot: Snapshot) -> None:
        try:
            async with self._local_lock:
                await save_snapshot(self.local, snapshot)
        except LocalStoreError as e:
            self._log.error(f"Local persist failed, keeping in-memory state: {e}")

    async def _push_remote(
        self,
        identity: IdentityState,
        generation: int,
        sequence: int,
        snapshot: Snapshot,
    ) -> None:
        try:
            async with self._remote_lock:
                if not self._is_current(generation):
                    self._discard_stale(identity, generation)
                    return
                if sequence <= self._pushed_sequence:
                    return

                self._state = SyncState.SYNCING
                try:
                    await self.remote.write_document(identity.user_id, snapshot)  # type: ignore[union-attr, arg-type]
                except Exception as e:
                    error = RemoteWriteError(identity.user_id or "", sequence, e)
                    if not self._is_current(generation):
                        self._discard_stale(identity, generation)
                    elif sequence == self._write_sequence:
                        self._state = SyncState.ERROR
                        self._last_error = str(e)
                        self._log.warning(
                            f"{error.message}: {e}", extra={"sequence": sequence}
                        )
                    else:
                        self._log.warning(
                            f"{error.message}, superseded by a later write: {e}",
                            extra={"sequence": sequence},
                        )
                    return

                self._pushed_sequence = sequence
                if not self._is_current(generation):
                    self._discard_stale(identity, generation)
                    return
                if sequence == self._write_sequence:
                    self._state = SyncState.IDLE
                    self._last_synced_at = datetime.now(UTC)
                    self._last_error = None
                self._log.debug(f"Pushed snapshot #{sequence}", extra={"sequence": sequence})
        finally:
            self._pending_writes -= 1
            if self._pending_writes == 0:
                self._writes_idle.set()

    # =========================================================================
    # Identity transitions
    # =========================================================================

    def _begin_transition(self, identity: IdentityState) -> None:
        self._generation += 1
        previous = self._identity
        self._identity = identity
        self._gate_open = False
        self._load_task = None
        self._state = SyncState.IDLE
        self._last_synced_at = None
        self._last_error = None
        self._log = self._log.bind(user_id=identity.user_id, generation=self._generation)
        self._log.info(
            f"Identity transition {previous.status.value} -> {identity.status.value}"
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _discard_stale(self, identity: IdentityState, generation: int) -> None:
        stale = StaleCompletionDiscarded(identity.user_id, generation)
        self._log.debug(stale.message)

    async def sign_out(self, clear_local: bool = False) -> None:
        """Switch to an anonymous session.

        Args:
            clear_local: Also reset the snapshot and erase the local cache
        """
        self._begin_transition(IdentityState.anonymous())
        if clear_local:
            self._snapshot = Snapshot.empty()
            self._touched_slices = set()
            try:
                async with self._local_lock:
                    await clear_snapshot(self.local)
            except LocalStoreError as e:
                self._log.error(f"Could not clear local snapshot: {e}")
        await self.initialize(IdentityState.anonymous())

    async def bind(self, provider: IdentityProvider) -> Callable[[], None]:
        """Follow an identity provider.

        Initializes from the provider's current state and re-initializes
        on every transition it reports.

        Returns:
            A function that stops following the provider
        """
        unsubscribe = provider.subscribe(self.initialize)
        await self.initialize(provider.current())
        return unsubscribe

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def wait_for_pending_writes(self) -> None:
        """Wait until every issued local and remote write has finished."""
        async with self._local_lock:
            pass
        await self._writes_idle.wait()

    async def close(self) -> None:
        """Flush pending writes and close the remote store."""
        await self.wait_for_pending_writes()
        if self.remote is not None:
            await self.remote.close()


def create_engine(config: SyncConfig | None = None) -> ReconciliationEngine:
    """Create an engine backed by the file cache and, if configured, Cosmos DB.

    Args:
        config: Sync configuration (defaults to environment settings)

    Returns:
        A ReconciliationEngine awaiting ``initialize``
    """
    config = config or SyncConfig.from_environment()
    if config.log_json:
        configure_structured_logging(config.log_level)
    local_store = FileLocalStore(config.local_path)

    remote_store: RemoteStore | None = None
    if config.remote_enabled:
        remote_store = CosmosRemoteStore(config)

    return ReconciliationEngine(local_store, remote_store, config)
