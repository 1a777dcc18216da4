"""
Shared test configuration and fixtures.

Provides in-memory stand-ins for the remote account store whose reads
can be held open and whose writes can be slowed down, so tests can
interleave mutations with in-flight network calls.
"""

import asyncio
import logging
from collections import defaultdict

import pytest

from study_sync.exceptions import LocalStoreError
from study_sync.local import MemoryLocalStore
from study_sync.remote import RemoteStore
from study_sync.snapshot import Snapshot

logger = logging.getLogger(__name__)


class FakeRemoteStore(RemoteStore):
    """
    In-memory account store for testing without a database.

    - read_gates: identity -> Event; a read waits until the event is set
    - read_started: identity -> Event set as soon as a read begins
    - write_delays: seconds to sleep per write, consumed in order
    - read_error / write_error: raised instead of completing
    """

    def __init__(self, documents: dict[str, Snapshot] | None = None):
        self.documents: dict[str, Snapshot] = dict(documents or {})
        self.reads: list[str] = []
        self.writes: list[tuple[str, Snapshot]] = []
        self.completed_writes: list[tuple[str, Snapshot]] = []
        self.read_gates: dict[str, asyncio.Event] = {}
        self.read_started: defaultdict[str, asyncio.Event] = defaultdict(asyncio.Event)
        self.write_delays: list[float] = []
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.closed = False

    def hold_reads(self, identity: str) -> asyncio.Event:
        """Block reads for ``identity`` until the returned event is set."""
        gate = asyncio.Event()
        self.read_gates[identity] = gate
        return gate

    async def read_document(self, identity: str) -> Snapshot | None:
        self.reads.append(identity)
        self.read_started[identity].set()
        gate = self.read_gates.get(identity)
        if gate is not None:
            await gate.wait()
        if self.read_error is not None:
            raise self.read_error
        return self.documents.get(identity)

    async def write_document(self, identity: str, snapshot: Snapshot) -> None:
        self.writes.append((identity, snapshot))
        delay = self.write_delays.pop(0) if self.write_delays else 0.0
        if delay:
            await asyncio.sleep(delay)
        if self.write_error is not None:
            raise self.write_error
        self.documents[identity] = snapshot
        self.completed_writes.append((identity, snapshot))

    async def close(self) -> None:
        self.closed = True


class FailingLocalStore(MemoryLocalStore):
    """Local store whose writes always fail."""

    async def write(self, key: str, data: bytes) -> None:
        raise LocalStoreError("write", key, OSError("disk full"))


class SlowReadLocalStore(MemoryLocalStore):
    """Local store whose reads take a while, like a cold disk."""

    def __init__(self, delay: float = 0.02):
        super().__init__()
        self.delay = delay

    async def read(self, key: str) -> bytes | None:
        await asyncio.sleep(self.delay)
        return await super().read(key)


@pytest.fixture
def local_store() -> MemoryLocalStore:
    """Fresh in-memory local store."""
    return MemoryLocalStore()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    """Fresh in-memory remote store with no documents."""
    return FakeRemoteStore()


@pytest.fixture
def failing_local_store() -> FailingLocalStore:
    """Local store that rejects every write."""
    return FailingLocalStore()


@pytest.fixture
def slow_local_store() -> SlowReadLocalStore:
    """Local store whose reads yield to the event loop."""
    return SlowReadLocalStore()
