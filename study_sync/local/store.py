"""
Durable local store interface.

Defines the key/value byte storage contract the reconciliation engine
persists snapshots through.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class LocalStore(ABC):
    """Abstract key/value byte store on the local device.

    Implementations raise LocalStoreError on failure. There is no
    versioning: a write replaces the previous value for the key.
    """

    @abstractmethod
    async def read(self, key: str) -> bytes | None:
        """Read the value stored under ``key``, or None if absent."""
        ...

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """Replace the value stored under ``key``."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        ...


class MemoryLocalStore(LocalStore):
    """Dict-backed local store.

    Useful for ephemeral sessions and tests. Values are copied on the
    way in so callers cannot alter stored bytes afterwards.
    """

    def __init__(self, initial: dict[str, bytes] | None = None):
        self._data: dict[str, bytes] = dict(initial or {})

    async def read(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def write(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        """List stored keys."""
        return list(self._data)
