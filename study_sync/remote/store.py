"""
Remote account store interface.

Defines the contract for the per-identity document store that mirrors
a user's snapshot across devices.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..snapshot import Snapshot


class RemoteStore(ABC):
    """Abstract per-identity document store.

    One document per identity with last-writer-wins overwrite semantics.
    Implementations raise NetworkError when the store cannot be reached
    and AuthError when credentials are rejected.
    """

    @abstractmethod
    async def read_document(self, identity: str) -> Snapshot | None:
        """Read the snapshot stored for ``identity``.

        Returns:
            The stored snapshot, or None for an identity with no document
        """
        ...

    @abstractmethod
    async def write_document(self, identity: str, snapshot: Snapshot) -> None:
        """Replace the document stored for ``identity``."""
        ...

    async def close(self) -> None:
        """Release connections. Default implementation does nothing."""
        return None
