"""
Remote account stores.

The RemoteStore contract plus the Cosmos DB implementation used for
signed-in users.
"""

from .cosmos import CosmosRemoteStore
from .store import RemoteStore

__all__ = [
    "RemoteStore",
    "CosmosRemoteStore",
]
