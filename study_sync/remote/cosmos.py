"""
Cosmos DB account store.

Keeps one document per identity in Azure Cosmos DB, partitioned by
user id, so every read and write is a single-partition point operation.

Supports multiple authentication methods:
- Key-based authentication (development only)
- Azure AD via DefaultAzureCredential (recommended)
- Azure Managed Identity
- Service Principal
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity.aio import (
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from ..config import CosmosAuthMethod, SyncConfig
from ..exceptions import AuthError, NetworkError, StudySyncError
from ..logging_utils import get_sync_logger
from ..snapshot import Snapshot
from .store import RemoteStore

logger = get_sync_logger("remote.cosmos")

_AUTH_STATUS_CODES = (401, 403)


def _get_credential(config: SyncConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        AuthError: If credential settings are incomplete
    """
    auth_method = config.cosmos_auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise AuthError(reason="cosmos_key required for KEY authentication")
        return config.cosmos_key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        # If client_id is provided, use user-assigned managed identity
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise AuthError(
                reason="azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication"
            )
        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,
            client_id=config.azure_client_id,
            client_secret=config.azure_client_secret,
        )

    raise AuthError(reason=f"Unsupported auth method: {auth_method}")


class CosmosRemoteStore(RemoteStore):
    """Cosmos DB remote account store.

    Container schema:
    {
        "id": "{user_id}",
        "user_id": "{user_id}",
        "data": {todos, events, studySessions, loginStreak, lastLogin},
        "updated_at": "{iso_timestamp}"
    }
    """

    def __init__(self, config: SyncConfig) -> None:
        """Initialize the Cosmos DB store.

        Args:
            config: Sync configuration with Cosmos connection info
        """
        if not config.cosmos_endpoint:
            raise StudySyncError("Cosmos endpoint is required")

        self.config = config
        self._credential: Any = None
        self._client: CosmosClient | None = None
        self._container: ContainerProxy | None = None
        self._connect_lock = asyncio.Lock()

    async def _ensure_container(self) -> ContainerProxy:
        """Connect lazily, creating the database and container if needed.

        Concurrent callers share a single connection attempt.
        """
        if self._container is not None:
            return self._container

        async with self._connect_lock:
            if self._container is None:
                await self._connect()
        return self._container  # type: ignore[return-value]

    async def _connect(self) -> None:
        self._credential = _get_credential(self.config)
        try:
            client = CosmosClient(
                self.config.cosmos_endpoint,  # type: ignore[arg-type]
                credential=self._credential,
            )
            self._client = client
            database = await client.create_database_if_not_exists(id=self.config.cosmos_database)
            self._container = await database.create_container_if_not_exists(
                id=self.config.cosmos_container,
                partition_key=PartitionKey(path=self.config.cosmos_partition_key_path),
            )
        except CosmosHttpResponseError as e:
            await self.close()
            if e.status_code in _AUTH_STATUS_CODES:
                raise AuthError(reason=str(e)) from e
            raise NetworkError("connect", cause=e) from e
        except Exception as e:
            await self.close()
            raise NetworkError("connect", cause=e) from e

        logger.info(
            f"Connected to Cosmos DB: {self.config.cosmos_endpoint} "
            f"(database={self.config.cosmos_database}, "
            f"container={self.config.cosmos_container}, "
            f"auth={self.config.cosmos_auth_method.value})"
        )

    async def read_document(self, identity: str) -> Snapshot | None:
        container = await self._ensure_container()
        try:
            item = await container.read_item(item=identity, partition_key=identity)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            if e.status_code in _AUTH_STATUS_CODES:
                raise AuthError(identity, str(e)) from e
            raise NetworkError("read_document", identity, e) from e
        except Exception as e:
            raise NetworkError("read_document", identity, e) from e

        return Snapshot.from_dict(item.get("data"))

    async def write_document(self, identity: str, snapshot: Snapshot) -> None:
        container = await self._ensure_container()
        document = {
            "id": identity,
            "user_id": identity,
            "data": snapshot.to_dict(),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            await container.upsert_item(document)
        except CosmosHttpResponseError as e:
            if e.status_code in _AUTH_STATUS_CODES:
                raise AuthError(identity, str(e)) from e
            raise NetworkError("write_document", identity, e) from e
        except Exception as e:
            raise NetworkError("write_document", identity, e) from e

    async def close(self) -> None:
        """Close the client and credential."""
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._credential is not None and hasattr(self._credential, "close"):
            await self._credential.close()
        self._credential = None
        self._container = None
