"""
Configuration for the sync engine and its stores.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError


class CosmosAuthMethod(Enum):
    """Authentication method for the Cosmos DB account store.

    KEY: Use account key (development only)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


@dataclass
class SyncConfig:
    """Configuration for study data sync.

    Environment Variables:
        STUDY_SYNC_LOCAL_PATH: Directory for the local snapshot cache
        STUDY_SYNC_FAIL_OPEN: "false" to keep the gate closed after a failed read
        STUDY_SYNC_PUSH_NEW_IDENTITY: "true" to push local data to a new account
        STUDY_SYNC_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        STUDY_SYNC_COSMOS_KEY: Cosmos DB key (if using key auth)
        STUDY_SYNC_COSMOS_DATABASE: Database name (default: study-sync)
        STUDY_SYNC_COSMOS_CONTAINER: Container name (default: accounts)
        STUDY_SYNC_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: Azure AD settings
        STUDY_SYNC_LOG_JSON: "true" to emit structured JSON logs
        STUDY_SYNC_LOG_LEVEL: Level for the study_sync loggers (default: INFO)

    Attributes:
        local_path: Directory for the local snapshot cache
        fail_open_on_read_error: Open the reconciliation gate even when the
            first remote read fails. Trusts possibly stale local data but
            never blocks the UI. When False, remote writes stay blocked until
            a later initialize succeeds.
        push_local_on_new_identity: Push the local snapshot immediately when
            an authenticated identity has no remote document yet
    """

    local_path: str | None = None
    fail_open_on_read_error: bool = True
    push_local_on_new_identity: bool = False

    # Cosmos DB connection settings
    cosmos_endpoint: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None  # Only used if auth_method is KEY
    cosmos_database: str = "study-sync"
    cosmos_container: str = "accounts"
    cosmos_partition_key_path: str = "/user_id"

    # Azure AD authentication settings
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    # JSON log lines on stdout for the study_sync loggers
    log_json: bool = False
    log_level: str = "INFO"

    @property
    def remote_enabled(self) -> bool:
        """True when a remote account store is configured."""
        return bool(self.cosmos_endpoint)

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables."""
        auth_method_str = os.environ.get("STUDY_SYNC_COSMOS_AUTH_METHOD", "default_credential")
        try:
            auth_method = CosmosAuthMethod(auth_method_str.lower())
        except ValueError:
            auth_method = CosmosAuthMethod.DEFAULT_CREDENTIAL

        return cls(
            local_path=os.environ.get("STUDY_SYNC_LOCAL_PATH"),
            fail_open_on_read_error=os.environ.get("STUDY_SYNC_FAIL_OPEN", "true").lower()
            != "false",
            push_local_on_new_identity=os.environ.get("STUDY_SYNC_PUSH_NEW_IDENTITY", "").lower()
            == "true",
            cosmos_endpoint=os.environ.get("STUDY_SYNC_COSMOS_ENDPOINT"),
            cosmos_auth_method=auth_method,
            cosmos_key=os.environ.get("STUDY_SYNC_COSMOS_KEY"),
            cosmos_database=os.environ.get("STUDY_SYNC_COSMOS_DATABASE", "study-sync"),
            cosmos_container=os.environ.get("STUDY_SYNC_COSMOS_CONTAINER", "accounts"),
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
            log_json=os.environ.get("STUDY_SYNC_LOG_JSON", "").lower() == "true",
            log_level=os.environ.get("STUDY_SYNC_LOG_LEVEL", "INFO").upper(),
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> SyncConfig:
        """Create configuration from the ``sync`` section of a settings file.

        ```yaml
        sync:
          local_path: ~/.study-sync
          fail_open_on_read_error: true
          cosmos_endpoint: https://example.documents.azure.com:443/
          cosmos_auth_method: default_credential
        ```

        A missing file or section yields the defaults.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            content = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValidationError("config", f"invalid YAML in {path}: {e}") from e

        section = content.get("sync") or {}
        if not isinstance(section, dict):
            raise ValidationError("sync", "expected a mapping")

        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in section.items():
            if key not in known:
                raise ValidationError(key, "unknown sync setting")
            values[key] = value

        if "cosmos_auth_method" in values:
            try:
                values["cosmos_auth_method"] = CosmosAuthMethod(
                    str(values["cosmos_auth_method"]).lower()
                )
            except ValueError as e:
                raise ValidationError(
                    "cosmos_auth_method", "unsupported auth method", str(values["cosmos_auth_method"])
                ) from e
        if values.get("local_path"):
            values["local_path"] = str(Path(values["local_path"]).expanduser())

        return cls(**values)
