"""
Config file identity provider.

Reads the signed-in account from a local settings file, for desktop
and command-line use where no interactive sign-in flow exists.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .provider import IdentityProvider
from .types import IdentityState

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".study-sync" / "settings.yaml"


class ConfigFileIdentityProvider(IdentityProvider):
    """Identity provider that reads from local config.

    Configuration in ~/.study-sync/settings.yaml:

    ```yaml
    identity:
      user_id: "user-abc123"
      display_name: "Alice"
    ```

    If the identity section or user_id is missing, the session is
    anonymous. The state stays UNKNOWN until ``resolve()`` runs.
    """

    def __init__(self, config_path: Path | None = None):
        """Initialize the config file provider.

        Args:
            config_path: Path to settings.yaml. Defaults to ~/.study-sync/settings.yaml
        """
        super().__init__()
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._state = IdentityState.unknown()

    def current(self) -> IdentityState:
        return self._state

    async def resolve(self) -> IdentityState:
        """Read the settings file and publish the resulting identity."""
        identity_config = self._load_config().get("identity") or {}
        user_id = identity_config.get("user_id")

        if user_id:
            state = IdentityState.authenticated(
                str(user_id), identity_config.get("display_name")
            )
        else:
            state = IdentityState.anonymous()

        await self._transition(state)
        return state

    async def sign_out(self) -> None:
        """Switch to anonymous. The config file is not modified."""
        await self._transition(IdentityState.anonymous())

    async def _transition(self, state: IdentityState) -> None:
        previous = self._state
        self._state = state
        if not state.same_identity(previous):
            await self._notify(state)

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            return {}

        try:
            content = self.config_path.read_text()
            return yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read identity settings {self.config_path}: {e}")
            return {}
