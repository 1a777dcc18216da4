"""
Identity types.

Defines the authentication state the session provider reports to the
reconciliation engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..exceptions import ValidationError


class IdentityStatus(Enum):
    """Authentication status of the current session."""

    UNKNOWN = "unknown"  # Session provider has not resolved yet
    ANONYMOUS = "anonymous"  # Local-only, data stays on this device
    AUTHENTICATED = "authenticated"  # Data mirrored to the account store


@dataclass(frozen=True)
class IdentityState:
    """Current answer to "who is using the app?".

    Two states are the same identity when status and user_id match;
    display_name is informational only.
    """

    status: IdentityStatus
    user_id: str | None = None
    display_name: str | None = None

    def __post_init__(self) -> None:
        if self.status == IdentityStatus.AUTHENTICATED and not self.user_id:
            raise ValidationError("user_id", "required for an authenticated identity")
        if self.status != IdentityStatus.AUTHENTICATED and self.user_id:
            raise ValidationError("user_id", f"not allowed for {self.status.value} identity")

    @classmethod
    def unknown(cls) -> IdentityState:
        return cls(IdentityStatus.UNKNOWN)

    @classmethod
    def anonymous(cls) -> IdentityState:
        return cls(IdentityStatus.ANONYMOUS)

    @classmethod
    def authenticated(cls, user_id: str, display_name: str | None = None) -> IdentityState:
        return cls(IdentityStatus.AUTHENTICATED, user_id, display_name)

    @property
    def is_authenticated(self) -> bool:
        return self.status == IdentityStatus.AUTHENTICATED

    @property
    def is_resolved(self) -> bool:
        return self.status != IdentityStatus.UNKNOWN

    def same_identity(self, other: IdentityState | None) -> bool:
        """Check whether ``other`` refers to the same identity."""
        if other is None:
            return False
        return self.status == other.status and self.user_id == other.user_id

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "status": self.status.value,
            "user_id": self.user_id,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IdentityState:
        """Deserialize from dictionary."""
        return cls(
            status=IdentityStatus(data.get("status", "unknown")),
            user_id=data.get("user_id"),
            display_name=data.get("display_name"),
        )
