"""
Identity management for study sync.

Provides the identity state reported by session providers and the
providers themselves.
"""

from .config_provider import ConfigFileIdentityProvider
from .provider import IdentityCallback, IdentityProvider, StaticIdentityProvider
from .types import IdentityState, IdentityStatus

__all__ = [
    # Types
    "IdentityStatus",
    "IdentityState",
    # Providers
    "IdentityProvider",
    "IdentityCallback",
    "StaticIdentityProvider",
    "ConfigFileIdentityProvider",
]
