"""
Identity provider interface.

Defines the contract for session providers and the subscription
plumbing shared by all of them.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .types import IdentityState

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[IdentityState], Awaitable[None] | None]


class IdentityProvider(ABC):
    """Abstract identity/session provider.

    Implementations report the current state and notify subscribers
    whenever the state changes to a different identity.
    """

    def __init__(self) -> None:
        self._subscribers: list[IdentityCallback] = []

    @abstractmethod
    def current(self) -> IdentityState:
        """Get the current identity state."""
        ...

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register a transition callback.

        Callbacks may be plain functions or coroutine functions.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _notify(self, state: IdentityState) -> None:
        """Deliver ``state`` to every subscriber in registration order."""
        for callback in list(self._subscribers):
            result = callback(state)
            if inspect.isawaitable(result):
                await result


class StaticIdentityProvider(IdentityProvider):
    """Provider whose state is set directly by the host application.

    Hosts wire their own auth flow to ``sign_in`` / ``sign_out``; tests
    use it to script identity transitions.
    """

    def __init__(self, initial: IdentityState | None = None) -> None:
        super().__init__()
        self._state = initial or IdentityState.unknown()

    def current(self) -> IdentityState:
        return self._state

    async def set_state(self, state: IdentityState) -> None:
        """Replace the state, notifying subscribers on a real transition."""
        previous = self._state
        self._state = state
        if state.same_identity(previous):
            return
        logger.debug(f"Identity transition: {previous.status.value} -> {state.status.value}")
        await self._notify(state)

    async def sign_in(self, user_id: str, display_name: str | None = None) -> None:
        await self.set_state(IdentityState.authenticated(user_id, display_name))

    async def sign_out(self) -> None:
        await self.set_state(IdentityState.anonymous())
