"""Observable session state for a provider's OAuth session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[["SessionState"], Any]


@dataclass(frozen=True)
class SessionState:
    """Snapshot of authentication status.

    Instances are immutable; every transition publishes a new one.
    """

    is_authenticated: bool = False
    primary_identifier: str | None = None
    display_name: str | None = None
    profile: Mapping[str, str | None] = field(default_factory=lambda: MappingProxyType({}))
    is_loading: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if self.is_authenticated and self.primary_identifier is None:
            raise ValueError("An authenticated session needs a primary identifier")
        if not isinstance(self.profile, MappingProxyType):
            object.__setattr__(self, "profile", MappingProxyType(dict(self.profile)))

    def as_public_dict(self) -> dict[str, Any]:
        """Return a view suitable for logging or diagnostics."""
        return {
            "is_authenticated": self.is_authenticated,
            "primary_identifier": self.primary_identifier,
            "display_name": self.display_name,
            "profile": dict(self.profile),
            "is_loading": self.is_loading,
            "error": self.error,
        }


class SessionStatePublisher:
    """Single-value observable cell with one writer and many readers."""

    def __init__(self, initial: SessionState | None = None) -> None:
        self._value = initial or SessionState()
        self._subscribers: list[Subscriber] = []

    @property
    def value(self) -> SessionState:
        return self._value

    def publish(self, state: SessionState) -> None:
        self._value = state
        for callback in list(self._subscribers):
            self._notify(callback, state)

    @staticmethod
    def _notify(callback: Subscriber, state: SessionState) -> None:
        try:
            callback(state)
        except Exception:
            logger.exception("Session state subscriber failed")

    def subscribe(self, callback: Subscriber, *, replay: bool = True) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it.

        With ``replay`` the callback receives the current value immediately.
        """
        self._subscribers.append(callback)
        if replay:
            self._notify(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def wait_for(
        self, predicate: Callable[[SessionState], bool], timeout: float | None = None
    ) -> SessionState:
        """Wait until a published state satisfies ``predicate``."""
        if predicate(self._value):
            return self._value

        loop = asyncio.get_running_loop()
        future: asyncio.Future[SessionState] = loop.create_future()

        def on_state(state: SessionState) -> None:
            if not future.done() and predicate(state):
                future.set_result(state)

        unsubscribe = self.subscribe(on_state, replay=False)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def view(self) -> SessionStateView:
        return SessionStateView(self)


class SessionStateView:
    """Read-only facade over a ``SessionStatePublisher``."""

    def __init__(self, publisher: SessionStatePublisher) -> None:
        self._publisher = publisher

    @property
    def value(self) -> SessionState:
        return self._publisher.value

    def subscribe(self, callback: Subscriber, *, replay: bool = True) -> Callable[[], None]:
        return self._publisher.subscribe(callback, replay=replay)

    async def wait_for(
        self, predicate: Callable[[SessionState], bool], timeout: float | None = None
    ) -> SessionState:
        return await self._publisher.wait_for(predicate, timeout)
