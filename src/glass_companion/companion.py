"""Composition root wiring one session manager per configured provider."""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from collections.abc import Callable, Mapping
from typing import Any

from .config import CompanionConfig
from .manager import OAuthSessionManager
from .providers import GOOGLE, STRAVA, ProviderConfig, google_provider, strava_provider
from .storage import open_credential_store

logger = logging.getLogger(__name__)

PROVIDER_FACTORIES: dict[str, Callable[[CompanionConfig], ProviderConfig]] = {
    STRAVA: strava_provider,
    GOOGLE: google_provider,
}


class Companion:
    """The phone-side session managers, keyed by provider name."""

    def __init__(self, managers: Mapping[str, OAuthSessionManager]) -> None:
        namespaces = [manager.provider.namespace for manager in managers.values()]
        if len(set(namespaces)) != len(namespaces):
            raise ValueError("Each provider needs its own storage namespace")
        self._managers = dict(managers)

    @classmethod
    def from_config(
        cls,
        config: CompanionConfig,
        *,
        opener: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.time,
    ) -> Companion:
        """Build managers for every provider whose client credentials are configured."""
        managers: dict[str, OAuthSessionManager] = {}
        for name, factory in PROVIDER_FACTORIES.items():
            try:
                provider = factory(config)
            except ValueError as exc:
                logger.warning("Skipping %s: %s", name, exc)
                continue
            managers[name] = OAuthSessionManager(
                provider,
                open_credential_store(config, provider),
                opener=opener,
                clock=clock,
                timeout=config.http_timeout_seconds,
                refresh_skew=config.token_refresh_skew_seconds,
            )
        if not managers:
            raise ValueError(
                "No OAuth providers configured. "
                "Please run 'glass-companion-setup' to set up authentication."
            )
        return cls(managers)

    @property
    def providers(self) -> list[str]:
        return list(self._managers)

    def manager(self, provider: str) -> OAuthSessionManager:
        try:
            return self._managers[provider]
        except KeyError:
            raise KeyError(f"Unknown or unconfigured provider: {provider}") from None

    async def initialize(self) -> None:
        """Restore every provider's session from storage."""
        await asyncio.gather(*(manager.initialize() for manager in self._managers.values()))

    def route(self, uri: str) -> str | None:
        """Name of the provider whose redirect URI ``uri`` targets."""
        for name, manager in self._managers.items():
            if manager.matches_redirect(uri):
                return name
        return None

    async def dispatch_redirect(self, uri: str) -> bool:
        """Route an OAuth redirect to the manager that owns its redirect URI."""
        provider = self.route(uri)
        if provider is not None:
            return await self._managers[provider].handle_redirect(uri)
        logger.warning("Ignoring redirect for unknown target: %s", uri.split("?", 1)[0])
        return False
