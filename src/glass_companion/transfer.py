"""Credential bundles handed to the Glass transport and the QR encoder.

Both consumers receive the same compact JSON object::

    {"at": <access token>, "rt": <refresh token or null>, "ea": <expiry epoch seconds>,
     <provider identifier keys>...}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .manager import OAuthSessionManager

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset({"at", "rt", "ea"})


@dataclass(frozen=True)
class CredentialBundle:
    """Read-only projection of a stored credential record."""

    access_token: str
    refresh_token: str | None
    expires_at: int
    identifiers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        clashes = RESERVED_KEYS & set(self.identifiers)
        if clashes:
            raise ValueError(f"Identifier keys clash with token keys: {sorted(clashes)}")
        if not isinstance(self.identifiers, MappingProxyType):
            object.__setattr__(self, "identifiers", MappingProxyType(dict(self.identifiers)))

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "at": self.access_token,
            "rt": self.refresh_token,
            "ea": self.expires_at,
        }
        payload.update(self.identifiers)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CredentialBundle:
        """Parse the schema back, as the wearable side reads it."""
        try:
            return cls(
                access_token=str(payload["at"]),
                refresh_token=None if payload.get("rt") is None else str(payload["rt"]),
                expires_at=int(payload["ea"]),
                identifiers={
                    str(k): str(v) for k, v in payload.items() if k not in RESERVED_KEYS
                },
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid credential payload: {exc}") from exc


class CredentialTransport(Protocol):
    """Point-to-point link to the wearable (Bluetooth in the phone app)."""

    def is_connected(self) -> bool:
        """Whether a wearable is currently connected."""
        ...

    def send_credentials(self, provider: str, payload: Mapping[str, Any]) -> bool:
        """Deliver a credential payload; return False when the send failed."""
        ...


def send_to_glass(manager: OAuthSessionManager, transport: CredentialTransport) -> bool:
    """Export the manager's credentials and push them over ``transport``."""
    bundle = manager.export_for_transfer()
    if bundle is None:
        logger.info("No %s credentials to send", manager.provider.name)
        return False
    if not transport.is_connected():
        logger.info("Glass is not connected; %s credentials not sent", manager.provider.name)
        return False
    sent = transport.send_credentials(manager.provider.name, bundle.to_payload())
    if not sent:
        logger.warning("Transport failed to deliver %s credentials", manager.provider.name)
    return sent


def qr_payload(manager: OAuthSessionManager) -> str | None:
    """Text to encode into the credential QR code, or None when nothing is exportable."""
    bundle = manager.export_for_transfer()
    return bundle.to_json() if bundle else None
