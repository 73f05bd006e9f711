"""PKCE (RFC 7636) verifier/challenge generation and anti-forgery state tokens."""

from __future__ import annotations

import hashlib
import secrets
from base64 import urlsafe_b64encode
from dataclasses import dataclass

VERIFIER_BYTES = 32


def _b64u_encode(data: bytes) -> str:
    """Encode bytes to urlsafe base64 without padding."""
    return urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def derive_challenge(verifier: str) -> str:
    """Return the S256 code challenge for a verifier."""
    return _b64u_encode(hashlib.sha256(verifier.encode("ascii")).digest())


@dataclass(frozen=True)
class PKCEParameters:
    """Code verifier and its S256 challenge, valid for one authorization attempt."""

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, num_bytes: int = VERIFIER_BYTES) -> PKCEParameters:
        if num_bytes < VERIFIER_BYTES:
            raise ValueError(f"PKCE verifier needs at least {VERIFIER_BYTES} random bytes")
        verifier = _b64u_encode(secrets.token_bytes(num_bytes))
        return cls(verifier=verifier, challenge=derive_challenge(verifier))

    @classmethod
    def from_verifier(cls, verifier: str) -> PKCEParameters:
        return cls(verifier=verifier, challenge=derive_challenge(verifier))


def generate_state() -> str:
    """Generate a random anti-forgery state token."""
    return secrets.token_urlsafe(24)
