"""Provider configurations for the Strava and Google OAuth flows.

Both flows run through the same session manager. Everything that differs
between them (endpoints, scopes, PKCE, client secret usage, how token and
profile responses map onto stored identity fields, and what the Glass export
requires) lives on a ``ProviderConfig``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .config import CompanionConfig, is_configured
from .models import (
    GoogleTokenResponse,
    GoogleUserInfo,
    StravaTokenResponse,
    TokenGrant,
)

STRAVA = "strava"
GOOGLE = "google"

TokenParser = Callable[[Mapping[str, Any], int], TokenGrant]
ProfileParser = Callable[[Mapping[str, Any]], Mapping[str, str]]


def _frozen(values: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True)
class ProviderConfig:
    """Strategy object describing one OAuth provider."""

    name: str
    namespace: str
    authorize_url: str
    token_url: str
    client_id: str
    redirect_uri: str
    scope: str
    parse_token_response: TokenParser
    identity_keys: tuple[str, ...]
    primary_identity_key: str
    display_name_key: str
    export_fields: Mapping[str, str]
    client_secret: str | None = None
    use_pkce: bool = False
    userinfo_url: str | None = None
    parse_userinfo: ProfileParser | None = None
    extra_authorize_params: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    export_requires_refresh_token: bool = False

    def __post_init__(self) -> None:
        if self.use_pkce and self.client_secret:
            raise ValueError(f"{self.name}: PKCE flows must not carry a client secret")
        if self.userinfo_url and self.parse_userinfo is None:
            raise ValueError(f"{self.name}: userinfo_url requires parse_userinfo")
        for key in (self.primary_identity_key, self.display_name_key, *self.export_fields.values()):
            if key not in self.identity_keys:
                raise ValueError(f"{self.name}: unknown identity field {key!r}")

    @property
    def requires_profile_fetch(self) -> bool:
        return self.userinfo_url is not None


# Strava
STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/mobile/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"


def parse_strava_token(payload: Mapping[str, Any], now: int) -> TokenGrant:
    """Map a Strava token response; the athlete is only embedded on code exchange."""
    token = StravaTokenResponse.model_validate(payload)
    identity = None
    if token.athlete is not None:
        identity = {
            "athlete_id": str(token.athlete.id),
            "athlete_name": token.athlete.full_name,
        }
    expires_at = token.expires_at
    if expires_at is None:
        assert token.expires_in is not None
        expires_at = now + token.expires_in
    return TokenGrant(
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        expires_at=expires_at,
        identity=identity,
    )


def strava_provider(config: CompanionConfig) -> ProviderConfig:
    """Build the Strava provider (client-secret flow, no PKCE)."""
    if not is_configured(config.strava_client_id):
        raise ValueError(
            "Strava client ID not configured. "
            "Please run 'glass-companion-setup' to set up authentication."
        )
    if not is_configured(config.strava_client_secret):
        raise ValueError(
            "Strava client secret not configured. "
            "Please run 'glass-companion-setup' to set up authentication."
        )
    return ProviderConfig(
        name=STRAVA,
        namespace="strava_secure_prefs",
        authorize_url=STRAVA_AUTHORIZE_URL,
        token_url=STRAVA_TOKEN_URL,
        client_id=config.strava_client_id,
        client_secret=config.strava_client_secret,
        redirect_uri=f"{config.app_scheme}://oauth",
        scope=config.strava_scopes,
        parse_token_response=parse_strava_token,
        identity_keys=("athlete_id", "athlete_name"),
        primary_identity_key="athlete_id",
        display_name_key="athlete_name",
        export_fields=_frozen({"id": "athlete_id"}),
        extra_authorize_params=_frozen({"approval_prompt": "auto"}),
        export_requires_refresh_token=True,
    )


# Google
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


def parse_google_token(payload: Mapping[str, Any], now: int) -> TokenGrant:
    """Map a Google token response; expiry is relative so it is anchored to ``now``."""
    token = GoogleTokenResponse.model_validate(payload)
    return TokenGrant(
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        expires_at=now + token.expires_in,
    )


def parse_google_userinfo(payload: Mapping[str, Any]) -> Mapping[str, str]:
    info = GoogleUserInfo.model_validate(payload)
    identity = {
        "user_id": info.id,
        "user_email": info.email,
        "user_name": info.name,
    }
    if info.picture:
        identity["user_photo"] = info.picture
    return identity


def google_provider(config: CompanionConfig) -> ProviderConfig:
    """Build the Google provider (public client, PKCE + state)."""
    if not is_configured(config.google_client_id):
        raise ValueError(
            "Google client ID not configured. "
            "Please run 'glass-companion-setup' to set up authentication."
        )
    return ProviderConfig(
        name=GOOGLE,
        namespace="google_secure_prefs",
        authorize_url=GOOGLE_AUTHORIZE_URL,
        token_url=GOOGLE_TOKEN_URL,
        userinfo_url=GOOGLE_USERINFO_URL,
        client_id=config.google_client_id,
        redirect_uri=f"{config.app_scheme}://google/oauth",
        scope=config.google_scopes,
        use_pkce=True,
        parse_token_response=parse_google_token,
        parse_userinfo=parse_google_userinfo,
        identity_keys=("user_id", "user_email", "user_name", "user_photo"),
        primary_identity_key="user_id",
        display_name_key="user_name",
        export_fields=_frozen({"email": "user_email", "name": "user_name", "id": "user_id"}),
        extra_authorize_params=_frozen({"access_type": "offline", "prompt": "consent"}),
        export_requires_refresh_token=False,
    )
