"""Pydantic models for OAuth token and profile responses."""

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, model_validator


# Strava models
class MetaAthlete(BaseModel):
    """Minimal athlete representation embedded in token responses."""

    model_config = ConfigDict(extra="ignore")

    id: int
    resource_state: int | None = None


class SummaryAthlete(MetaAthlete):
    """Summary athlete representation."""

    firstname: str | None = None
    lastname: str | None = None
    profile: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.firstname or ''} {self.lastname or ''}".strip()


class StravaTokenResponse(BaseModel):
    """Strava OAuth token response.

    The authorization-code grant embeds the athlete; the refresh grant does not.
    """

    model_config = ConfigDict(extra="ignore")

    token_type: str = "Bearer"
    expires_at: int | None = None
    expires_in: int | None = None
    refresh_token: str
    access_token: str
    athlete: SummaryAthlete | None = None

    @model_validator(mode="after")
    def _require_expiry(self) -> "StravaTokenResponse":
        if self.expires_at is None and self.expires_in is None:
            raise ValueError("token response has neither expires_at nor expires_in")
        return self


# Google models
class GoogleTokenResponse(BaseModel):
    """Google OAuth token response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int
    token_type: str
    scope: str | None = None
    id_token: str | None = None


class GoogleUserInfo(BaseModel):
    """Google userinfo endpoint response."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    name: str
    picture: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    """Provider-neutral result of parsing a token endpoint response.

    ``identity`` is None when the provider does not embed the user's profile
    and a separate userinfo request is needed.
    """

    access_token: str
    refresh_token: str | None
    expires_at: int
    identity: Mapping[str, str] | None = None
