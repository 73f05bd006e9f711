"""Companion configuration loaded from environment variables and .env."""

from __future__ import annotations

import logging
from pathlib import Path

from cryptography.fernet import Fernet
from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STRAVA_SCOPES = (
    "activity:read_all,activity:write,read,profile:read_all,read_all,profile:write"
)
DEFAULT_GOOGLE_SCOPES = " ".join(
    [
        "openid",
        "email",
        "profile",
        "https://www.googleapis.com/auth/userinfo.profile",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/glass.timeline",
        "https://www.googleapis.com/auth/glass.location",
    ]
)

PLACEHOLDER_VALUES = frozenset(
    {
        "",
        "your_client_id_here",
        "your_client_secret_here",
        "your_google_client_id_here",
    }
)


class CompanionConfig(BaseSettings):
    """Glass Companion configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_scopes: str = DEFAULT_STRAVA_SCOPES
    google_client_id: str = ""
    google_scopes: str = DEFAULT_GOOGLE_SCOPES
    app_scheme: str = "glasscompanion"
    storage_dir: str = "~/.glass_companion"
    storage_key: str = ""
    http_timeout_seconds: float = 30.0
    token_refresh_skew_seconds: int = 120
    log_level: str = "INFO"

    @field_validator("storage_key")
    @classmethod
    def validate_storage_key(cls, value: str) -> str:
        """Reject keys Fernet cannot use; an empty key is allowed until storage is opened."""
        if value:
            try:
                Fernet(value.encode("utf-8"))
            except ValueError as exc:
                raise ValueError(
                    "STORAGE_KEY must be a urlsafe base64-encoded 32-byte key. "
                    "Run 'glass-companion-setup' to generate one."
                ) from exc
        return value

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_dir).expanduser()


def is_configured(value: str | None) -> bool:
    """Check that a credential is set and is not a template placeholder."""
    return value is not None and value.strip() not in PLACEHOLDER_VALUES


def load_config() -> CompanionConfig:
    """Load configuration from .env file."""
    load_dotenv()
    return CompanionConfig()


def configure_logging(config: CompanionConfig) -> None:
    """Attach a stderr handler to the package logger at the configured level."""
    logger = logging.getLogger("glass_companion")
    logger.setLevel(config.log_level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
