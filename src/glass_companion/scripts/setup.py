"""Local configuration wizard for Glass Companion."""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from getpass import getpass
from pathlib import Path

from cryptography.fernet import Fernet
from dotenv import dotenv_values, set_key

from ..config import DEFAULT_GOOGLE_SCOPES, DEFAULT_STRAVA_SCOPES, is_configured
from ..providers import GOOGLE, STRAVA


def main() -> None:
    """Run the interactive setup wizard for local Glass Companion configuration."""
    print("=" * 60)
    print("Glass Companion - Local Setup Wizard")
    print("=" * 60)
    print()
    print("This wizard writes OAuth client settings and a storage key to .env.")
    print("It will copy .env.example to .env (if needed) and update the relevant settings.")
    print()

    providers = _prompt_providers()
    if not providers:
        print("No provider selected. Exiting.")
        return

    env_path = _ensure_env_file()
    existing = dotenv_values(str(env_path)) if env_path.exists() else {}

    scheme = (
        _prompt_optional(
            "App redirect scheme (APP_SCHEME)",
            existing.get("APP_SCHEME") or "glasscompanion",
        )
        or "glasscompanion"
    )

    if STRAVA in providers:
        _configure_strava(env_path, existing, scheme)

    if GOOGLE in providers:
        _configure_google(env_path, existing, scheme)

    _configure_storage(env_path, existing)
    _set_keys(env_path, (("APP_SCHEME", scheme),))

    print("=" * 60)
    print("Configuration complete!")
    print(f"Updated .env for provider(s): {' & '.join(sorted(providers))}")
    print("=" * 60)


def _prompt_providers() -> set[str]:
    """Prompt the user to choose which provider(s) to configure."""
    choices = {
        "1": {STRAVA},
        "2": {GOOGLE},
        "3": {STRAVA, GOOGLE},
    }
    print("Select OAuth provider to configure:")
    print("  1) strava  (fitness platform, client secret flow)")
    print("  2) google  (identity provider, PKCE flow)")
    print("  3) both")
    print()

    while True:
        choice = input("Enter choice [1-3]: ").strip()
        if choice in choices:
            return choices[choice]
        print("Invalid selection. Please enter 1, 2, or 3.")


def _prompt_required(prompt_text: str, default: str | None = None) -> str:
    """Prompt for a required value, offering a default if provided."""
    while True:
        prompt = f"{prompt_text}"
        if default:
            prompt += f" [{default}]"
        prompt += ": "
        value = input(prompt).strip()
        if value:
            return value
        if default:
            return default
        print("This value is required.")


def _prompt_secret(prompt_text: str, default: str | None = None) -> str:
    """Prompt for sensitive input (client secret)."""
    while True:
        prompt = f"{prompt_text}"
        if default:
            prompt += " [press Enter to keep existing]"
        prompt += ": "
        value = getpass(prompt).strip()
        if value:
            return value
        if default:
            return default
        print("This value is required.")


def _prompt_optional(prompt_text: str, default: str | None = None) -> str | None:
    """Prompt for an optional value, returning None if left blank with no default."""
    prompt = f"{prompt_text}"
    if default:
        prompt += f" [{default}]"
    prompt += ": "
    value = input(prompt).strip()
    if value:
        return value
    return default


def _ensure_env_file() -> Path:
    """Ensure .env exists, copying from .env.example if available."""
    env_path = Path.cwd() / ".env"
    example_path = Path.cwd() / ".env.example"
    if env_path.exists():
        return env_path

    if example_path.exists():
        shutil.copy(example_path, env_path)
        print(f"Created {env_path.name} from {example_path.name}")
    else:
        env_path.touch()
        print(f"Created empty {env_path.name} (no .env.example found)")
    return env_path


def _configure_strava(env_path: Path, existing: dict[str, str | None], scheme: str) -> None:
    """Prompt for Strava API application credentials."""
    print()
    print("Strava API credentials")
    print("-" * 60)
    print("Visit https://www.strava.com/settings/api and create an application if needed.")
    print(f"Use '{scheme}' as the Authorization Callback Domain (redirect {scheme}://oauth).")
    print()

    client_id = _prompt_required("Strava Client ID", existing.get("STRAVA_CLIENT_ID"))
    client_secret = _prompt_secret("Strava Client Secret", existing.get("STRAVA_CLIENT_SECRET"))
    scopes = _prompt_optional(
        "Strava scopes (STRAVA_SCOPES)",
        existing.get("STRAVA_SCOPES") or DEFAULT_STRAVA_SCOPES,
    )

    _set_keys(
        env_path,
        (
            ("STRAVA_CLIENT_ID", client_id),
            ("STRAVA_CLIENT_SECRET", client_secret),
            ("STRAVA_SCOPES", scopes),
        ),
    )
    print()
    print("✓ Strava settings saved to .env")
    print()


def _configure_google(env_path: Path, existing: dict[str, str | None], scheme: str) -> None:
    """Prompt for the Google OAuth client (installed-app type, no secret)."""
    print()
    print("Google OAuth client")
    print("-" * 60)
    print("Create an OAuth client in Google Cloud Console (Android / installed app).")
    print(f"Register the redirect URI {scheme}://google/oauth.")
    print("No client secret is needed: the sign-in flow uses PKCE.")
    print()

    client_id = _prompt_required("Google Client ID", existing.get("GOOGLE_CLIENT_ID"))
    scopes = _prompt_optional(
        "Google scopes (GOOGLE_SCOPES)",
        existing.get("GOOGLE_SCOPES") or DEFAULT_GOOGLE_SCOPES,
    )

    _set_keys(env_path, (("GOOGLE_CLIENT_ID", client_id), ("GOOGLE_SCOPES", scopes)))
    print()
    print("✓ Google settings saved to .env")
    print()


def _configure_storage(env_path: Path, existing: dict[str, str | None]) -> None:
    """Generate the credential storage key unless one is already set."""
    print()
    print("Credential storage")
    print("-" * 60)

    storage_dir = _prompt_optional(
        "Storage directory (STORAGE_DIR)",
        existing.get("STORAGE_DIR") or "~/.glass_companion",
    )
    key = existing.get("STORAGE_KEY")
    if is_configured(key):
        print("Keeping existing STORAGE_KEY (changing it makes stored tokens unreadable).")
    else:
        key = Fernet.generate_key().decode("utf-8")
        print("Generated a new STORAGE_KEY.")

    _set_keys(env_path, (("STORAGE_DIR", storage_dir), ("STORAGE_KEY", key)))
    print()


def _set_keys(env_path: Path, pairs: Iterable[tuple[str, str | None]]) -> None:
    """Persist non-empty key/value pairs to the .env file."""
    for key, value in pairs:
        if value is None:
            continue
        set_key(str(env_path), key, value)


if __name__ == "__main__":
    main()
