"""Encrypted credential persistence, one namespace per provider."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from cryptography.fernet import Fernet, InvalidToken

from .config import CompanionConfig
from .providers import ProviderConfig

logger = logging.getLogger(__name__)

KEY_ACCESS_TOKEN = "access_token"
KEY_REFRESH_TOKEN = "refresh_token"
KEY_EXPIRES_AT = "expires_at"
KEY_OAUTH_STATE = "oauth_state"
KEY_CODE_VERIFIER = "code_verifier"

PENDING_KEYS = (KEY_OAUTH_STATE, KEY_CODE_VERIFIER)


class StorageError(Exception):
    """Raised when an encrypted namespace cannot be read or written."""


class EncryptedKeyValueStore:
    """Flat string key-value namespace encrypted at rest with Fernet.

    The whole namespace is one encrypted file. Every write rewrites it through
    a temporary file and ``os.replace`` so readers see either the old or the
    new contents, never a mix.
    """

    def __init__(self, path: Path, key: str | bytes) -> None:
        if not key:
            raise ValueError(
                "A storage key is required. Run 'glass-companion-setup' to generate one."
            )
        self.path = path
        self._fernet = Fernet(key.encode("utf-8") if isinstance(key, str) else key)
        self._lock = threading.RLock()

    def _read_locked(self) -> dict[str, str]:
        try:
            token = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(self._fernet.decrypt(token))
        except InvalidToken as exc:
            raise StorageError(
                f"Unable to decrypt {self.path.name}: wrong key or tampered file"
            ) from exc
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt credential namespace {self.path.name}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Corrupt credential namespace {self.path.name}")
        return {str(k): str(v) for k, v in data.items()}

    def _write_locked(self, data: Mapping[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        token = self._fernet.encrypt(json.dumps(dict(data), sort_keys=True).encode("utf-8"))
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(token)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self.path.name}: {exc}") from exc

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read_locked().get(key)

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            data = self._read_locked()
        return {key: data[key] for key in keys if key in data}

    def update(
        self, values: Mapping[str, str] | None = None, remove: Iterable[str] = ()
    ) -> None:
        """Set and delete keys in a single atomic write."""
        with self._lock:
            data = self._read_locked()
            for key in remove:
                data.pop(key, None)
            data.update(values or {})
            self._write_locked(data)

    def remove(self, *keys: str) -> None:
        self.update(remove=keys)

    def remove_if(self, key: str, expected: str, *keys: str) -> bool:
        """Remove ``keys`` only while ``key`` still holds ``expected``."""
        with self._lock:
            data = self._read_locked()
            if data.get(key) != expected:
                return False
            for name in keys:
                data.pop(name, None)
            self._write_locked(data)
            return True

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to delete {self.path.name}: {exc}") from exc


@dataclass(frozen=True)
class StoredCredentialRecord:
    """Tokens and identity fields for one provider.

    A record without an access token means "never authenticated or signed out".
    """

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int = 0
    identity: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def is_empty(self) -> bool:
        return self.access_token is None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class PendingAuthorization:
    """Transient values that must survive the browser round trip."""

    state: str | None = None
    code_verifier: str | None = None


class CredentialStore:
    """Credential Store for a single provider namespace."""

    def __init__(self, kv: EncryptedKeyValueStore, identity_keys: Iterable[str]) -> None:
        self._kv = kv
        self.identity_keys = tuple(identity_keys)

    @property
    def _credential_keys(self) -> tuple[str, ...]:
        return (KEY_ACCESS_TOKEN, KEY_REFRESH_TOKEN, KEY_EXPIRES_AT, *self.identity_keys)

    def save(self, record: StoredCredentialRecord) -> None:
        """Overwrite the stored credentials wholesale."""
        if record.access_token is None:
            raise ValueError("Cannot save a credential record without an access token")
        unknown = set(record.identity) - set(self.identity_keys)
        if unknown:
            raise ValueError(f"Unknown identity fields: {sorted(unknown)}")

        values = {
            KEY_ACCESS_TOKEN: record.access_token,
            KEY_EXPIRES_AT: str(int(record.expires_at)),
            **record.identity,
        }
        if record.refresh_token is not None:
            values[KEY_REFRESH_TOKEN] = record.refresh_token
        self._kv.update(values, remove=self._credential_keys)
        logger.debug("Saved credentials to %s", self._kv.path.name)

    def load(self) -> StoredCredentialRecord:
        data = self._kv.get_many(self._credential_keys)
        access_token = data.get(KEY_ACCESS_TOKEN)
        if access_token is None:
            return StoredCredentialRecord()
        try:
            expires_at = int(data.get(KEY_EXPIRES_AT, "0"))
        except ValueError:
            logger.warning("Ignoring malformed expiry in %s", self._kv.path.name)
            expires_at = 0
        return StoredCredentialRecord(
            access_token=access_token,
            refresh_token=data.get(KEY_REFRESH_TOKEN),
            expires_at=expires_at,
            identity=MappingProxyType(
                {key: data[key] for key in self.identity_keys if key in data}
            ),
        )

    def clear(self) -> None:
        """Delete everything in the namespace, pending flow values included."""
        self._kv.clear()

    def save_pending(self, pending: PendingAuthorization) -> None:
        values = {}
        if pending.state is not None:
            values[KEY_OAUTH_STATE] = pending.state
        if pending.code_verifier is not None:
            values[KEY_CODE_VERIFIER] = pending.code_verifier
        self._kv.update(values, remove=PENDING_KEYS)

    def load_pending(self) -> PendingAuthorization:
        data = self._kv.get_many(PENDING_KEYS)
        return PendingAuthorization(
            state=data.get(KEY_OAUTH_STATE),
            code_verifier=data.get(KEY_CODE_VERIFIER),
        )

    def clear_pending(self, state: str | None = None) -> bool:
        """Drop the pending flow; with ``state``, only if that flow is still the pending one."""
        if state is None:
            self._kv.remove(*PENDING_KEYS)
            return True
        return self._kv.remove_if(KEY_OAUTH_STATE, state, *PENDING_KEYS)


def open_credential_store(config: CompanionConfig, provider: ProviderConfig) -> CredentialStore:
    """Open the provider's namespace under the configured storage directory."""
    path = config.storage_path / f"{provider.namespace}.enc"
    return CredentialStore(
        EncryptedKeyValueStore(path, config.storage_key),
        identity_keys=provider.identity_keys,
    )
