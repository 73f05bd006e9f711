"""Generic OAuth session manager shared by the Strava and Google flows.

One manager owns one provider's session:

1. ``begin_authorization`` opens the provider's consent page in the system browser.
2. The OS hands the redirect back to ``handle_redirect``, which checks the
   anti-forgery state (PKCE providers) and exchanges the code for tokens.
3. Tokens and identity fields are persisted in the encrypted credential store
   and the session state is republished.

Failures during a flow never raise; they are reported through
``SessionState.error`` with ``is_loading`` reset.
"""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from .pkce import PKCEParameters, generate_state
from .providers import ProviderConfig
from .session import SessionState, SessionStatePublisher, SessionStateView
from .storage import (
    CredentialStore,
    PendingAuthorization,
    StorageError,
    StoredCredentialRecord,
)
from .transfer import CredentialBundle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
TOKEN_REFRESH_SKEW_SECONDS = 120

STATE_MISMATCH_ERROR = "Invalid state parameter - possible security issue"

# Status codes with which a token endpoint rejects a refresh token for good.
REJECTED_REFRESH_STATUSES = frozenset({400, 401})


class TokenExchangeError(Exception):
    """A token or profile request failed; the message is shown to the user."""


def _query_value(query: Mapping[str, list[str]], name: str) -> str | None:
    values = query.get(name)
    return values[0] if values else None


class OAuthSessionManager:
    """Drives one provider's authorization flow and owns its session state."""

    def __init__(
        self,
        provider: ProviderConfig,
        store: CredentialStore,
        *,
        opener: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], float] = time.time,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        refresh_skew: int = TOKEN_REFRESH_SKEW_SECONDS,
    ) -> None:
        self.provider = provider
        self.store = store
        self._opener = opener
        self._clock = clock
        self._timeout = timeout
        self._refresh_skew = refresh_skew
        self._publisher = SessionStatePublisher()
        self._pkce: PKCEParameters | None = None

    @property
    def state(self) -> SessionStateView:
        return self._publisher.view()

    def _now(self) -> int:
        return int(self._clock())

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _publish(self, state: SessionState) -> None:
        self._publisher.publish(state)

    def _set_loading(self) -> None:
        current = self._publisher.value
        self._publish(
            SessionState(
                is_authenticated=current.is_authenticated,
                primary_identifier=current.primary_identifier,
                display_name=current.display_name,
                profile=current.profile,
                is_loading=True,
            )
        )

    def _fail(self, message: str) -> None:
        """Stop loading and surface ``message``, keeping whatever session was current."""
        logger.warning("%s authorization failed: %s", self.provider.name, message)
        current = self._publisher.value
        self._publish(
            SessionState(
                is_authenticated=current.is_authenticated,
                primary_identifier=current.primary_identifier,
                display_name=current.display_name,
                profile=current.profile,
                is_loading=False,
                error=message,
            )
        )

    def _session_from_identity(self, identity: Mapping[str, str]) -> SessionState:
        primary = identity.get(self.provider.primary_identity_key)
        if primary is None:
            logger.warning(
                "%s credentials have no %s; treating as signed out",
                self.provider.name,
                self.provider.primary_identity_key,
            )
            return SessionState()
        skip = {self.provider.primary_identity_key, self.provider.display_name_key}
        return SessionState(
            is_authenticated=True,
            primary_identifier=primary,
            display_name=identity.get(self.provider.display_name_key),
            profile={
                key: identity.get(key) for key in self.provider.identity_keys if key not in skip
            },
        )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------
    async def initialize(self) -> SessionState:
        """Rebuild session state from stored credentials, refreshing if expired."""
        try:
            record = self.store.load()
        except StorageError:
            logger.exception("Could not read stored %s credentials", self.provider.name)
            self._publish(SessionState(error="Stored credentials could not be read"))
            return self._publisher.value

        if record.is_empty:
            self._publish(SessionState())
        elif not record.is_expired(self._now()):
            self._publish(self._session_from_identity(record.identity))
        else:
            logger.info("%s access token expired; refreshing", self.provider.name)
            await self.refresh()
        return self._publisher.value

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------
    def build_authorization_url(
        self, state: str | None = None, code_challenge: str | None = None
    ) -> str:
        """Generate the provider's authorization URL."""
        params = {
            "client_id": self.provider.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "response_type": "code",
            "scope": self.provider.scope,
        }
        if state is not None:
            params["state"] = state
        if code_challenge is not None:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        params.update(self.provider.extra_authorize_params)
        return f"{self.provider.authorize_url}?{urlencode(params)}"

    def begin_authorization(self) -> None:
        """Open the provider's consent page in the external browser."""
        state = None
        challenge = None
        if self.provider.use_pkce:
            self._pkce = PKCEParameters.generate()
            state = generate_state()
            challenge = self._pkce.challenge
            try:
                self.store.save_pending(
                    PendingAuthorization(state=state, code_verifier=self._pkce.verifier)
                )
            except StorageError as exc:
                self._fail(f"Error: {exc}")
                return

        url = self.build_authorization_url(state=state, code_challenge=challenge)
        self._set_loading()
        logger.info("Starting %s authorization", self.provider.name)
        try:
            self._opener(url)
        except Exception as exc:
            logger.exception("Could not open the %s consent page", self.provider.name)
            self._fail(f"Error: {exc}")

    def matches_redirect(self, uri: str) -> bool:
        """Whether ``uri`` is addressed to this provider's redirect URI."""
        parts = urlsplit(uri)
        expected = urlsplit(self.provider.redirect_uri)
        return (parts.scheme, parts.netloc, parts.path.rstrip("/")) == (
            expected.scheme,
            expected.netloc,
            expected.path.rstrip("/"),
        )

    async def handle_redirect(self, uri: str) -> bool:
        """Handle the OAuth redirect; True means the code exchange succeeded."""
        query = parse_qs(urlsplit(uri).query)
        code = _query_value(query, "code")
        state = _query_value(query, "state")
        error = _query_value(query, "error")

        verifier = None
        if self.provider.use_pkce:
            try:
                pending = self.store.load_pending()
            except StorageError:
                logger.exception("Could not read pending %s authorization", self.provider.name)
                pending = PendingAuthorization()
            # A forged redirect must not disturb the flow that is actually in progress.
            if pending.state is None or state != pending.state:
                self._fail(STATE_MISMATCH_ERROR)
                return False
            verifier = pending.code_verifier
            if verifier is None and self._pkce is not None:
                verifier = self._pkce.verifier

        if error is not None:
            self._discard_pending(state)
            self._fail(f"Authentication failed: {error}")
            return False

        if code is not None:
            # Consumed before the exchange awaits, so a flow begun meanwhile stays pending.
            self._discard_pending(state)
            return await self.exchange_code(code, verifier)

        return False

    def _discard_pending(self, state: str | None) -> None:
        """Forget the pending flow identified by ``state`` unless a newer one replaced it."""
        if not self.provider.use_pkce or state is None:
            return
        try:
            if self.store.clear_pending(state):
                self._pkce = None
        except StorageError:
            logger.exception("Could not clear pending %s authorization", self.provider.name)

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------
    async def _fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> Mapping[str, str]:
        assert self.provider.userinfo_url is not None
        assert self.provider.parse_userinfo is not None
        response = await client.get(
            self.provider.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not response.is_success:
            raise TokenExchangeError(f"Failed to fetch profile: {response.status_code}")
        return self.provider.parse_userinfo(response.json())

    async def exchange_code(self, code: str, verifier: str | None = None) -> bool:
        """Exchange an authorization code for tokens and persist them.

        Nothing is written unless the token response (and, for providers that
        need it, the profile request) succeeded.
        """
        data = {
            "client_id": self.provider.client_id,
            "code": code,
            "grant_type": "authorization_code",
        }
        if self.provider.client_secret:
            data["client_secret"] = self.provider.client_secret
        if self.provider.use_pkce:
            data["redirect_uri"] = self.provider.redirect_uri
            data["code_verifier"] = verifier or ""

        try:
            async with self._http_client() as client:
                response = await client.post(self.provider.token_url, data=data)
                if not response.is_success:
                    raise TokenExchangeError(f"Failed to exchange code: {response.status_code}")

                grant = self.provider.parse_token_response(response.json(), self._now())
                identity = grant.identity
                if self.provider.requires_profile_fetch:
                    identity = await self._fetch_profile(client, grant.access_token)
                elif identity is None:
                    raise ValueError("token response did not include the account profile")

            record = StoredCredentialRecord(
                access_token=grant.access_token,
                refresh_token=grant.refresh_token,
                expires_at=grant.expires_at,
                identity=dict(identity),
            )
            await asyncio.to_thread(self.store.save, record)
        except TokenExchangeError as exc:
            self._fail(str(exc))
            return False
        except (httpx.HTTPError, ValueError, StorageError) as exc:
            logger.exception("Error exchanging %s code for token", self.provider.name)
            self._fail(f"Error: {exc}")
            return False
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error exchanging %s code", self.provider.name)
            self._fail(f"Error: {exc}")
            return False

        self._publish(self._session_from_identity(record.identity))
        logger.info("%s authorization complete", self.provider.name)
        return True

    async def refresh(self) -> bool:
        """Exchange the stored refresh token for a new access token.

        On failure the session falls back to unauthenticated. Credentials are
        deleted only when the provider rejects the refresh token outright.
        """
        try:
            record = self.store.load()
        except StorageError:
            logger.exception("Could not read stored %s credentials", self.provider.name)
            self._publish(SessionState(error="Stored credentials could not be read"))
            return False

        if record.is_empty or record.refresh_token is None:
            self._publish(SessionState())
            return False

        self._set_loading()
        data = {
            "client_id": self.provider.client_id,
            "grant_type": "refresh_token",
            "refresh_token": record.refresh_token,
        }
        if self.provider.client_secret:
            data["client_secret"] = self.provider.client_secret

        try:
            async with self._http_client() as client:
                response = await client.post(self.provider.token_url, data=data)
            if response.status_code in REJECTED_REFRESH_STATUSES:
                await asyncio.to_thread(self.store.clear)
                raise TokenExchangeError(f"Token refresh failed: {response.status_code}")
            if not response.is_success:
                raise TokenExchangeError(f"Token refresh failed: {response.status_code}")

            grant = self.provider.parse_token_response(response.json(), self._now())
            refreshed = StoredCredentialRecord(
                access_token=grant.access_token,
                refresh_token=grant.refresh_token or record.refresh_token,
                expires_at=grant.expires_at,
                identity=dict(grant.identity or record.identity),
            )
            await asyncio.to_thread(self.store.save, refreshed)
        except TokenExchangeError as exc:
            logger.warning("%s: %s", self.provider.name, exc)
            self._publish(SessionState(error=str(exc)))
            return False
        except (httpx.HTTPError, ValueError, StorageError) as exc:
            logger.exception("Error refreshing %s token", self.provider.name)
            self._publish(SessionState(error=f"Token refresh failed: {exc}"))
            return False

        self._publish(self._session_from_identity(refreshed.identity))
        logger.info("%s access token refreshed", self.provider.name)
        return True

    async def ensure_active(self) -> bool:
        """Refresh the access token if it is close to expiry."""
        record = self.store.load()
        if record.is_empty:
            return False
        if record.expires_at - self._refresh_skew > self._now():
            return True
        return await self.refresh()

    # ------------------------------------------------------------------
    # Credential access
    # ------------------------------------------------------------------
    def get_access_token(self) -> str | None:
        """Current access token for API calls, or None when missing or expired."""
        record = self.store.load()
        if record.is_empty or record.is_expired(self._now()):
            return None
        return record.access_token

    def export_for_transfer(self) -> CredentialBundle | None:
        """Build a fresh credential bundle for the Glass transport or QR code."""
        record = self.store.load()
        if record.access_token is None:
            return None
        if self.provider.export_requires_refresh_token and record.refresh_token is None:
            return None
        return CredentialBundle(
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_at=record.expires_at,
            identifiers={
                short_key: record.identity.get(identity_key, "")
                for short_key, identity_key in self.provider.export_fields.items()
            },
        )

    def sign_out(self) -> None:
        """Delete all stored credentials and reset the session."""
        self._pkce = None
        try:
            self.store.clear()
        except StorageError:
            logger.exception("Could not delete stored %s credentials", self.provider.name)
        self._publish(SessionState())
        logger.info("Signed out of %s", self.provider.name)
