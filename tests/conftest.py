"""Pytest configuration and shared fixtures."""

import pytest
import respx
from cryptography.fernet import Fernet

from tests.fixtures.token_fixtures import NOW


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a fixed clock starting at NOW."""
    return FakeClock()


@pytest.fixture
def opened_urls():
    """Collect URLs the managers would open in the browser."""
    return []


@pytest.fixture
def mock_config(tmp_path):
    """Provide a Companion configuration backed by a temporary storage directory."""
    from glass_companion.config import CompanionConfig

    return CompanionConfig(
        strava_client_id="test_client_id",
        strava_client_secret="test_client_secret",
        google_client_id="test_google_client_id.apps.googleusercontent.com",
        app_scheme="glasscompanion",
        storage_dir=str(tmp_path / "store"),
        storage_key=Fernet.generate_key().decode("utf-8"),
    )


@pytest.fixture
def strava_provider(mock_config):
    from glass_companion.providers import strava_provider

    return strava_provider(mock_config)


@pytest.fixture
def google_provider(mock_config):
    from glass_companion.providers import google_provider

    return google_provider(mock_config)


@pytest.fixture
def strava_store(mock_config, strava_provider):
    from glass_companion.storage import open_credential_store

    return open_credential_store(mock_config, strava_provider)


@pytest.fixture
def google_store(mock_config, google_provider):
    from glass_companion.storage import open_credential_store

    return open_credential_store(mock_config, google_provider)


@pytest.fixture
def strava_manager(strava_provider, strava_store, clock, opened_urls):
    """Provide a Strava session manager that records opened URLs."""
    from glass_companion.manager import OAuthSessionManager

    return OAuthSessionManager(
        strava_provider, strava_store, opener=opened_urls.append, clock=clock
    )


@pytest.fixture
def google_manager(google_provider, google_store, clock, opened_urls):
    """Provide a Google session manager that records opened URLs."""
    from glass_companion.manager import OAuthSessionManager

    return OAuthSessionManager(
        google_provider, google_store, opener=opened_urls.append, clock=clock
    )


@pytest.fixture
def respx_mock():
    """Provide a respx mock router for HTTP requests."""
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def stub_oauth(respx_mock):
    """Provide a stubbed pair of OAuth providers."""
    from tests.stubs.oauth_stub import OAuthProviderStubber

    return OAuthProviderStubber(respx_mock)
