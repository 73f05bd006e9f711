"""Session tools for the Glass Companion MCP server.

These tools drive the phone-side OAuth flow headlessly: start authorization,
deliver the redirect the browser produced, inspect the session, export the
Glass credential bundle and sign out.
"""

from datetime import UTC, datetime
from typing import Annotated, Literal

from fastmcp import Context

from ..companion import Companion
from ..manager import OAuthSessionManager
from ..response_builder import ResponseBuilder

ProviderName = Literal["strava", "google"]


def _resolve(ctx: Context | None, provider: str) -> tuple[Companion, OAuthSessionManager | None]:
    assert ctx is not None
    companion: Companion = ctx.get_state("companion")
    try:
        return companion, companion.manager(provider)
    except KeyError:
        return companion, None


def _unknown_provider(companion: Companion, provider: str) -> str:
    return ResponseBuilder.build_error_response(
        f"Provider '{provider}' is not configured",
        error_type="not_found",
        suggestions=[f"Configured providers: {', '.join(companion.providers) or 'none'}"],
    )


async def begin_authorization(
    provider: Annotated[ProviderName, "OAuth provider to sign in with"],
    ctx: Context | None = None,
) -> str:
    """Open the provider's sign-in page in the system browser.

    After consenting, the browser redirects to the app scheme. Pass that
    redirect URI to complete_authorization.
    """
    companion, manager = _resolve(ctx, provider)
    if manager is None:
        return _unknown_provider(companion, provider)

    manager.begin_authorization()
    state = manager.state.value
    if state.error:
        return ResponseBuilder.build_error_response(state.error, error_type="auth_failed")
    return ResponseBuilder.build_response(
        {"redirect_uri": manager.provider.redirect_uri, "session": state.as_public_dict()},
        provider=provider,
    )


async def complete_authorization(
    redirect_uri: Annotated[str, "Full redirect URI received from the browser"],
    ctx: Context | None = None,
) -> str:
    """Finish sign-in by exchanging the code carried in the redirect URI."""
    assert ctx is not None
    companion: Companion = ctx.get_state("companion")

    target = companion.route(redirect_uri)
    if target is None:
        return ResponseBuilder.build_error_response(
            "Redirect URI does not belong to any configured provider",
            error_type="not_found",
        )

    manager = companion.manager(target)
    if not await manager.handle_redirect(redirect_uri):
        state = manager.state.value
        return ResponseBuilder.build_error_response(
            state.error or "No authorization code in redirect URI",
            error_type="auth_failed",
            suggestions=["Run begin_authorization again to restart the sign-in flow"],
        )
    return ResponseBuilder.build_response(
        {"session": manager.state.value.as_public_dict()}, provider=target
    )


async def get_session_state(
    provider: Annotated[ProviderName, "OAuth provider"],
    ctx: Context | None = None,
) -> str:
    """Get the current authentication state for a provider."""
    companion, manager = _resolve(ctx, provider)
    if manager is None:
        return _unknown_provider(companion, provider)
    return ResponseBuilder.build_response(
        {"session": manager.state.value.as_public_dict()}, provider=provider
    )


async def export_credentials(
    provider: Annotated[ProviderName, "OAuth provider"],
    output_format: Annotated[
        Literal["payload", "qr"],
        "'payload' for the transport JSON object, 'qr' for the compact QR-code text",
    ] = "payload",
    ctx: Context | None = None,
) -> str:
    """Export the credential bundle that is sent to Glass.

    Returns the same schema the Bluetooth transport and QR code carry:
    {"at": access token, "rt": refresh token, "ea": expiry epoch seconds, ...identifiers}
    """
    companion, manager = _resolve(ctx, provider)
    if manager is None:
        return _unknown_provider(companion, provider)

    bundle = manager.export_for_transfer()
    if bundle is None:
        return ResponseBuilder.build_error_response(
            f"No exportable {provider} credentials",
            error_type="not_authenticated",
            suggestions=[f"Sign in with begin_authorization(provider='{provider}')"],
        )

    data: dict[str, object] = {
        "expires_at": datetime.fromtimestamp(bundle.expires_at, UTC),
    }
    if output_format == "qr":
        data["qr"] = bundle.to_json()
    else:
        data["payload"] = bundle.to_payload()
    return ResponseBuilder.build_response(data, provider=provider)


async def sign_out(
    provider: Annotated[ProviderName, "OAuth provider"],
    ctx: Context | None = None,
) -> str:
    """Sign out and delete all stored credentials for a provider."""
    companion, manager = _resolve(ctx, provider)
    if manager is None:
        return _unknown_provider(companion, provider)

    manager.sign_out()
    return ResponseBuilder.build_response(
        {"session": manager.state.value.as_public_dict()}, provider=provider
    )
