"""Login commands -- run a browser login or inspect provider discovery.

``oidclogin login`` loads the client file, starts the loopback listener,
opens the provider's login page and waits for the redirect. On success the
access token (and optionally the user's claims) is printed to stdout; the
token is never written to disk.

``oidclogin discover`` fetches a provider's discovery document and prints
its endpoints, which helps when filling in a client file by hand.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional, Sequence

import typer

from oidclogin.exceptions import ConfigurationError, OidcError
from oidclogin.exit_codes import EXIT_CONFIG_ERROR, EXIT_TIMEOUT
from oidclogin.models import AuthState, ClientData, UserInfo
from oidclogin.output import error, format_response, notice, success, suggest
from oidclogin.providers import ProviderAdapter, discover


class _PrintedLoginPage:
    """Provider wrapper that prints the login URL instead of opening a browser."""

    def __init__(self, inner: ProviderAdapter) -> None:
        self._inner = inner

    @property
    def client_data(self) -> Optional[ClientData]:
        return self._inner.client_data

    @client_data.setter
    def client_data(self, value: Optional[ClientData]) -> None:
        self._inner.client_data = value

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    def open_login_page(self, scopes: Sequence[str], redirect_uri: str) -> None:
        url = self._inner.build_authorization_url(scopes, redirect_uri)
        notice("Open this URL in a browser to log in:")
        notice(url)


def login_command(
    ctx: typer.Context,
    timeout: float = typer.Option(
        300.0, "--timeout", "-t", help="Seconds to wait for the login to finish."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the login URL instead of opening a browser."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable). Defaults to openid profile email."
    ),
    user_info: bool = typer.Option(
        False, "--user-info", "-u", help="Also fetch and print the user's claims."
    ),
) -> None:
    """Log in through the browser and print the access token.

    Raises:
        typer.Exit: With code 2 if the client file is missing or invalid,
            code 4 on timeout, or the failing error's exit code.

    Example::

        oidclogin login
        oidclogin login --no-browser --timeout 120
        oidclogin --json login --user-info
    """
    from oidclogin.config import resolve_client_path

    path = resolve_client_path(ctx.obj.get("config") if ctx.obj else None)
    if not path.is_file():
        error(f"Client configuration not found at {path}")
        suggest("Create one with: oidclogin config init --client-id <id> --discovery-url <url>")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        data = asyncio.run(_login(path, timeout, no_browser, scope, user_info))
    except OidcError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except asyncio.TimeoutError:
        error(f"No redirect received within {timeout:g} seconds")
        raise typer.Exit(code=EXIT_TIMEOUT) from None

    success("Login completed.")
    format_response(data)


async def _login(
    path: Path,
    timeout: float,
    no_browser: bool,
    scopes: Optional[list[str]],
    fetch_user: bool,
) -> dict[str, Any]:
    from oidclogin.auth import AuthOrchestrator, JsonFileClientDataLoader

    orchestrator = AuthOrchestrator(
        loader=JsonFileClientDataLoader(path), scopes=scopes or None
    )
    failures: list[OidcError] = []
    orchestrator.login_failed.subscribe(failures.append)

    if not await orchestrator.initialize():
        raise ConfigurationError(f"Cannot use the client configuration at {path}")
    if no_browser and orchestrator.provider is not None:
        orchestrator.provider = _PrintedLoginPage(orchestrator.provider)

    try:
        if not await orchestrator.open_login_page():
            raise _last_failure(failures)
        state = await orchestrator.wait_for_completion(timeout)
        if state != AuthState.AUTHENTICATED:
            raise _last_failure(failures)

        result: dict[str, Any] = {"access_token": orchestrator.access_token}
        if fetch_user:
            user: Optional[UserInfo] = await orchestrator.get_user_data()
            if user is not None:
                result["user"] = user.model_dump(mode="json", exclude_none=True)
        return result
    finally:
        orchestrator.cleanup()


def _last_failure(failures: list[OidcError]) -> OidcError:
    return failures[-1] if failures else OidcError("Login did not complete")


def discover_command(
    url: str = typer.Argument(
        help="Issuer URL or full discovery document URL."
    ),
) -> None:
    """Print the endpoints from a provider's discovery document.

    Example::

        oidclogin discover https://accounts.example.com
        oidclogin --json discover https://accounts.example.com/.well-known/openid-configuration
    """
    discovery_url = discovery_url_for(url)
    try:
        doc = asyncio.run(discover(discovery_url))
    except OidcError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(doc.model_dump(mode="json", exclude_none=True))


def discovery_url_for(url: str) -> str:
    """Append the well-known path to an issuer URL unless already present."""
    if url.rstrip("/").endswith("/.well-known/openid-configuration"):
        return url
    return url.rstrip("/") + "/.well-known/openid-configuration"
