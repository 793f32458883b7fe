"""Config commands -- create and inspect the client configuration file.

Provides the ``oidclogin config`` sub-command group. The client file
(:class:`~oidclogin.models.ClientData` as JSON) lives at
``<config_dir>/client.json`` unless ``--config`` or ``OIDCLOGIN_CONFIG``
points elsewhere. Client secrets are never written to it; only their
source (``env:VAR``, ``file:/path`` or ``prompt``) is.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from oidclogin.exceptions import OidcError
from oidclogin.exit_codes import EXIT_CONFIG_ERROR
from oidclogin.models import AuthorizationFlow, ClientData
from oidclogin.output import error, format_response, info, success, suggest

config_app = typer.Typer(no_args_is_help=True)


def _client_path(ctx: typer.Context) -> Path:
    from oidclogin.config import resolve_client_path

    parent = ctx.find_root()
    override = parent.obj.get("config") if parent.obj else None
    return resolve_client_path(override)


@config_app.command("init")
def config_init(
    ctx: typer.Context,
    client_id: str = typer.Option(..., "--client-id", help="Client ID registered with the provider."),
    discovery_url: Optional[str] = typer.Option(
        None, "--discovery-url", help="Provider discovery document URL."
    ),
    authorization_endpoint: str = typer.Option(
        "", "--authorization-endpoint", help="Authorization endpoint (if not discovered)."
    ),
    token_endpoint: str = typer.Option(
        "", "--token-endpoint", help="Token endpoint (if not discovered)."
    ),
    userinfo_endpoint: Optional[str] = typer.Option(
        None, "--userinfo-endpoint", help="UserInfo endpoint (if not discovered)."
    ),
    flow: AuthorizationFlow = typer.Option(
        AuthorizationFlow.AUTHORIZATION_CODE, "--flow", help="OIDC flow to use."
    ),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Where to read the client secret: env:VAR, file:/path, or prompt.",
    ),
    no_pkce: bool = typer.Option(False, "--no-pkce", help="Do not send a PKCE challenge."),
    port: int = typer.Option(0, "--port", help="Loopback port for the redirect (0 = any free port)."),
    redirect_path: str = typer.Option("/callback", "--redirect-path", help="Redirect path."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite without asking."),
) -> None:
    """Write a new client configuration file.

    Either ``--discovery-url`` or both ``--authorization-endpoint`` and
    ``--token-endpoint`` must be given.

    Example::

        oidclogin config init --client-id my-app \\
            --discovery-url https://idp.example.com/.well-known/openid-configuration
        oidclogin config init --client-id my-app --flow implicit \\
            --authorization-endpoint https://idp.example.com/authorize --port 8400
    """
    from oidclogin.config import save_client_data

    if not discovery_url and not (authorization_endpoint and token_endpoint):
        error("Provide --discovery-url, or both --authorization-endpoint and --token-endpoint.")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        client_data = ClientData.model_validate(
            {
                "client_id": client_id,
                "discovery_url": discovery_url,
                "authorization_endpoint": authorization_endpoint,
                "token_endpoint": token_endpoint,
                "userinfo_endpoint": userinfo_endpoint,
                "flow": flow,
                "use_pkce": not no_pkce,
                "redirect": {
                    "port": port,
                    "path": redirect_path,
                    "capture_fragment": flow == AuthorizationFlow.IMPLICIT,
                },
            }
        )
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    path = _client_path(ctx)
    if path.exists() and not force:
        if not typer.confirm(f"Overwrite {path}?"):
            info("Cancelled.")
            raise typer.Exit()

    save_client_data(client_data, path, client_secret_source)
    success(f"Client configuration written to {path}")
    if port == 0:
        suggest(
            "The redirect port changes on every login; register a fixed --port "
            "if your provider requires an exact redirect URI."
        )


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the client configuration file.

    The secret source is shown as written; an inline ``client_secret`` is
    masked.

    Example::

        oidclogin config show
        oidclogin --json config show
    """
    from oidclogin.config import read_client_file

    path = _client_path(ctx)
    try:
        raw = read_client_file(path)
        secret_source = raw.pop("client_secret_source", None)
        client_data = ClientData.model_validate(raw)
    except OidcError as exc:
        error(str(exc))
        suggest("Create one with: oidclogin config init --client-id <id> --discovery-url <url>")
        raise typer.Exit(code=exc.exit_code) from None
    except ValidationError as exc:
        error(f"Invalid client configuration at {path}: {exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    info(f"Client file: {path}")
    data = client_data.model_dump(mode="json", exclude_none=True)
    if secret_source:
        data["client_secret_source"] = secret_source
    format_response(data)
