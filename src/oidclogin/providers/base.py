"""Provider adapter contract and the helpers both flow variants share.

This module defines:

- :class:`ProviderAdapter` -- the structural protocol the orchestrator talks
  to. :class:`~oidclogin.providers.authorization_code.AuthorizationCodeProvider`
  and :class:`~oidclogin.providers.implicit.ImplicitProvider` both satisfy it
  without inheriting from a common base; the orchestrator picks its branch
  from :attr:`ProviderAdapter.flow`, never from the concrete class.
- Free functions for the pieces the variants have in common: building the
  authorization URL, opening the browser, inspecting redirect parameters,
  and fetching user info.

See Also:
    :func:`oidclogin.providers.create_provider` for selecting a variant by
    flow tag.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import threading
import webbrowser
from typing import Any, Mapping, Optional, Protocol, Sequence
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from oidclogin.exceptions import AuthError, ConfigurationError, NetworkError, RedirectError
from oidclogin.models import AuthorizationFlow, ClientData, UserInfo

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0


class ProviderAdapter(Protocol):
    """What the orchestrator needs from an identity provider variant."""

    flow: AuthorizationFlow
    client_data: Optional[ClientData]

    def build_authorization_url(self, scopes: Sequence[str], redirect_uri: str) -> str: ...

    def open_login_page(self, scopes: Sequence[str], redirect_uri: str) -> None: ...

    def parameters_contain_error(self, params: Mapping[str, str]) -> tuple[bool, str]: ...

    def get_authorization_code(self, params: Mapping[str, str]) -> str: ...

    def get_access_token(self, params: Mapping[str, str]) -> str: ...

    async def get_access_token_from_code(self, code: str, redirect_uri: str) -> str: ...

    async def get_user_info(self, access_token: str) -> UserInfo: ...


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def require_client_data(client_data: Optional[ClientData]) -> ClientData:
    """Return *client_data* or raise if the orchestrator never supplied it."""
    if client_data is None:
        raise ConfigurationError("Provider has no client data; load it before logging in")
    return client_data


def authorization_url(
    client_data: ClientData,
    response_type: str,
    scopes: Sequence[str],
    redirect_uri: str,
    extra: Optional[Mapping[str, str]] = None,
) -> str:
    """Build the provider's authorization URL for one login attempt.

    Args:
        client_data: Client registration with ``authorization_endpoint``.
        response_type: ``"code"`` or ``"token"``.
        scopes: Scopes joined into the space-separated ``scope`` parameter.
        redirect_uri: URI the listener is waiting on.
        extra: Additional query parameters (PKCE challenge, etc.).

    Raises:
        ConfigurationError: If the authorization endpoint is not configured.
    """
    if not client_data.authorization_endpoint:
        raise ConfigurationError("authorization_endpoint is required to open the login page")

    params: dict[str, str] = {
        "response_type": response_type,
        "client_id": client_data.client_id,
        "redirect_uri": redirect_uri,
    }
    if scopes:
        params["scope"] = " ".join(scopes)
    if extra:
        params.update(extra)

    endpoint = client_data.authorization_endpoint
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


def open_in_browser(url: str) -> None:
    """Open *url* in the system browser without blocking the caller."""
    logger.info("Opening login page in the system browser")
    logger.debug("Authorization URL: %s", url)

    # Open browser in a separate thread to avoid blocking
    def open_browser() -> None:
        if not webbrowser.open(url):
            logger.warning("Could not launch a browser; open this URL manually: %s", url)

    threading.Thread(target=open_browser, name="oidclogin-browser", daemon=True).start()


def parameters_contain_error(params: Mapping[str, str]) -> tuple[bool, str]:
    """Inspect redirect parameters for an OAuth ``error``.

    Returns:
        ``(True, message)`` when ``error`` is present, where *message*
        combines the error code and the ``error_description`` if the provider
        sent one; ``(False, "")`` otherwise. Values are expected already
        URL-decoded, as the listener delivers them.
    """
    if "error" not in params:
        return False, ""
    message = params["error"] or "unknown_error"
    description = params.get("error_description")
    if description:
        message = f"{message}: {description}"
    return True, message


def require_parameter(params: Mapping[str, str], name: str) -> str:
    """Return the non-empty redirect parameter *name* or raise RedirectError."""
    value = params.get(name)
    if not value:
        raise RedirectError(f"Redirect did not contain '{name}'")
    return value


def http_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> httpx.AsyncClient:
    """Create the AsyncClient used for one provider request."""
    return httpx.AsyncClient(
        transport=transport,
        timeout=timeout,
        headers={"Accept": "application/json"},
    )


async def fetch_user_info(
    client_data: ClientData,
    access_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> UserInfo:
    """Fetch claims from the userinfo endpoint with a bearer token.

    Raises:
        ConfigurationError: If no userinfo endpoint is configured.
        AuthError: If the provider answers with an HTTP error status (the
            status code is kept on the exception) or a body that is not a
            JSON object.
        NetworkError: On transport failures.
    """
    if not client_data.userinfo_endpoint:
        raise ConfigurationError("userinfo_endpoint is required to fetch user info")

    try:
        async with http_client(transport, timeout) as client:
            response = await client.get(
                client_data.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "Userinfo endpoint returned status %s", exc.response.status_code
        )
        raise AuthError(
            f"User info request failed with status {exc.response.status_code}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"User info request failed: {exc}") from exc

    try:
        claims: Any = response.json()
    except ValueError as exc:
        raise AuthError(
            "User info response was not valid JSON", status_code=response.status_code
        ) from exc
    if not isinstance(claims, dict):
        raise AuthError(
            "User info response was not a JSON object", status_code=response.status_code
        )
    try:
        return UserInfo.model_validate(claims)
    except ValidationError as exc:
        raise AuthError(
            f"User info response has invalid claims: {exc}", status_code=response.status_code
        ) from exc
