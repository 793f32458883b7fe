"""OpenID Connect discovery -- fill client endpoints from the provider.

:func:`discover` fetches ``/.well-known/openid-configuration`` and
:func:`resolve_endpoints` merges it into a :class:`~oidclogin.models.ClientData`.
Endpoints already present in the client data take precedence over
discovered ones, so a configuration can pin a single endpoint while
discovering the rest.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from oidclogin.exceptions import ConfigurationError, NetworkError
from oidclogin.models import ClientData, DiscoveryDocument
from oidclogin.providers.base import DEFAULT_HTTP_TIMEOUT, http_client

logger = logging.getLogger(__name__)


async def discover(
    discovery_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> DiscoveryDocument:
    """Fetch and validate an OpenID Connect discovery document.

    Args:
        discovery_url: URL to the provider's discovery document (typically
            ``https://provider/.well-known/openid-configuration``).

    Returns:
        The parsed :class:`~oidclogin.models.DiscoveryDocument`.

    Raises:
        NetworkError: If the document cannot be fetched.
        ConfigurationError: If the document is not JSON or lacks the
            authorization or token endpoint.
    """
    try:
        async with http_client(transport, timeout) as client:
            response = await client.get(discovery_url)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise NetworkError(
            f"OpenID discovery failed with status {exc.response.status_code}: "
            f"{exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"OpenID discovery failed: {exc}") from exc

    try:
        doc: Any = response.json()
        return DiscoveryDocument.model_validate(doc)
    except ValidationError as exc:
        missing = ", ".join(
            str(err["loc"][0]) for err in exc.errors() if err["type"] == "missing"
        )
        detail = f"missing {missing}" if missing else "invalid document"
        raise ConfigurationError(f"OpenID discovery document {detail}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"OpenID discovery response is not JSON: {exc}") from exc


async def resolve_endpoints(
    client_data: ClientData,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> ClientData:
    """Return *client_data* with empty endpoints filled from discovery.

    Without a ``discovery_url`` the client data is returned unchanged.
    """
    if not client_data.discovery_url:
        return client_data

    doc = await discover(client_data.discovery_url, transport, timeout)
    logger.debug("Discovered endpoints for issuer %s", doc.issuer)

    # User-set values take precedence over discovered ones.
    return client_data.model_copy(
        update={
            "authorization_endpoint": (
                client_data.authorization_endpoint or doc.authorization_endpoint
            ),
            "token_endpoint": client_data.token_endpoint or doc.token_endpoint,
            "userinfo_endpoint": client_data.userinfo_endpoint or doc.userinfo_endpoint,
        }
    )
