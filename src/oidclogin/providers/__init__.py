"""Identity provider adapters, one per OIDC flow variant.

The variants share the :class:`ProviderAdapter` protocol rather than a base
class. Use :func:`create_provider` to get the adapter for a flow tag::

    from oidclogin.models import AuthorizationFlow
    from oidclogin.providers import create_provider

    provider = create_provider(AuthorizationFlow.IMPLICIT, client_data)
"""

from __future__ import annotations

from typing import Callable, Optional

import httpx

from oidclogin.exceptions import ConfigurationError
from oidclogin.models import AuthorizationFlow, ClientData
from oidclogin.providers.authorization_code import AuthorizationCodeProvider
from oidclogin.providers.base import ProviderAdapter, generate_pkce_pair
from oidclogin.providers.discovery import discover, resolve_endpoints
from oidclogin.providers.implicit import ImplicitProvider

_PROVIDERS: dict[AuthorizationFlow, Callable[..., ProviderAdapter]] = {
    AuthorizationFlow.AUTHORIZATION_CODE: AuthorizationCodeProvider,
    AuthorizationFlow.IMPLICIT: ImplicitProvider,
}


def create_provider(
    flow: AuthorizationFlow,
    client_data: Optional[ClientData] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderAdapter:
    """Return a new adapter for *flow*.

    Raises:
        ConfigurationError: If no adapter handles *flow*.
    """
    try:
        factory = _PROVIDERS.get(AuthorizationFlow(flow))
    except ValueError:
        factory = None
    if factory is None:
        raise ConfigurationError(f"No provider adapter for flow '{flow}'")
    return factory(client_data=client_data, transport=transport)


__all__ = [
    "AuthorizationCodeProvider",
    "ImplicitProvider",
    "ProviderAdapter",
    "create_provider",
    "discover",
    "generate_pkce_pair",
    "resolve_endpoints",
]
