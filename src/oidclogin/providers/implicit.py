"""Implicit flow adapter.

The provider redirects with ``access_token`` directly, so there is no token
endpoint call. Providers put the token in the URL fragment; pair this
adapter with a listener whose ``capture_fragment`` is enabled.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

import httpx

from oidclogin.exceptions import ConfigurationError
from oidclogin.models import AuthorizationFlow, ClientData, UserInfo
from oidclogin.providers import base


class ImplicitProvider:
    """Provider adapter for the OIDC implicit flow (``response_type=token``)."""

    flow = AuthorizationFlow.IMPLICIT

    def __init__(
        self,
        client_data: Optional[ClientData] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = base.DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self.client_data = client_data
        self._transport = transport
        self._timeout = timeout

    def build_authorization_url(self, scopes: Sequence[str], redirect_uri: str) -> str:
        client_data = base.require_client_data(self.client_data)
        return base.authorization_url(client_data, "token", scopes, redirect_uri)

    def open_login_page(self, scopes: Sequence[str], redirect_uri: str) -> None:
        base.open_in_browser(self.build_authorization_url(scopes, redirect_uri))

    def parameters_contain_error(self, params: Mapping[str, str]) -> tuple[bool, str]:
        return base.parameters_contain_error(params)

    def get_authorization_code(self, params: Mapping[str, str]) -> str:
        raise ConfigurationError("The implicit flow does not use an authorization code")

    def get_access_token(self, params: Mapping[str, str]) -> str:
        return base.require_parameter(params, "access_token")

    async def get_access_token_from_code(self, code: str, redirect_uri: str) -> str:
        raise ConfigurationError("The implicit flow has no code exchange step")

    async def get_user_info(self, access_token: str) -> UserInfo:
        client_data = base.require_client_data(self.client_data)
        return await base.fetch_user_info(
            client_data, access_token, self._transport, self._timeout
        )
