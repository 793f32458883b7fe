"""Authorization-code flow adapter.

:class:`AuthorizationCodeProvider` opens the login page with
``response_type=code`` (plus a PKCE S256 challenge unless the client turns it
off), reads ``code`` from the redirect, and exchanges it at the token
endpoint for an access token (:rfc:`6749` section 4.1, :rfc:`7636`).

The PKCE verifier lives only for the current attempt: every
:meth:`~AuthorizationCodeProvider.build_authorization_url` call replaces it.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import httpx
from pydantic import ValidationError

from oidclogin.exceptions import ConfigurationError, ExchangeError, NetworkError
from oidclogin.models import AuthorizationFlow, ClientData, TokenResponse, UserInfo
from oidclogin.providers import base

logger = logging.getLogger(__name__)


class AuthorizationCodeProvider:
    """Provider adapter for the OIDC authorization-code flow.

    Args:
        client_data: Client registration. The orchestrator assigns it before
            each login cycle, so it may be omitted here.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
        timeout: Per-request timeout in seconds for provider calls.
    """

    flow = AuthorizationFlow.AUTHORIZATION_CODE

    def __init__(
        self,
        client_data: Optional[ClientData] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = base.DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self.client_data = client_data
        self._transport = transport
        self._timeout = timeout
        self._code_verifier: Optional[str] = None

    def build_authorization_url(self, scopes: Sequence[str], redirect_uri: str) -> str:
        client_data = base.require_client_data(self.client_data)
        extra: dict[str, str] = {}
        self._code_verifier = None
        if client_data.use_pkce:
            self._code_verifier, challenge = base.generate_pkce_pair()
            extra = {"code_challenge": challenge, "code_challenge_method": "S256"}
        return base.authorization_url(client_data, "code", scopes, redirect_uri, extra)

    def open_login_page(self, scopes: Sequence[str], redirect_uri: str) -> None:
        """Build the authorization URL and open it in the system browser."""
        base.open_in_browser(self.build_authorization_url(scopes, redirect_uri))

    def parameters_contain_error(self, params: Mapping[str, str]) -> tuple[bool, str]:
        return base.parameters_contain_error(params)

    def get_authorization_code(self, params: Mapping[str, str]) -> str:
        return base.require_parameter(params, "code")

    def get_access_token(self, params: Mapping[str, str]) -> str:
        raise ConfigurationError(
            "The authorization-code flow does not return tokens in the redirect"
        )

    async def get_access_token_from_code(self, code: str, redirect_uri: str) -> str:
        """Exchange the authorization code for an access token.

        Args:
            code: The ``code`` from the redirect.
            redirect_uri: Exactly the redirect URI used for the login page.

        Returns:
            The ``access_token`` from the token endpoint response.

        Raises:
            ConfigurationError: If no token endpoint is configured.
            ExchangeError: On a non-success status, a body that is not JSON,
                or a response without ``access_token``.
            NetworkError: On transport failures.
        """
        client_data = base.require_client_data(self.client_data)
        if not client_data.token_endpoint:
            raise ConfigurationError("token_endpoint is required for the code exchange")

        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_data.client_id,
        }
        secret = client_data.secret_value()
        if secret:
            data["client_secret"] = secret
        if self._code_verifier:
            data["code_verifier"] = self._code_verifier

        try:
            async with base.http_client(self._transport, self._timeout) as client:
                response = await client.post(client_data.token_endpoint, data=data)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExchangeError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Token exchange failed: {exc}") from exc

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise ExchangeError("Token response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ExchangeError("Token response was not a JSON object")
        try:
            token = TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise ExchangeError("Token response missing 'access_token' field") from exc

        self._code_verifier = None
        logger.debug("Token exchange succeeded (token_type=%s)", token.token_type)
        return token.access_token

    async def get_user_info(self, access_token: str) -> UserInfo:
        client_data = base.require_client_data(self.client_data)
        return await base.fetch_user_info(
            client_data, access_token, self._transport, self._timeout
        )
