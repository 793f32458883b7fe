"""Tests for oidclogin.providers -- URL building, exchange, userinfo, discovery."""

from __future__ import annotations

import base64
import hashlib
from typing import Any
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from oidclogin.exceptions import (
    AuthError,
    ConfigurationError,
    ExchangeError,
    NetworkError,
    RedirectError,
)
from oidclogin.models import AuthorizationFlow, ClientData
from oidclogin.providers import (
    AuthorizationCodeProvider,
    ImplicitProvider,
    create_provider,
    discover,
    generate_pkce_pair,
    resolve_endpoints,
)

REDIRECT_URI = "http://127.0.0.1:8400/callback"


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=data)


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def form(self) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(self.requests[-1].content.decode()).items()}


# ---------------------------------------------------------------------------
# Factory and shared helpers
# ---------------------------------------------------------------------------


class TestCreateProvider:
    def test_selects_by_flow(self, code_client: ClientData) -> None:
        provider = create_provider(AuthorizationFlow.AUTHORIZATION_CODE, code_client)
        assert isinstance(provider, AuthorizationCodeProvider)
        assert provider.client_data is code_client
        assert isinstance(create_provider(AuthorizationFlow.IMPLICIT), ImplicitProvider)

    def test_accepts_flow_string(self) -> None:
        assert isinstance(create_provider("implicit"), ImplicitProvider)

    def test_unknown_flow(self) -> None:
        with pytest.raises(ConfigurationError, match="hybrid"):
            create_provider("hybrid")


class TestPkce:
    def test_challenge_is_s256_of_verifier(self) -> None:
        verifier, challenge = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        assert challenge == base64.urlsafe_b64encode(digest).rstrip(b"=").decode()

    def test_pairs_are_unique(self) -> None:
        assert generate_pkce_pair()[0] != generate_pkce_pair()[0]


class TestRedirectParameters:
    def test_no_error(self) -> None:
        provider = AuthorizationCodeProvider()
        assert provider.parameters_contain_error({"code": "abc"}) == (False, "")

    def test_error_with_description(self) -> None:
        provider = ImplicitProvider()
        has_error, message = provider.parameters_contain_error(
            {"error": "access_denied", "error_description": "User cancelled!"}
        )
        assert has_error is True
        assert message == "access_denied: User cancelled!"

    def test_description_is_used_verbatim(self) -> None:
        has_error, message = AuthorizationCodeProvider().parameters_contain_error(
            {"error": "access_denied", "error_description": "1+1 failed at 100%25"}
        )
        assert has_error is True
        assert message == "access_denied: 1+1 failed at 100%25"

    def test_error_without_description(self) -> None:
        assert AuthorizationCodeProvider().parameters_contain_error(
            {"error": "server_error"}
        ) == (True, "server_error")

    def test_missing_code(self) -> None:
        with pytest.raises(RedirectError, match="'code'"):
            AuthorizationCodeProvider().get_authorization_code({"state": "x"})

    def test_missing_access_token(self) -> None:
        with pytest.raises(RedirectError, match="'access_token'"):
            ImplicitProvider().get_access_token({"token_type": "Bearer"})

    def test_flow_specific_methods_are_refused(self) -> None:
        with pytest.raises(ConfigurationError):
            AuthorizationCodeProvider().get_access_token({"access_token": "t"})
        with pytest.raises(ConfigurationError):
            ImplicitProvider().get_authorization_code({"code": "c"})


# ---------------------------------------------------------------------------
# Authorization URL
# ---------------------------------------------------------------------------


class TestAuthorizationUrl:
    def test_code_flow_url_with_pkce(self, code_client: ClientData) -> None:
        provider = AuthorizationCodeProvider(code_client)
        url = provider.build_authorization_url(["openid", "email"], REDIRECT_URI)

        assert url.startswith("https://idp.example.com/authorize?")
        params = _query(url)
        assert params["response_type"] == "code"
        assert params["client_id"] == "desktop-app"
        assert params["redirect_uri"] == REDIRECT_URI
        assert params["scope"] == "openid email"
        assert params["code_challenge_method"] == "S256"
        assert params["code_challenge"]

    def test_code_flow_without_pkce(self, code_client: ClientData) -> None:
        client = code_client.model_copy(update={"use_pkce": False})
        params = _query(AuthorizationCodeProvider(client).build_authorization_url([], REDIRECT_URI))
        assert "code_challenge" not in params
        assert "scope" not in params

    def test_implicit_flow_url(self, implicit_client: ClientData) -> None:
        params = _query(ImplicitProvider(implicit_client).build_authorization_url(["openid"], REDIRECT_URI))
        assert params["response_type"] == "token"
        assert "code_challenge" not in params

    def test_endpoint_with_existing_query(self, code_client: ClientData) -> None:
        client = code_client.model_copy(
            update={"authorization_endpoint": "https://idp.example.com/auth?tenant=a"}
        )
        url = ImplicitProvider(client).build_authorization_url(["openid"], REDIRECT_URI)
        assert url.startswith("https://idp.example.com/auth?tenant=a&response_type=token")

    def test_missing_endpoint(self) -> None:
        provider = ImplicitProvider(ClientData(client_id="x"))
        with pytest.raises(ConfigurationError, match="authorization_endpoint"):
            provider.build_authorization_url(["openid"], REDIRECT_URI)

    def test_missing_client_data(self) -> None:
        with pytest.raises(ConfigurationError):
            AuthorizationCodeProvider().build_authorization_url(["openid"], REDIRECT_URI)

    def test_open_login_page_launches_browser(self, code_client: ClientData) -> None:
        provider = AuthorizationCodeProvider(code_client)
        with patch("oidclogin.providers.base.threading.Thread") as thread_cls:
            provider.open_login_page(["openid"], REDIRECT_URI)
        thread_cls.assert_called_once()
        assert thread_cls.call_args.kwargs["daemon"] is True
        thread_cls.return_value.start.assert_called_once()


# ---------------------------------------------------------------------------
# Code exchange
# ---------------------------------------------------------------------------


class TestCodeExchange:
    @pytest.mark.asyncio
    async def test_success_posts_form(self, code_client: ClientData) -> None:
        recorder = _Recorder(_json_response({"access_token": "tok1", "token_type": "Bearer"}))
        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(recorder))
        provider.build_authorization_url(["openid"], REDIRECT_URI)
        verifier = provider._code_verifier

        token = await provider.get_access_token_from_code("abc123", REDIRECT_URI)

        assert token == "tok1"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://idp.example.com/token"
        assert recorder.form == {
            "grant_type": "authorization_code",
            "code": "abc123",
            "redirect_uri": REDIRECT_URI,
            "client_id": "desktop-app",
            "client_secret": "s3cret",
            "code_verifier": verifier,
        }
        assert provider._code_verifier is None

    @pytest.mark.asyncio
    async def test_public_client_omits_secret(self, code_client: ClientData) -> None:
        client = code_client.model_copy(update={"client_secret": None, "use_pkce": False})
        recorder = _Recorder(_json_response({"access_token": "tok1"}))
        provider = AuthorizationCodeProvider(client, transport=httpx.MockTransport(recorder))

        await provider.get_access_token_from_code("abc123", REDIRECT_URI)

        assert "client_secret" not in recorder.form
        assert "code_verifier" not in recorder.form

    @pytest.mark.asyncio
    async def test_error_status(self, code_client: ClientData) -> None:
        recorder = _Recorder(_json_response({"error": "invalid_grant"}, status_code=400))
        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(recorder))

        with pytest.raises(ExchangeError, match="status 400") as exc_info:
            await provider.get_access_token_from_code("abc123", REDIRECT_URI)
        assert exc_info.value.exit_code == 6

    @pytest.mark.asyncio
    async def test_missing_access_token(self, code_client: ClientData) -> None:
        recorder = _Recorder(_json_response({"token_type": "Bearer"}))
        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(recorder))

        with pytest.raises(ExchangeError, match="access_token"):
            await provider.get_access_token_from_code("abc123", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_non_json_body(self, code_client: ClientData) -> None:
        recorder = _Recorder(httpx.Response(200, text="<html>oops</html>"))
        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(recorder))

        with pytest.raises(ExchangeError, match="not valid JSON"):
            await provider.get_access_token_from_code("abc123", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_transport_failure(self, code_client: ClientData) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(refuse))

        with pytest.raises(NetworkError) as exc_info:
            await provider.get_access_token_from_code("abc123", REDIRECT_URI)
        assert not isinstance(exc_info.value, ExchangeError)

    @pytest.mark.asyncio
    async def test_missing_token_endpoint(self, implicit_client: ClientData) -> None:
        provider = AuthorizationCodeProvider(implicit_client)
        with pytest.raises(ConfigurationError, match="token_endpoint"):
            await provider.get_access_token_from_code("abc123", REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_implicit_has_no_exchange(self, implicit_client: ClientData) -> None:
        with pytest.raises(ConfigurationError):
            await ImplicitProvider(implicit_client).get_access_token_from_code("c", REDIRECT_URI)


# ---------------------------------------------------------------------------
# User info
# ---------------------------------------------------------------------------


class TestUserInfo:
    @pytest.mark.asyncio
    async def test_success_sends_bearer(self, code_client: ClientData) -> None:
        recorder = _Recorder(_json_response({
            "sub": "248289761001",
            "name": "Jane Doe",
            "email": "jane@example.com",
            "locale": "en-GB",
        }))
        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(recorder))

        user = await provider.get_user_info("tok1")

        assert recorder.requests[0].headers["Authorization"] == "Bearer tok1"
        assert user.sub == "248289761001"
        assert user.email == "jane@example.com"
        assert user.model_extra == {"locale": "en-GB"}

    @pytest.mark.asyncio
    async def test_unauthorized_keeps_status(self, implicit_client: ClientData) -> None:
        recorder = _Recorder(httpx.Response(401, text="invalid_token"))
        provider = ImplicitProvider(implicit_client, transport=httpx.MockTransport(recorder))

        with pytest.raises(AuthError) as exc_info:
            await provider.get_user_info("expired")

        assert exc_info.value.status_code == 401
        assert exc_info.value.exit_code == 3
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_failure(self, code_client: ClientData) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = AuthorizationCodeProvider(code_client, transport=httpx.MockTransport(timeout))

        with pytest.raises(NetworkError):
            await provider.get_user_info("tok1")

    @pytest.mark.asyncio
    async def test_missing_endpoint(self) -> None:
        provider = ImplicitProvider(ClientData(client_id="x"))
        with pytest.raises(ConfigurationError, match="userinfo_endpoint"):
            await provider.get_user_info("tok1")


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

DISCOVERY_URL = "https://idp.example.com/.well-known/openid-configuration"
DISCOVERY_DOC = {
    "issuer": "https://idp.example.com",
    "authorization_endpoint": "https://idp.example.com/oauth2/authorize",
    "token_endpoint": "https://idp.example.com/oauth2/token",
    "userinfo_endpoint": "https://idp.example.com/oauth2/userinfo",
    "jwks_uri": "https://idp.example.com/jwks",
}


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_discover(self) -> None:
        recorder = _Recorder(_json_response(DISCOVERY_DOC))
        doc = await discover(DISCOVERY_URL, transport=httpx.MockTransport(recorder))
        assert doc.issuer == "https://idp.example.com"
        assert doc.token_endpoint == "https://idp.example.com/oauth2/token"
        assert str(recorder.requests[0].url) == DISCOVERY_URL

    @pytest.mark.asyncio
    async def test_missing_required_endpoint(self) -> None:
        doc = {k: v for k, v in DISCOVERY_DOC.items() if k != "token_endpoint"}
        transport = httpx.MockTransport(_Recorder(_json_response(doc)))
        with pytest.raises(ConfigurationError, match="token_endpoint"):
            await discover(DISCOVERY_URL, transport=transport)

    @pytest.mark.asyncio
    async def test_not_json(self) -> None:
        transport = httpx.MockTransport(_Recorder(httpx.Response(200, text="nope")))
        with pytest.raises(ConfigurationError, match="not JSON"):
            await discover(DISCOVERY_URL, transport=transport)

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        transport = httpx.MockTransport(_Recorder(httpx.Response(404, text="missing")))
        with pytest.raises(NetworkError, match="404"):
            await discover(DISCOVERY_URL, transport=transport)

    @pytest.mark.asyncio
    async def test_resolve_fills_only_missing_endpoints(self) -> None:
        client = ClientData(
            client_id="x",
            discovery_url=DISCOVERY_URL,
            token_endpoint="https://proxy.internal/token",
        )
        transport = httpx.MockTransport(_Recorder(_json_response(DISCOVERY_DOC)))

        resolved = await resolve_endpoints(client, transport=transport)

        assert resolved.authorization_endpoint == DISCOVERY_DOC["authorization_endpoint"]
        assert resolved.token_endpoint == "https://proxy.internal/token"
        assert resolved.userinfo_endpoint == DISCOVERY_DOC["userinfo_endpoint"]
        assert client.authorization_endpoint == ""

    @pytest.mark.asyncio
    async def test_resolve_without_discovery_url_is_noop(self, code_client: ClientData) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        resolved = await resolve_endpoints(code_client, transport=httpx.MockTransport(fail))
        assert resolved is code_client
