"""Canonical Pydantic models shared across all oidclogin modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- loaded once from the client JSON file and never
mutated afterwards:
    :class:`AuthorizationFlow`, :class:`RedirectConfig`, :class:`ClientData`.

**Protocol models** -- produced while a login cycle runs:
    :class:`RedirectResult`, :class:`TokenResponse`, :class:`UserInfo`,
    :class:`DiscoveryDocument`, and the :class:`AuthState` enum.

All models use Pydantic v2. Configuration models are frozen; provider
responses use ``extra="allow"`` so unknown claims are preserved in
``model_extra``.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


DEFAULT_SCOPES: tuple[str, ...] = ("openid", "profile", "email")
"""Scopes requested when a session does not override them."""


# --- Client configuration ---


class AuthorizationFlow(str, enum.Enum):
    """OIDC response flow used by a provider configuration.

    The orchestrator branches on this tag: the code flow exchanges the
    redirect's ``code`` at the token endpoint, the implicit flow reads the
    ``access_token`` straight from the redirect.
    """

    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT = "implicit"


class RedirectConfig(BaseModel):
    """Where the loopback listener binds and what it answers with.

    ``port=0`` picks a free ephemeral port each cycle. Providers that only
    accept pre-registered redirect URIs need a fixed port here.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="127.0.0.1", description="Loopback address to bind")
    port: int = Field(default=0, ge=0, le=65535, description="0 = ephemeral port")
    path: str = Field(default="/callback", description="Path the provider redirects to")
    capture_fragment: bool = Field(
        default=False,
        description="Bounce URL fragments into the query string (implicit flow)",
    )
    success_message: str = Field(
        default="Login complete. You can close this window and return to the application.",
    )

    @field_validator("path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"


class ClientData(BaseModel):
    """Registered OIDC client and the provider endpoints it talks to.

    Immutable once loaded; owned by :class:`~oidclogin.auth.session.AuthSession`
    for the session's lifetime. Endpoints may be left empty when
    ``discovery_url`` is set; :func:`~oidclogin.providers.discovery.resolve_endpoints`
    fills them in during :meth:`~oidclogin.auth.orchestrator.AuthOrchestrator.initialize`.

    Example::

        ClientData(
            client_id="my-desktop-app",
            authorization_endpoint="https://idp.example.com/authorize",
            token_endpoint="https://idp.example.com/token",
        )
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: Optional[SecretStr] = None
    authorization_endpoint: str = ""
    token_endpoint: str = ""
    userinfo_endpoint: Optional[str] = None
    discovery_url: Optional[str] = Field(
        default=None, description="URL of /.well-known/openid-configuration"
    )
    flow: AuthorizationFlow = AuthorizationFlow.AUTHORIZATION_CODE
    use_pkce: bool = Field(default=True, description="Send a PKCE challenge (code flow)")
    redirect: RedirectConfig = Field(default_factory=RedirectConfig)

    def secret_value(self) -> Optional[str]:
        """Return the plain client secret, or ``None`` for public clients."""
        if self.client_secret is None:
            return None
        return self.client_secret.get_secret_value()


# --- Login cycle ---


class AuthState(str, enum.Enum):
    """States of the login state machine."""

    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"


class RedirectResult(BaseModel):
    """Parameters captured from the single redirect of one listener cycle."""

    model_config = ConfigDict(frozen=True)

    raw_parameters: dict[str, str] = Field(default_factory=dict)
    redirect_uri: str


class TokenResponse(BaseModel):
    """Successful token endpoint response (RFC 6749 section 5.1)."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None


class UserInfo(BaseModel):
    """Claims returned by the provider's userinfo endpoint.

    Only the standard claims are declared; anything else the provider sends
    is kept in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    sub: Optional[str] = None
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    preferred_username: Optional[str] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    picture: Optional[str] = None


class DiscoveryDocument(BaseModel):
    """The subset of an OpenID provider discovery document oidclogin reads."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    issuer: Optional[str] = None
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: Optional[str] = None
    response_types_supported: list[str] = Field(default_factory=list)
    code_challenge_methods_supported: list[str] = Field(default_factory=list)
