"""Per-login session state."""

from __future__ import annotations

from typing import Iterable, Optional

from oidclogin.models import DEFAULT_SCOPES, ClientData


class AuthSession:
    """Client configuration, requested scopes and the resulting access token.

    ``is_logged_in`` is derived from the token and never stored separately.

    Args:
        client_data: Client registration, if already loaded.
        scopes: Scopes to request; defaults to :data:`~oidclogin.models.DEFAULT_SCOPES`.
    """

    def __init__(
        self,
        client_data: Optional[ClientData] = None,
        scopes: Optional[Iterable[str]] = None,
    ) -> None:
        self.client_data = client_data
        self.scopes = list(DEFAULT_SCOPES) if scopes is None else scopes
        self._access_token = ""

    @property
    def scopes(self) -> list[str]:
        return list(self._scopes)

    @scopes.setter
    def scopes(self, value: Iterable[str]) -> None:
        if isinstance(value, str):
            raise TypeError("scopes must be an iterable of scope names, not a str")
        # ordered set: keep first occurrence
        self._scopes = list(dict.fromkeys(s for s in value if s))

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def is_logged_in(self) -> bool:
        return bool(self._access_token)

    def store_token(self, access_token: str) -> None:
        self._access_token = access_token

    def clear_token(self) -> None:
        self._access_token = ""
