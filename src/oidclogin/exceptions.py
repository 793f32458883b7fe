"""Exception hierarchy for oidclogin.

All exceptions inherit from :class:`OidcError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`oidclogin.exit_codes`.
The orchestrator never lets these escape a login cycle; it logs them and
hands them to ``login_failed`` subscribers. The CLI catches ``OidcError``
and exits with the matching code.

Subclass hierarchy::

    OidcError                 (exit 1)
    +-- ConfigurationError    (exit 2)
    +-- RedirectError         (exit 3)
    +-- ListenerError         (exit 7)
    +-- NetworkError          (exit 6)
        +-- ExchangeError     (exit 6)
        +-- AuthError         (exit 3)
"""

from __future__ import annotations

from oidclogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_LISTENER_ERROR,
)


class OidcError(Exception):
    """Base exception for all oidclogin errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(OidcError):
    """Raised when client data, the provider adapter, or the listener is missing or invalid."""

    exit_code = EXIT_CONFIG_ERROR


class RedirectError(OidcError):
    """Raised when the provider redirects back with an ``error`` parameter or without the expected value."""

    exit_code = EXIT_AUTH_FAILURE


class ListenerError(OidcError):
    """Raised when the loopback redirect listener cannot bind or serve."""

    exit_code = EXIT_LISTENER_ERROR


class NetworkError(OidcError):
    """Raised on transport failures talking to the identity provider (timeout, DNS, refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class ExchangeError(NetworkError):
    """Raised when the token endpoint answers with a non-success status or a malformed body."""


class AuthError(NetworkError):
    """Raised when the userinfo endpoint rejects the access token.

    Args:
        message: Human-readable error description.
        status_code: HTTP status returned by the provider, if any.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
