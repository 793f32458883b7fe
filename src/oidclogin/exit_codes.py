"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~oidclogin.exceptions.OidcError` subclass.
Shell wrappers can inspect the exit code of ``oidclogin login`` to tell a
cancelled login from a network outage without parsing stderr.

Example::

    $ oidclogin login
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the provider redirected with an error
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""Client configuration is missing or invalid."""

EXIT_AUTH_FAILURE = 3
"""The provider refused the login or rejected the access token."""

EXIT_TIMEOUT = 4
"""The login cycle did not finish within the allotted time."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred talking to the identity provider."""

EXIT_LISTENER_ERROR = 7
"""The local redirect listener could not bind or serve."""
