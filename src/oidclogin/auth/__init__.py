"""Session state and login orchestration.

:class:`AuthOrchestrator` is the entry point for host applications; it owns
an :class:`AuthSession` and drives the provider and listener through a
login cycle. :class:`JsonFileClientDataLoader` is the default source of
client registration data for :meth:`AuthOrchestrator.initialize`.
"""

from oidclogin.auth.loader import ClientDataLoader, JsonFileClientDataLoader
from oidclogin.auth.orchestrator import AuthOrchestrator
from oidclogin.auth.session import AuthSession

__all__ = [
    "AuthOrchestrator",
    "AuthSession",
    "ClientDataLoader",
    "JsonFileClientDataLoader",
]
