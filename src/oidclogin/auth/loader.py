"""Client configuration loader collaborator.

:meth:`~oidclogin.auth.orchestrator.AuthOrchestrator.initialize` asks a
:class:`ClientDataLoader` for the client registration when none was supplied
up front. A loader returns ``None`` when it has nothing to offer; the
orchestrator reports that as a configuration error.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from oidclogin.config import load_client_data, resolve_client_path
from oidclogin.models import ClientData

logger = logging.getLogger(__name__)


class ClientDataLoader(Protocol):
    """Supplies :class:`~oidclogin.models.ClientData` asynchronously."""

    async def load_client_data(self) -> Optional[ClientData]: ...


class JsonFileClientDataLoader:
    """Load client data from a JSON file.

    Args:
        path: File to read. Defaults to :func:`~oidclogin.config.resolve_client_path`
            evaluated at load time.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path

    async def load_client_data(self) -> Optional[ClientData]:
        """Read the client file off the event loop.

        Returns:
            The parsed client data, or ``None`` if the file does not exist.

        Raises:
            ConfigurationError: If the file exists but is invalid.
        """
        path = self.path or resolve_client_path()
        if not path.is_file():
            logger.debug("No client configuration at %s", path)
            return None
        return await asyncio.to_thread(load_client_data, path)
