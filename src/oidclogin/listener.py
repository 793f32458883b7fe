"""Loopback listener that captures the identity provider's redirect.

This module provides :class:`RedirectServerListener`, the default
:class:`RedirectListener`. One listener cycle looks like this:

1. :meth:`~RedirectServerListener.generate_redirect_uri` picks the port
   (configured, or a free ephemeral one) and returns the URI to hand to the
   provider.
2. :meth:`~RedirectServerListener.start_server` binds an
   :class:`http.server.HTTPServer` and serves it from a daemon thread, so the
   caller is never blocked.
3. The first request to the configured path is parsed into a
   :class:`~oidclogin.models.RedirectResult`, answered with a small
   confirmation page, and published once through
   :attr:`~RedirectServerListener.redirect_received`. The server then stops.

When ``capture_fragment`` is enabled (implicit flow) a request without a
query string is answered with a bounce page that re-requests the same path
with the URL fragment moved into the query, because browsers never send
fragments to the server.

See Also:
    :class:`oidclogin.auth.orchestrator.AuthOrchestrator` for the consumer
    of ``redirect_received``.
"""

from __future__ import annotations

import html
import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Protocol
from urllib.parse import parse_qs, urlsplit

from oidclogin.events import EventHook
from oidclogin.exceptions import ListenerError
from oidclogin.models import RedirectConfig, RedirectResult

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1
_JOIN_TIMEOUT = 5.0

_BOUNCE_PAGE = """<html><head><title>Completing login</title></head><body>
<h2>Completing login...</h2>
<script>
var hash = window.location.hash.substring(1);
if (hash) {
  window.location.replace(window.location.pathname + "?" + hash);
} else {
  window.location.replace(window.location.pathname +
    "?error=invalid_request&error_description=No+parameters+in+redirect");
}
</script>
</body></html>
"""


def _find_free_port(host: str = "127.0.0.1") -> int:
    """Find a free TCP port on *host*."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def _page(body: str) -> bytes:
    return f"<html><body><h2>{html.escape(body)}</h2></body></html>".encode("utf-8")


class RedirectListener(Protocol):
    """Contract the orchestrator needs from a redirect listener."""

    redirect_received: EventHook[RedirectResult]

    def generate_redirect_uri(self) -> str: ...

    def start_server(self) -> None: ...

    def stop_server_immediately(self) -> None: ...


class _RedirectHTTPServer(HTTPServer):
    """HTTPServer for one listener cycle; owns that cycle's capture slot."""

    def __init__(self, address: tuple[str, int], listener: RedirectServerListener) -> None:
        self.address_family = socket.AF_INET6 if ":" in address[0] else socket.AF_INET
        self.listener = listener
        self.stopping = threading.Event()
        self._capture_lock = threading.Lock()
        self._captured = False
        super().__init__(address, _RedirectHandler)

    def claim(self) -> bool:
        """Reserve the single capture slot of this cycle."""
        with self._capture_lock:
            if self._captured:
                return False
            self._captured = True
            return True


class _RedirectHandler(BaseHTTPRequestHandler):
    server: _RedirectHTTPServer
    timeout = _JOIN_TIMEOUT

    def do_GET(self) -> None:
        listener = self.server.listener
        parsed = urlsplit(self.path)

        if parsed.path != listener.config.path:
            self._respond(404, _page("Not found."))
            return

        params = {
            key: values[0]
            for key, values in parse_qs(parsed.query, keep_blank_values=True).items()
        }
        if not params and listener.config.capture_fragment:
            self._respond(200, _BOUNCE_PAGE.encode("utf-8"))
            return

        if not self.server.claim():
            self._respond(410, _page("This login request was already completed."))
            return

        if "error" in params:
            body = f"Login failed: {params['error']}"
            if params.get("error_description"):
                body += f" - {params['error_description']}"
        else:
            body = listener.config.success_message
        self._respond(200, _page(body))

        self.server.stopping.set()
        listener._deliver(
            RedirectResult(raw_parameters=params, redirect_uri=listener.redirect_uri or "")
        )

    def _respond(self, status: int, payload: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("redirect listener: " + format, *args)


class RedirectServerListener:
    """Capture a single OAuth redirect on a loopback HTTP server.

    Args:
        config: Bind address, port, path and page text. Defaults to
            ``http://127.0.0.1:<ephemeral>/callback``.

    Example::

        listener = RedirectServerListener()
        listener.redirect_received.subscribe(handle)
        uri = listener.generate_redirect_uri()
        listener.start_server()
        # ... browser is redirected to uri?code=... ...
        listener.stop_server_immediately()
    """

    def __init__(self, config: Optional[RedirectConfig] = None) -> None:
        self.config = config or RedirectConfig()
        self.redirect_received: EventHook[RedirectResult] = EventHook("redirect_received")
        self._redirect_uri: Optional[str] = None
        self._port: Optional[int] = None
        self._server: Optional[_RedirectHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def redirect_uri(self) -> Optional[str]:
        """The URI produced by the last :meth:`generate_redirect_uri` call."""
        return self._redirect_uri

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def generate_redirect_uri(self) -> str:
        """Choose the port for the next cycle and return the redirect URI.

        Returns:
            ``http://<host>:<port><path>``, to be registered with and sent to
            the identity provider.

        Raises:
            ListenerError: If no port can be reserved on the configured host.
        """
        host = self.config.host
        try:
            self._port = self.config.port or _find_free_port(host)
        except OSError as exc:
            raise ListenerError(f"Cannot reserve a port on {host}: {exc}") from exc
        shown_host = f"[{host}]" if ":" in host else host
        self._redirect_uri = f"http://{shown_host}:{self._port}{self.config.path}"
        return self._redirect_uri

    def start_server(self) -> None:
        """Bind and start serving on a background thread.

        Any previous cycle is stopped first.

        Raises:
            ListenerError: If no redirect URI was generated or the address
                cannot be bound.
        """
        if self._redirect_uri is None or self._port is None:
            raise ListenerError(
                "generate_redirect_uri() must be called before start_server()"
            )
        self.stop_server_immediately()

        try:
            server = _RedirectHTTPServer((self.config.host, self._port), self)
        except OSError as exc:
            raise ListenerError(
                f"Cannot listen on {self.config.host}:{self._port}: {exc}"
            ) from exc
        server.timeout = _POLL_INTERVAL

        self._server = server
        self._thread = threading.Thread(
            target=self._serve,
            args=(server,),
            name="oidclogin-redirect-listener",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Listening for redirect on %s", self._redirect_uri)

    def stop_server_immediately(self) -> None:
        """Stop listening whether or not a redirect arrived. Idempotent."""
        server, thread = self._server, self._thread
        if server is not None:
            server.stopping.set()
        if thread is None or thread is threading.current_thread():
            # Called from a redirect_received subscriber: the serve loop
            # exits on its own once the handler returns.
            return
        thread.join(_JOIN_TIMEOUT)
        if thread.is_alive():
            logger.warning("Redirect listener thread did not stop in time")
        self._thread = None
        self._server = None

    def _serve(self, server: _RedirectHTTPServer) -> None:
        try:
            while not server.stopping.is_set():
                server.handle_request()
        except OSError:
            logger.exception("Redirect listener failed while serving")
        finally:
            server.server_close()
            logger.debug("Redirect listener on port %s closed", server.server_address[1])

    def _deliver(self, result: RedirectResult) -> None:
        logger.debug("Redirect received with parameters %s", sorted(result.raw_parameters))
        self.redirect_received.emit(result)
