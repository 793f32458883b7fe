"""Login orchestration -- the state machine behind ``oidclogin``.

:class:`AuthOrchestrator` ties the pieces together for one logical session:

1. :meth:`~AuthOrchestrator.open_login_page` starts the
   :class:`~oidclogin.listener.RedirectListener` and opens the provider's
   login page (``IDLE -> AWAITING_REDIRECT``).
2. The listener captures the redirect on its own thread. The orchestrator
   hands the :class:`~oidclogin.models.RedirectResult` to the event loop
   that started the attempt, where it is checked for an ``error``, the code
   or token is extracted, and (code flow) exchanged at the token endpoint
   (``AWAITING_REDIRECT -> EXCHANGING -> AUTHENTICATED``).
3. Subscribers of :attr:`~AuthOrchestrator.login_completed`,
   :attr:`~AuthOrchestrator.logout_completed` and
   :attr:`~AuthOrchestrator.login_failed` are notified.

Only one attempt is active at a time. Calling ``open_login_page()`` while an
attempt is still waiting or exchanging cancels that attempt (listener
stopped, exchange task cancelled) and starts a new one; late results of the
cancelled attempt are discarded.

Failures never escape a login attempt as exceptions: they are logged and
delivered to ``login_failed`` subscribers as
:class:`~oidclogin.exceptions.OidcError` instances.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import Iterable, Optional

import httpx

from oidclogin.auth.loader import ClientDataLoader, JsonFileClientDataLoader
from oidclogin.auth.session import AuthSession
from oidclogin.events import EventHook, Subscription
from oidclogin.exceptions import ConfigurationError, OidcError, RedirectError
from oidclogin.listener import RedirectListener, RedirectServerListener
from oidclogin.models import (
    AuthorizationFlow,
    AuthState,
    ClientData,
    RedirectResult,
    UserInfo,
)
from oidclogin.providers import ProviderAdapter, create_provider, resolve_endpoints

logger = logging.getLogger(__name__)


class AuthOrchestrator:
    """Drive browser-based OIDC logins and expose the resulting session.

    Args:
        client_data: Client registration. When omitted, :meth:`initialize`
            loads it through *loader*.
        provider: Provider adapter. Defaults to the adapter matching
            ``client_data.flow`` once client data is known.
        listener: Redirect listener. Defaults to a
            :class:`~oidclogin.listener.RedirectServerListener` configured
            from ``client_data.redirect``.
        loader: Client data source used by :meth:`initialize`.
        scopes: Scopes to request instead of the process-wide defaults.
        transport: Optional httpx transport for discovery and default
            providers.

    Example::

        orchestrator = AuthOrchestrator(client_data)
        orchestrator.login_completed.subscribe(lambda o: print("logged in"))
        await orchestrator.open_login_page()
        await orchestrator.wait_for_completion(timeout=300)
    """

    def __init__(
        self,
        client_data: Optional[ClientData] = None,
        *,
        provider: Optional[ProviderAdapter] = None,
        listener: Optional[RedirectListener] = None,
        loader: Optional[ClientDataLoader] = None,
        scopes: Optional[Iterable[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = AuthSession(scopes=scopes)
        self.provider: Optional[ProviderAdapter] = provider
        self.listener: Optional[RedirectListener] = listener or RedirectServerListener()
        self.loader: ClientDataLoader = loader or JsonFileClientDataLoader()
        self._default_listener = listener is None
        self._transport = transport

        self.login_completed: EventHook[AuthOrchestrator] = EventHook("login_completed")
        self.logout_completed: EventHook[AuthOrchestrator] = EventHook("logout_completed")
        self.login_failed: EventHook[OidcError] = EventHook("login_failed")

        self._state = AuthState.IDLE
        self._cycle = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cycle_done: Optional[asyncio.Event] = None
        self._subscription: Optional[Subscription] = None
        self._pending: Optional[concurrent.futures.Future[None]] = None

        if client_data is not None:
            self._apply_client_data(client_data)

    # ------------------------------------------------------------------ #
    # Session view
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def client_data(self) -> Optional[ClientData]:
        return self.session.client_data

    @client_data.setter
    def client_data(self, value: ClientData) -> None:
        self._apply_client_data(value)

    @property
    def scopes(self) -> list[str]:
        return self.session.scopes

    @scopes.setter
    def scopes(self, value: Iterable[str]) -> None:
        self.session.scopes = value

    @property
    def access_token(self) -> str:
        return self.session.access_token

    @property
    def is_logged_in(self) -> bool:
        return self.session.is_logged_in

    # ------------------------------------------------------------------ #
    # Host lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> bool:
        """Load client data if none was supplied and resolve discovery.

        Problems are logged as configuration errors rather than raised.

        Returns:
            ``True`` when the orchestrator has usable client data.
        """
        client_data = self.session.client_data
        try:
            if client_data is None:
                client_data = await self.loader.load_client_data()
            if client_data is None:
                raise ConfigurationError(
                    "No client data supplied for the OpenID Connect client. "
                    "Create a client configuration file or pass ClientData explicitly."
                )
            if client_data.discovery_url:
                client_data = await resolve_endpoints(client_data, self._transport)
        except OidcError as exc:
            logger.error("%s", exc)
            return False

        self._apply_client_data(client_data)
        return True

    def cleanup(self) -> None:
        """Stop the listener, cancel any pending exchange, and log out."""
        self._abort_cycle()
        if self.is_logged_in:
            self.logout()

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    async def open_login_page(self) -> bool:
        """Start a login attempt: listen for the redirect and open the browser.

        Returns immediately after the browser launch; the redirect is handled
        in the background on the calling event loop.

        Returns:
            ``True`` if the attempt started, ``False`` if it was refused
            (configuration or listener error, reported via ``login_failed``).
        """
        loop = asyncio.get_running_loop()
        client_data, provider, listener = self.client_data, self.provider, self.listener
        if client_data is None:
            self._report(ConfigurationError(
                "Client data is not set. Call initialize() or supply ClientData first."
            ))
            return False
        if provider is None:
            self._report(ConfigurationError(
                "OIDC provider is not set. Set the provider before starting a login."
            ))
            return False
        if listener is None:
            self._report(ConfigurationError(
                "Redirect listener is not set. Set it before starting a login."
            ))
            return False

        if self._state in (AuthState.AWAITING_REDIRECT, AuthState.EXCHANGING):
            logger.info("Restarting login; the previous attempt is cancelled")
            self._abort_cycle(stop_listener=False)
            await asyncio.to_thread(listener.stop_server_immediately)

        self._cycle += 1
        cycle = self._cycle
        self._loop = loop
        self._cycle_done = asyncio.Event()
        provider.client_data = client_data

        try:
            redirect_uri = listener.generate_redirect_uri()
            self._subscription = listener.redirect_received.subscribe(
                lambda result: self._on_redirect(cycle, provider, result)
            )
            listener.start_server()
        except OidcError as exc:
            self._end_cycle()
            self._report(exc)
            return False

        self._state = AuthState.AWAITING_REDIRECT
        try:
            provider.open_login_page(self.session.scopes, redirect_uri)
        except OidcError as exc:
            self._end_cycle()
            await asyncio.to_thread(listener.stop_server_immediately)
            self._report(exc)
            return False

        logger.info("Waiting for the identity provider to redirect to %s", redirect_uri)
        return True

    def logout(self) -> None:
        """Forget the access token and notify ``logout_completed``.

        Always succeeds; calling it while logged out still notifies.
        """
        self.session.clear_token()
        if self._state == AuthState.AUTHENTICATED:
            self._state = AuthState.IDLE
        logger.info("Logged out")
        self.logout_completed.emit(self)

    async def wait_for_completion(self, timeout: Optional[float] = None) -> AuthState:
        """Wait until the current login attempt finishes, fails, or is cancelled.

        The listener itself never times out; hosts should pass *timeout*.

        Returns:
            The state after the attempt.

        Raises:
            asyncio.TimeoutError: If the attempt is still running after
                *timeout* seconds. The attempt keeps running; call
                :meth:`cleanup` to abandon it.
        """
        done = self._cycle_done
        if done is not None:
            await asyncio.wait_for(done.wait(), timeout)
        return self._state

    # ------------------------------------------------------------------ #
    # Token checks
    # ------------------------------------------------------------------ #

    async def check_access_token(self) -> bool:
        """Probe the current token by fetching user info.

        Returns:
            ``False`` immediately when logged out; otherwise whether the
            userinfo request succeeded.
        """
        if not self.is_logged_in:
            logger.warning("Access token not valid because user is not logged in.")
            return False
        try:
            user_info = await self.get_user_data()
        except OidcError as exc:
            logger.warning("Access token check failed: %s", exc)
            return False
        return user_info is not None

    async def get_user_data(self) -> Optional[UserInfo]:
        """Fetch the logged-in user's claims.

        Returns:
            The claims, or ``None`` when not logged in.

        Raises:
            OidcError: If the provider call fails (see
                :meth:`~oidclogin.providers.base.ProviderAdapter.get_user_info`).
        """
        if not self.is_logged_in:
            logger.error("Please log in first before accessing user data")
            return None
        if self.provider is None:
            raise ConfigurationError("OIDC provider is not set")
        return await self.provider.get_user_info(self.access_token)

    # ------------------------------------------------------------------ #
    # Redirect handling
    # ------------------------------------------------------------------ #

    def _on_redirect(
        self, cycle: int, provider: ProviderAdapter, result: RedirectResult
    ) -> None:
        """Listener-thread callback; schedules handling on the attempt's loop."""
        loop = self._loop
        if cycle != self._cycle or loop is None:
            logger.debug("Ignoring redirect of a superseded login attempt")
            return
        try:
            self._pending = asyncio.run_coroutine_threadsafe(
                self._handle_redirect(cycle, provider, result), loop
            )
        except RuntimeError:
            logger.error("Redirect received after the event loop was closed")

    async def _handle_redirect(
        self, cycle: int, provider: ProviderAdapter, result: RedirectResult
    ) -> None:
        if cycle != self._cycle:
            logger.debug("Discarding redirect of a superseded login attempt")
            return
        self._unsubscribe()
        params = result.raw_parameters

        try:
            has_error, message = provider.parameters_contain_error(params)
            if has_error:
                raise RedirectError(f"Login failed: {message}")

            if provider.flow == AuthorizationFlow.AUTHORIZATION_CODE:
                code = provider.get_authorization_code(params)
                self._state = AuthState.EXCHANGING
                token = await provider.get_access_token_from_code(code, result.redirect_uri)
            else:
                token = provider.get_access_token(params)
        except OidcError as exc:
            if cycle == self._cycle:
                self._end_cycle()
                self._report(exc)
            return
        except Exception as exc:
            logger.exception("Unexpected failure while handling the redirect")
            if cycle == self._cycle:
                self._end_cycle()
                self._report(OidcError(f"Unexpected error during login: {exc}"))
            return

        if cycle != self._cycle:
            logger.debug("Discarding token of a superseded login attempt")
            return

        self.session.store_token(token)
        self._state = AuthState.AUTHENTICATED
        self._signal_done()
        self._pending = None
        logger.info("Login completed")
        self.login_completed.emit(self)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _apply_client_data(self, client_data: ClientData) -> None:
        self.session.client_data = client_data
        if self.provider is None:
            self.provider = create_provider(client_data.flow, transport=self._transport)
        self.provider.client_data = client_data
        if self._default_listener:
            if self.listener is not None:
                self._abort_cycle()
            redirect = client_data.redirect
            if client_data.flow == AuthorizationFlow.IMPLICIT and not redirect.capture_fragment:
                redirect = redirect.model_copy(update={"capture_fragment": True})
            self.listener = RedirectServerListener(redirect)

    def _resting_state(self) -> AuthState:
        return AuthState.AUTHENTICATED if self.is_logged_in else AuthState.IDLE

    def _end_cycle(self) -> None:
        """Return to the resting state after an attempt that did not log in."""
        self._unsubscribe()
        self._state = self._resting_state()
        self._pending = None
        self._signal_done()

    def _abort_cycle(self, stop_listener: bool = True) -> None:
        """Cancel the in-flight attempt, if any, and invalidate its late results.

        Async callers pass ``stop_listener=False`` and stop the listener in a
        worker thread, since stopping joins the server thread.
        """
        self._cycle += 1
        self._unsubscribe()
        if stop_listener and self.listener is not None:
            self.listener.stop_server_immediately()
        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.cancel()
        self._state = self._resting_state()
        self._signal_done()

    def _unsubscribe(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()

    def _signal_done(self) -> None:
        done, loop = self._cycle_done, self._loop
        if done is None or loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            done.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(done.set)

    def _report(self, error: OidcError) -> None:
        logger.error("%s", error)
        self.login_failed.emit(error)
