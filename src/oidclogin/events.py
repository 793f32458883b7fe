"""Observer registration for login lifecycle notifications.

:class:`EventHook` is a small multicast callback list. The listener uses one
for ``redirect_received`` and the orchestrator exposes three
(``login_completed``, ``logout_completed``, ``login_failed``).

Subscribers are called in registration order with a snapshot of the list
taken at emit time, so a callback may unsubscribe itself (or subscribe
others) while the hook is firing. Unsubscribing one callback never removes
another, even an equal-looking one registered separately.

Emission may happen on any thread; consumers must not assume they run on the
thread that started the login.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by :meth:`EventHook.subscribe`.

    Calling :meth:`cancel` removes exactly the registration that produced
    this handle.
    """

    def __init__(self, hook: EventHook, token: int) -> None:
        self._hook = hook
        self._token = token

    def cancel(self) -> None:
        self._hook._remove(self._token)


class EventHook(Generic[T]):
    """Multicast notification with independent subscribers.

    Args:
        name: Label used in log messages.

    Example::

        hook: EventHook[str] = EventHook("greeting")
        sub = hook.subscribe(print)
        hook.emit("hello")
        sub.cancel()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[T], object]] = {}
        self._next_token = 0

    def subscribe(self, callback: Callable[[T], object]) -> Subscription:
        """Register *callback* and return a handle that removes it again."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._callbacks[token] = callback
        return Subscription(self, token)

    def unsubscribe(self, callback: Callable[[T], object]) -> bool:
        """Remove the earliest registration of *callback*.

        Returns:
            ``True`` if a registration was removed.
        """
        with self._lock:
            for token, registered in self._callbacks.items():
                if registered == callback:
                    del self._callbacks[token]
                    return True
        return False

    def emit(self, payload: T) -> None:
        """Call every subscriber with *payload*.

        A subscriber that raises is logged and skipped; the remaining
        subscribers still run.
        """
        with self._lock:
            callbacks = list(self._callbacks.values())
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber of '%s' raised", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)
