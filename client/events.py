"""Session lifecycle notifications

Listeners register independently and each receives every event; there is no
single callback slot that a later registration would overwrite.
"""

import inspect
import logging
from typing import Any, Callable, List, Optional

from .models import ApiError

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]
Unsubscribe = Callable[[], None]


class SessionEvents:
    """Observer registry for credential refresh and session invalidation"""

    def __init__(self):
        self._refreshed: List[Listener] = []
        self._invalidated: List[Listener] = []

    def on_credentials_refreshed(self, listener: Callable[[], Any]) -> Unsubscribe:
        """Register a listener called once after each successful refresh is stored"""
        return self._subscribe(self._refreshed, listener)

    def on_session_invalidated(self, listener: Callable[[ApiError], Any]) -> Unsubscribe:
        """Register a listener called when the server says the session can never recover"""
        return self._subscribe(self._invalidated, listener)

    async def emit_credentials_refreshed(self) -> None:
        await self._emit(self._refreshed, "credentials_refreshed")

    async def emit_session_invalidated(self, error: ApiError) -> None:
        await self._emit(self._invalidated, "session_invalidated", error)

    @staticmethod
    def _subscribe(listeners: List[Listener], listener: Listener) -> Unsubscribe:
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    async def _emit(listeners: List[Listener], name: str, *args: Any) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(listeners):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in {name} listener {listener!r}: {e}")


class CallbackSlot:
    """Adapter keeping the old single-callback API on top of SessionEvents"""

    def __init__(self, events: SessionEvents):
        self._events = events
        self._unsubscribe: Optional[Unsubscribe] = None

    def set(self, callback: Optional[Callable[[], Any]]) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if callback is not None:
            self._unsubscribe = self._events.on_credentials_refreshed(callback)
