"""Observer registry with explicit unsubscribe handles.

Listeners are stored under integer tokens, so removal never depends on
callback identity and registering the same callable twice yields two
independent subscriptions.
"""

import inspect
from itertools import count
from typing import Any, Callable

from entitlement_engine.logging_config import get_logger

logger = get_logger(__name__)


class Subscription:
    """Handle returned when registering a listener."""

    def __init__(self, registry: "ListenerRegistry", token: int):
        self._registry = registry
        self.token = token

    @property
    def active(self) -> bool:
        """Whether the listener is still registered."""
        return self.token in self._registry

    def unsubscribe(self) -> bool:
        """Remove the listener. Idempotent.

        Returns:
            True if the listener was registered before this call
        """
        return self._registry.remove(self.token)

    def __repr__(self) -> str:
        return f"Subscription(name={self._registry.name!r}, token={self.token}, active={self.active})"


class ListenerRegistry:
    """Ordered set of listeners with per-listener failure isolation."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: dict[int, Callable[..., Any]] = {}
        self._tokens = count(1)

    def add(self, listener: Callable[..., Any]) -> Subscription:
        """Register a listener and return its unsubscribe handle."""
        token = next(self._tokens)
        self._listeners[token] = listener
        logger.debug("listener_added", registry=self.name, token=token, listeners=len(self._listeners))
        return Subscription(self, token)

    def remove(self, token: int) -> bool:
        """Remove the listener registered under ``token``."""
        removed = self._listeners.pop(token, None) is not None
        if removed:
            logger.debug("listener_removed", registry=self.name, token=token, listeners=len(self._listeners))
        return removed

    def clear(self) -> None:
        """Remove every listener."""
        self._listeners.clear()

    def notify(self, *args: Any) -> int:
        """Call every synchronous listener with ``args``.

        A listener that raises is logged and skipped; the others still run.
        Coroutines returned by async listeners are closed unawaited and logged,
        use ``notify_async`` for those.

        Returns:
            Number of listeners that completed without raising
        """
        delivered = 0
        for token, listener in list(self._listeners.items()):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    if inspect.iscoroutine(result):
                        result.close()
                    logger.warning("async_listener_skipped", registry=self.name, token=token)
                    continue
                delivered += 1
            except Exception as e:
                logger.error(
                    "listener_failed",
                    registry=self.name,
                    token=token,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
        return delivered

    async def notify_async(self, *args: Any) -> int:
        """Call every listener, awaiting the ones that return awaitables.

        Failures are isolated exactly like ``notify``.
        """
        delivered = 0
        for token, listener in list(self._listeners.items()):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    "listener_failed",
                    registry=self.name,
                    token=token,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
        return delivered

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, token: int) -> bool:
        return token in self._listeners

    def __repr__(self) -> str:
        return f"ListenerRegistry(name={self.name!r}, listeners={len(self)})"
