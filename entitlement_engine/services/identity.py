"""Application identity collaborator.

The store follows whoever is signed in: it subscribes to an identity source
and re-initializes entitlement state whenever the user id changes.
"""

from typing import Any, Callable, Optional, Protocol

from entitlement_engine.logging_config import get_logger
from entitlement_engine.utils.observers import ListenerRegistry, Subscription

logger = get_logger(__name__)

IdentityListener = Callable[[Optional[str]], Any]


class IdentitySource(Protocol):
    """Current application user and a change feed."""

    @property
    def current_user_id(self) -> Optional[str]: ...

    def subscribe(self, listener: IdentityListener) -> Subscription: ...


class AuthIdentity:
    """In-memory identity source.

    Listeners may be plain functions or coroutine functions; ``set_user_id``
    awaits the latter so callers can wait for dependent re-initialization.
    """

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._listeners = ListenerRegistry("identity")

    @property
    def current_user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_signed_in(self) -> bool:
        return self._user_id is not None

    def subscribe(self, listener: IdentityListener) -> Subscription:
        return self._listeners.add(listener)

    async def set_user_id(self, user_id: Optional[str]) -> bool:
        """Change the current user and notify listeners.

        Returns:
            False if ``user_id`` was already current (no notification)
        """
        if user_id == self._user_id:
            return False

        previous = self._user_id
        self._user_id = user_id
        logger.info(
            "identity_changed",
            signed_in=user_id is not None,
            was_signed_in=previous is not None,
            listeners=len(self._listeners),
        )
        await self._listeners.notify_async(user_id)
        return True

    async def sign_in(self, user_id: str) -> bool:
        return await self.set_user_id(user_id)

    async def sign_out(self) -> bool:
        return await self.set_user_id(None)

    def __repr__(self) -> str:
        return f"AuthIdentity(signed_in={self.is_signed_in}, listeners={len(self._listeners)})"
