"""Uniform subscription service contract implemented by every billing adapter.

Responsibilities shared by all adapters:
- Package listing that never raises (empty catalog is an expected state)
- Purchase/restore failures reported as typed errors next to a fresh snapshot,
  or no snapshot when the backend could not be read
- Push-channel fan-out through an explicit listener registry
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from entitlement_engine.adapters.errors import (
    BillingError,
    CatalogEmptyError,
    classify_sdk_error,
)
from entitlement_engine.adapters.revenuecat import DEFAULT_ENTITLEMENT_ID, to_subscription_info
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import PricingPackage, SubscriptionInfo, SubscriptionPlatform
from entitlement_engine.utils.observers import ListenerRegistry, Subscription

logger = get_logger(__name__)

SubscriptionUpdateListener = Callable[[SubscriptionInfo], None]


class SubscriptionResult(BaseModel):
    """Outcome of an identity, purchase or restore call."""

    subscription_info: Optional[SubscriptionInfo] = Field(
        None, description="Snapshot after the call; None when it could not be fetched"
    )
    error: Optional[BillingError] = Field(None, description="Typed failure, if any")

    @property
    def user_cancelled(self) -> bool:
        return self.error is not None and self.error.user_cancelled

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class SubscriptionService(ABC):
    """Contract every billing backend adapter satisfies.

    Subclasses translate their SDK payloads into canonical models; nothing
    returned from these methods carries SDK field names except the opaque
    ``PricingPackage.platform_data`` handle.
    """

    platform: SubscriptionPlatform
    supports_update_listener = False

    def __init__(self, entitlement_id: str = DEFAULT_ENTITLEMENT_ID):
        self.entitlement_id = entitlement_id
        self._configured = False
        self._catalog_empty_logged = False
        self._update_listeners = ListenerRegistry(f"{self.platform.value}-updates")
        self._push_channel_attached = False

    @property
    def is_configured(self) -> bool:
        return self._configured

    @abstractmethod
    async def configure(self, config: Optional[dict[str, Any]] = None) -> None:
        """One-time SDK initialization; repeated calls are tolerated."""

    @abstractmethod
    async def log_in(self, user_id: str) -> SubscriptionResult:
        """Associate the billing identity with an application user."""

    @abstractmethod
    async def log_out(self) -> SubscriptionResult:
        """Detach the billing identity, falling back to a fetch when anonymous."""

    @abstractmethod
    async def get_subscription_info(self) -> SubscriptionInfo:
        """Point-in-time authoritative fetch."""

    @abstractmethod
    async def _load_packages(self) -> list[PricingPackage]:
        """Fetch and translate the current offering. May raise SDK errors."""

    @abstractmethod
    async def purchase_package(self, package: PricingPackage) -> SubscriptionResult:
        """Attempt a purchase. Cancellation is reported, not raised."""

    @abstractmethod
    async def restore_purchases(self) -> SubscriptionResult:
        """Re-synchronize entitlement from the backend's source of truth."""

    async def get_management_url(self) -> Optional[str]:
        """Deep link for managing billing, if the backend has one."""
        return None

    async def get_packages(self) -> list[PricingPackage]:
        """Return purchasable packages; never raises.

        An empty upstream catalog is logged once at info level. Any other
        failure is logged at error level. Both resolve to ``[]``.
        """
        try:
            return await self._load_packages()
        except Exception as e:
            error = classify_sdk_error(e)
            if isinstance(error, CatalogEmptyError):
                self._note_catalog_empty(error)
            else:
                logger.error(
                    "packages_fetch_failed",
                    platform=self.platform.value,
                    error=str(error),
                    error_type=type(error).__name__,
                    exc_info=True,
                )
            return []

    def add_subscription_update_listener(self, listener: SubscriptionUpdateListener) -> Optional[Subscription]:
        """Register for entitlement changes made outside the app's own calls.

        Returns None, registering nothing, when the backend has no push channel.
        """
        if not self.supports_update_listener:
            logger.debug("subscription_update_channel_unavailable", platform=self.platform.value)
            return None
        if not self._push_channel_attached:
            self._attach_push_channel()
            self._push_channel_attached = True
        return self._update_listeners.add(listener)

    def close(self) -> None:
        """Detach from the SDK push channel and drop listeners."""
        if self._push_channel_attached:
            self._detach_push_channel()
            self._push_channel_attached = False
        self._update_listeners.clear()

    def _attach_push_channel(self) -> None:
        """Hook the SDK's own update callback; push-capable adapters override."""

    def _detach_push_channel(self) -> None:
        """Undo ``_attach_push_channel``."""

    def _now(self) -> Optional[datetime]:
        """Reference time for expiry decisions; None means the wall clock."""
        return None

    def _translate(self, customer_info: Optional[dict[str, Any]]) -> SubscriptionInfo:
        return to_subscription_info(customer_info, self.platform, self.entitlement_id, now=self._now())

    def _emit_update(self, customer_info: Optional[dict[str, Any]]) -> None:
        """Forward an SDK push payload to registered listeners as a canonical snapshot."""
        info = self._translate(customer_info)
        logger.debug(
            "subscription_update_pushed",
            platform=self.platform.value,
            status=info.status.value,
            listeners=len(self._update_listeners),
        )
        self._update_listeners.notify(info)

    def _note_catalog_empty(self, error: CatalogEmptyError) -> None:
        if self._catalog_empty_logged:
            return
        self._catalog_empty_logged = True
        logger.info(
            "catalog_empty",
            platform=self.platform.value,
            message="No products configured yet; create products and an offering in the billing dashboard",
            detail=str(error),
        )

    async def _failed_result(self, exc: BaseException, operation: str) -> SubscriptionResult:
        """Build the result for a failed purchase/restore.

        The snapshot is re-fetched so callers still commit the backend's
        truth. If that also fails the result carries no snapshot and callers
        keep what they had.
        """
        error = classify_sdk_error(exc)
        if error.user_cancelled:
            logger.info("purchase_cancelled_by_user", platform=self.platform.value, operation=operation)
        else:
            logger.warning(
                "billing_operation_failed",
                platform=self.platform.value,
                operation=operation,
                error=str(error),
                error_type=type(error).__name__,
            )

        try:
            info = await self.get_subscription_info()
        except Exception as fetch_error:
            logger.warning(
                "subscription_refetch_failed",
                platform=self.platform.value,
                operation=operation,
                error=str(fetch_error),
                error_type=type(fetch_error).__name__,
            )
            return SubscriptionResult(error=error)
        return SubscriptionResult(subscription_info=info, error=error)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(platform={self.platform.value}, configured={self._configured})"
