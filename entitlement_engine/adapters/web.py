"""Adapter for the web billing SDK.

The web SDK is configured per user: ``log_in`` creates the client instance
and ``log_out`` discards it. There is no push channel and no native restore,
so restoring re-reads the customer.
"""

from typing import Any, Optional

from entitlement_engine.adapters.base import SubscriptionResult, SubscriptionService
from entitlement_engine.adapters.errors import BillingNotConfiguredError, classify_sdk_error
from entitlement_engine.adapters.revenuecat import (
    DEFAULT_ENTITLEMENT_ID,
    current_packages,
    web_package_to_pricing,
)
from entitlement_engine.adapters.sdk import WebPurchasesInstance, WebPurchasesSDK
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import PricingPackage, SubscriptionInfo, SubscriptionPlatform

logger = get_logger(__name__)


class WebSubscriptionService(SubscriptionService):
    """Subscription service backed by the web billing SDK."""

    platform = SubscriptionPlatform.WEB
    supports_update_listener = False

    def __init__(
        self,
        sdk: Optional[WebPurchasesSDK],
        api_key: Optional[str],
        entitlement_id: str = DEFAULT_ENTITLEMENT_ID,
    ):
        super().__init__(entitlement_id)
        self._sdk = sdk
        self._api_key = api_key
        self._instance: Optional[WebPurchasesInstance] = None
        self._user_id: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        """User the web client is currently configured for."""
        return self._user_id

    async def configure(self, config: Optional[dict[str, Any]] = None) -> None:
        # Real configuration happens per user in log_in
        if self._configured:
            logger.debug("billing_sdk_already_configured", platform=self.platform.value, source="adapter")
            return
        if config and config.get("api_key"):
            self._api_key = config["api_key"]
        self._configured = True
        logger.info("web_billing_ready", platform=self.platform.value, sdk_available=self._sdk is not None)

    async def log_in(self, user_id: str) -> SubscriptionResult:
        if self._sdk is None or not self._api_key:
            logger.warning("web_billing_sdk_unavailable", platform=self.platform.value)
            return SubscriptionResult(
                subscription_info=SubscriptionInfo.empty(self.platform),
                error=BillingNotConfiguredError("Web billing SDK is not available"),
            )

        try:
            self._instance = self._sdk.configure(self._api_key, user_id)
            self._user_id = user_id
            customer_info = await self._instance.get_customer_info()
        except Exception as e:
            error = classify_sdk_error(e)
            logger.error(
                "web_billing_login_failed",
                platform=self.platform.value,
                error=str(error),
                error_type=type(error).__name__,
                exc_info=True,
            )
            return SubscriptionResult(subscription_info=SubscriptionInfo.empty(self.platform), error=error)

        logger.info("billing_user_logged_in", platform=self.platform.value)
        return SubscriptionResult(subscription_info=self._translate(customer_info))

    async def log_out(self) -> SubscriptionResult:
        self._instance = None
        self._user_id = None
        logger.info("billing_user_logged_out", platform=self.platform.value)
        return SubscriptionResult(subscription_info=SubscriptionInfo.empty(self.platform))

    async def get_subscription_info(self) -> SubscriptionInfo:
        """Fetch the current customer; empty when no user is configured.

        Raises:
            BillingError: Classified SDK failure
        """
        if self._instance is None:
            return SubscriptionInfo.empty(self.platform)
        try:
            customer_info = await self._instance.get_customer_info()
        except Exception as e:
            raise classify_sdk_error(e) from e
        return self._translate(customer_info)

    async def _load_packages(self) -> list[PricingPackage]:
        if self._instance is None:
            logger.warning("web_billing_not_logged_in", platform=self.platform.value, operation="get_packages")
            return []
        offerings = await self._instance.get_offerings()
        return [web_package_to_pricing(package, self.platform) for package in current_packages(offerings)]

    async def purchase_package(self, package: PricingPackage) -> SubscriptionResult:
        try:
            if self._instance is None:
                raise BillingNotConfiguredError("Web billing is not initialized; log in first")
            # Opens the hosted checkout and resolves once it completes
            result = await self._instance.purchase(package.platform_data)
        except Exception as e:
            return await self._failed_result(e, "purchase_package")

        logger.info("purchase_completed", platform=self.platform.value, package_id=package.identifier)
        return SubscriptionResult(subscription_info=self._translate(result.get("customerInfo")))

    async def restore_purchases(self) -> SubscriptionResult:
        try:
            info = await self.get_subscription_info()
        except Exception as e:
            return await self._failed_result(e, "restore_purchases")
        logger.info("purchases_restored", platform=self.platform.value, is_active=info.is_active)
        return SubscriptionResult(subscription_info=info)

    async def get_management_url(self) -> Optional[str]:
        if self._instance is None:
            return None
        try:
            customer_info = await self._instance.get_customer_info()
        except Exception as e:
            logger.warning(
                "management_url_unavailable",
                platform=self.platform.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return (customer_info or {}).get("managementURL")
