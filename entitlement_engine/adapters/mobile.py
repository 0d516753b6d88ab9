"""Adapter for the native mobile billing SDK."""

from typing import Any, Optional

from entitlement_engine.adapters.base import SubscriptionResult, SubscriptionService
from entitlement_engine.adapters.errors import (
    AnonymousIdentityError,
    BillingConfigurationError,
    classify_sdk_error,
    is_already_configured,
)
from entitlement_engine.adapters.revenuecat import (
    DEFAULT_ENTITLEMENT_ID,
    current_packages,
    mobile_package_to_pricing,
)
from entitlement_engine.adapters.sdk import CustomerInfoPayload, MobilePurchasesSDK
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import PricingPackage, SubscriptionInfo, SubscriptionPlatform

logger = get_logger(__name__)


class MobileSubscriptionService(SubscriptionService):
    """Subscription service backed by the mobile purchases SDK.

    The SDK keeps its own identity and pushes customer-info updates, so this
    adapter supports the update listener channel.
    """

    platform = SubscriptionPlatform.MOBILE
    supports_update_listener = True

    def __init__(
        self,
        sdk: MobilePurchasesSDK,
        api_key: Optional[str],
        entitlement_id: str = DEFAULT_ENTITLEMENT_ID,
    ):
        super().__init__(entitlement_id)
        self._sdk = sdk
        self._api_key = api_key

    async def configure(self, config: Optional[dict[str, Any]] = None) -> None:
        """Configure the SDK once.

        Args:
            config: Optional overrides: ``api_key`` and ``app_user_id``

        Raises:
            BillingConfigurationError: If no API key is available
            BillingError: If the SDK rejects the configuration
        """
        if self._configured:
            logger.debug("billing_sdk_already_configured", platform=self.platform.value, source="adapter")
            return

        options = config or {}
        api_key = options.get("api_key") or self._api_key
        if not api_key:
            raise BillingConfigurationError(f"No API key configured for {self.platform.value}")

        try:
            await self._sdk.configure(api_key, options.get("app_user_id"))
        except Exception as e:
            if not is_already_configured(e):
                raise classify_sdk_error(e) from e
            # Hot reload re-runs configuration against a live SDK instance
            logger.debug("billing_sdk_already_configured", platform=self.platform.value, source="sdk")

        self._configured = True
        logger.info("billing_sdk_configured", platform=self.platform.value)

    async def _ensure_configured(self) -> None:
        if not self._configured:
            await self.configure()

    async def log_in(self, user_id: str) -> SubscriptionResult:
        await self._ensure_configured()
        try:
            result = await self._sdk.log_in(user_id)
        except Exception as e:
            # The SDK is still bound to the previous user; its customer is not this user's
            error = classify_sdk_error(e)
            logger.warning(
                "billing_login_failed",
                platform=self.platform.value,
                error=str(error),
                error_type=type(error).__name__,
            )
            return SubscriptionResult(subscription_info=SubscriptionInfo.empty(self.platform), error=error)

        logger.info("billing_user_logged_in", platform=self.platform.value, created=result.get("created"))
        return SubscriptionResult(subscription_info=self._translate(result.get("customerInfo")))

    async def log_out(self) -> SubscriptionResult:
        """Log out of the SDK.

        Logging out an anonymous identity is illegal in the SDK, so anonymous
        sessions (detected up front or reported by the SDK) fall back to a
        read-only fetch. If that also fails the empty snapshot is returned.
        """
        await self._ensure_configured()
        try:
            if await self._sdk.is_anonymous():
                logger.debug("billing_logout_skipped_anonymous", platform=self.platform.value)
                return SubscriptionResult(subscription_info=await self.get_subscription_info())
            customer_info = await self._sdk.log_out()
            return SubscriptionResult(subscription_info=self._translate(customer_info))
        except Exception as e:
            error = classify_sdk_error(e)
            if not isinstance(error, AnonymousIdentityError):
                logger.warning(
                    "billing_logout_failed",
                    platform=self.platform.value,
                    error=str(error),
                    error_type=type(error).__name__,
                )

        try:
            return SubscriptionResult(subscription_info=await self.get_subscription_info())
        except Exception as fetch_error:
            logger.warning(
                "subscription_refetch_failed",
                platform=self.platform.value,
                operation="log_out",
                error=str(fetch_error),
                error_type=type(fetch_error).__name__,
            )
            return SubscriptionResult(subscription_info=SubscriptionInfo.empty(self.platform))

    async def get_subscription_info(self) -> SubscriptionInfo:
        """Fetch the current customer.

        Raises:
            BillingError: Classified SDK failure
        """
        await self._ensure_configured()
        try:
            customer_info = await self._sdk.get_customer_info()
        except Exception as e:
            raise classify_sdk_error(e) from e
        return self._translate(customer_info)

    async def _load_packages(self) -> list[PricingPackage]:
        await self._ensure_configured()
        offerings = await self._sdk.get_offerings()
        return [mobile_package_to_pricing(package, self.platform) for package in current_packages(offerings)]

    async def purchase_package(self, package: PricingPackage) -> SubscriptionResult:
        await self._ensure_configured()
        try:
            result = await self._sdk.purchase_package(package.platform_data)
        except Exception as e:
            return await self._failed_result(e, "purchase_package")

        logger.info(
            "purchase_completed",
            platform=self.platform.value,
            package_id=package.identifier,
            product_id=result.get("productIdentifier") or package.product_id,
        )
        return SubscriptionResult(subscription_info=self._translate(result.get("customerInfo")))

    async def restore_purchases(self) -> SubscriptionResult:
        await self._ensure_configured()
        try:
            customer_info = await self._sdk.restore_purchases()
        except Exception as e:
            return await self._failed_result(e, "restore_purchases")

        info = self._translate(customer_info)
        logger.info("purchases_restored", platform=self.platform.value, is_active=info.is_active)
        return SubscriptionResult(subscription_info=info)

    async def get_management_url(self) -> Optional[str]:
        try:
            customer_info = await self._sdk.get_customer_info()
        except Exception as e:
            logger.warning(
                "management_url_unavailable",
                platform=self.platform.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return (customer_info or {}).get("managementURL")

    def _on_customer_info_updated(self, customer_info: CustomerInfoPayload) -> None:
        self._emit_update(customer_info)

    def _attach_push_channel(self) -> None:
        self._sdk.add_customer_info_update_listener(self._on_customer_info_updated)

    def _detach_push_channel(self) -> None:
        self._sdk.remove_customer_info_update_listener(self._on_customer_info_updated)
