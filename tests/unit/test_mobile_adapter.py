"""Tests for the mobile billing adapter against a mocked SDK."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from entitlement_engine.adapters.errors import (
    BillingConfigurationError,
    BillingNetworkError,
    PaymentFailedError,
)
from entitlement_engine.adapters.mobile import MobileSubscriptionService
from entitlement_engine.adapters.sdk import PurchasesError, PurchasesErrorCode
from entitlement_engine.models import PricingPackage, SubscriptionPlatform, SubscriptionStatus

ACTIVE_CUSTOMER = {
    "entitlements": {
        "active": {
            "pro": {
                "identifier": "pro",
                "isActive": True,
                "willRenew": True,
                "periodType": "NORMAL",
                "expirationDate": "2099-01-01T00:00:00+00:00",
                "productIdentifier": "pro_monthly",
            }
        },
        "all": {},
    },
    "managementURL": "https://apps.example.test/subscriptions",
}
EMPTY_CUSTOMER = {"entitlements": {"active": {}, "all": {}}}

OFFERINGS = {
    "current": {
        "identifier": "default",
        "availablePackages": [
            {
                "identifier": "monthly",
                "packageType": "MONTHLY",
                "product": {
                    "identifier": "pro_monthly",
                    "title": "Pro Monthly",
                    "price": 9.99,
                    "priceString": "$9.99",
                    "currencyCode": "USD",
                },
            }
        ],
    }
}


@pytest.fixture
def sdk():
    """Mobile SDK double with an anonymous, inactive customer."""
    sdk = MagicMock()
    sdk.configure = AsyncMock(return_value=None)
    sdk.log_in = AsyncMock(return_value={"customerInfo": ACTIVE_CUSTOMER, "created": False})
    sdk.log_out = AsyncMock(return_value=EMPTY_CUSTOMER)
    sdk.is_anonymous = AsyncMock(return_value=False)
    sdk.get_customer_info = AsyncMock(return_value=EMPTY_CUSTOMER)
    sdk.get_offerings = AsyncMock(return_value=OFFERINGS)
    sdk.purchase_package = AsyncMock(return_value={"customerInfo": ACTIVE_CUSTOMER, "productIdentifier": "pro_monthly"})
    sdk.restore_purchases = AsyncMock(return_value=ACTIVE_CUSTOMER)
    return sdk


@pytest.fixture
def service(sdk):
    """Mobile adapter wrapping the SDK double."""
    return MobileSubscriptionService(sdk, api_key="appl_test_key")


@pytest.fixture
def package():
    """Package with an opaque SDK handle."""
    return PricingPackage(
        identifier="monthly",
        title="Pro Monthly",
        price=9.99,
        price_string="$9.99",
        billing_period="monthly",
        platform=SubscriptionPlatform.MOBILE,
        product_id="pro_monthly",
        platform_data={"identifier": "monthly", "sdk": "handle"},
    )


class TestConfigure:
    """Test SDK configuration."""

    async def test_configure_once(self, service, sdk):
        """Test that configure is forwarded to the SDK once."""
        await service.configure()
        await service.configure()

        sdk.configure.assert_awaited_once_with("appl_test_key", None)
        assert service.is_configured

    async def test_config_overrides(self, service, sdk):
        """Test that an explicit key and user id are passed through."""
        await service.configure({"api_key": "other_key", "app_user_id": "user-1"})

        sdk.configure.assert_awaited_once_with("other_key", "user-1")

    async def test_missing_api_key(self, sdk):
        """Test that configuring without a key raises a configuration error."""
        service = MobileSubscriptionService(sdk, api_key=None)

        with pytest.raises(BillingConfigurationError):
            await service.configure()
        sdk.configure.assert_not_awaited()

    async def test_already_configured_sdk_is_tolerated(self, service, sdk):
        """Test that an SDK configured by an earlier session is accepted."""
        sdk.configure.side_effect = PurchasesError("Purchases instance already set")

        await service.configure()

        assert service.is_configured

    async def test_other_configure_errors_raise(self, service, sdk):
        """Test that real configuration failures are classified and raised."""
        sdk.configure.side_effect = PurchasesError("bad key", PurchasesErrorCode.INVALID_CREDENTIALS)

        with pytest.raises(BillingConfigurationError):
            await service.configure()
        assert not service.is_configured

    async def test_calls_configure_lazily(self, service, sdk):
        """Test that other operations configure first."""
        await service.get_subscription_info()

        sdk.configure.assert_awaited_once()


class TestIdentity:
    """Test log in and log out."""

    async def test_log_in(self, service, sdk):
        """Test that log in translates the returned customer."""
        result = await service.log_in("user-1")

        sdk.log_in.assert_awaited_once_with("user-1")
        assert result.error is None
        assert result.subscription_info.is_active
        assert result.subscription_info.platform == SubscriptionPlatform.MOBILE

    async def test_log_in_failure(self, service, sdk):
        """Test that a failed log in reports the empty snapshot, not the SDK's current customer."""
        sdk.log_in.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)
        sdk.get_customer_info.return_value = ACTIVE_CUSTOMER

        result = await service.log_in("user-1")

        assert isinstance(result.error, BillingNetworkError)
        assert result.subscription_info.status == SubscriptionStatus.NONE
        assert not result.subscription_info.is_active
        sdk.get_customer_info.assert_not_awaited()

    async def test_log_out(self, service, sdk):
        """Test that identified users are logged out of the SDK."""
        result = await service.log_out()

        sdk.log_out.assert_awaited_once()
        assert not result.subscription_info.is_active

    async def test_log_out_anonymous_skips_sdk(self, service, sdk):
        """Test that anonymous sessions only fetch."""
        sdk.is_anonymous.return_value = True
        sdk.get_customer_info.return_value = ACTIVE_CUSTOMER

        result = await service.log_out()

        sdk.log_out.assert_not_awaited()
        assert result.subscription_info.is_active

    async def test_log_out_anonymous_error_falls_back(self, service, sdk):
        """Test that the SDK's anonymous logout error falls back to a fetch silently."""
        sdk.log_out.side_effect = PurchasesError(
            "Called logOut but the current user is anonymous.", PurchasesErrorCode.LOG_OUT_ANONYMOUS_USER
        )

        with patch("entitlement_engine.adapters.mobile.logger") as mock_logger:
            result = await service.log_out()

        sdk.get_customer_info.assert_awaited()
        assert result.error is None
        mock_logger.warning.assert_not_called()

    async def test_log_out_fallback_fetch_fails(self, service, sdk):
        """Test that a failing fallback fetch yields the empty snapshot."""
        sdk.log_out.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)
        sdk.get_customer_info.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)

        result = await service.log_out()

        assert result.subscription_info.status == SubscriptionStatus.NONE
        assert result.subscription_info.platform == SubscriptionPlatform.MOBILE


class TestSubscriptionInfo:
    """Test point-in-time fetches."""

    async def test_fetch_translates(self, service, sdk):
        """Test that the customer is translated."""
        sdk.get_customer_info.return_value = ACTIVE_CUSTOMER

        info = await service.get_subscription_info()

        assert info.status == SubscriptionStatus.ACTIVE
        assert info.product_id == "pro_monthly"

    async def test_fetch_errors_are_typed(self, service, sdk):
        """Test that fetch failures raise classified errors."""
        sdk.get_customer_info.side_effect = ConnectionError("reset by peer")

        with pytest.raises(BillingNetworkError):
            await service.get_subscription_info()


class TestPackages:
    """Test package listing."""

    async def test_packages_translated(self, service):
        """Test that the current offering is translated."""
        packages = await service.get_packages()

        assert [p.identifier for p in packages] == ["monthly"]
        assert packages[0].product_id == "pro_monthly"
        assert packages[0].platform_data["identifier"] == "monthly"

    async def test_empty_catalog_is_info_once(self, service, sdk):
        """Test that an empty catalog resolves to [] with one info log and no error log."""
        sdk.get_offerings.side_effect = Exception("There are no products registered in the RevenueCat dashboard")

        with patch("entitlement_engine.adapters.base.logger") as mock_logger:
            first = await service.get_packages()
            second = await service.get_packages()

        assert first == [] and second == []
        mock_logger.error.assert_not_called()
        catalog_logs = [c for c in mock_logger.info.call_args_list if c.args[0] == "catalog_empty"]
        assert len(catalog_logs) == 1

    async def test_other_failures_log_error(self, service, sdk):
        """Test that unexpected failures resolve to [] with an error log."""
        sdk.get_offerings.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)

        with patch("entitlement_engine.adapters.base.logger") as mock_logger:
            packages = await service.get_packages()

        assert packages == []
        mock_logger.error.assert_called_once()


class TestPurchase:
    """Test purchases and restores."""

    async def test_purchase_passes_opaque_handle(self, service, sdk, package):
        """Test that the SDK receives its own package object."""
        result = await service.purchase_package(package)

        sdk.purchase_package.assert_awaited_once_with(package.platform_data)
        assert result.error is None
        assert result.subscription_info.is_active

    async def test_purchase_cancelled(self, service, sdk, package):
        """Test that cancellation is reported, not raised."""
        sdk.purchase_package.side_effect = PurchasesError(
            "Purchase was cancelled.", PurchasesErrorCode.PURCHASE_CANCELLED
        )

        result = await service.purchase_package(package)

        assert result.user_cancelled
        assert not result.subscription_info.is_active

    async def test_purchase_failure_refetches(self, service, sdk, package):
        """Test that a failed purchase carries the backend's current snapshot."""
        sdk.purchase_package.side_effect = PurchasesError("declined", PurchasesErrorCode.STORE_PROBLEM)
        sdk.get_customer_info.return_value = ACTIVE_CUSTOMER

        result = await service.purchase_package(package)

        assert isinstance(result.error, PaymentFailedError)
        assert not result.user_cancelled
        assert result.subscription_info.is_active

    async def test_failed_refetch_carries_no_snapshot(self, service, sdk, package):
        """Test that a failed purchase whose refetch also fails reports no snapshot."""
        sdk.purchase_package.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)
        sdk.get_customer_info.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)

        result = await service.purchase_package(package)

        assert isinstance(result.error, BillingNetworkError)
        assert result.subscription_info is None

    async def test_failed_restore_refetch_carries_no_snapshot(self, service, sdk):
        """Test that a failed restore whose refetch also fails reports no snapshot."""
        sdk.restore_purchases.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)
        sdk.get_customer_info.side_effect = PurchasesError("offline", PurchasesErrorCode.NETWORK_ERROR)

        result = await service.restore_purchases()

        assert isinstance(result.error, BillingNetworkError)
        assert result.subscription_info is None

    async def test_restore(self, service, sdk):
        """Test that restore translates the restored customer."""
        result = await service.restore_purchases()

        sdk.restore_purchases.assert_awaited_once()
        assert result.subscription_info.is_active

    async def test_management_url(self, service, sdk):
        """Test that the management URL comes from the customer."""
        sdk.get_customer_info.return_value = ACTIVE_CUSTOMER

        assert await service.get_management_url() == "https://apps.example.test/subscriptions"

    async def test_management_url_unavailable(self, service, sdk):
        """Test that a failed lookup gives None."""
        sdk.get_customer_info.side_effect = ConnectionError("offline")

        assert await service.get_management_url() is None


class TestUpdateListener:
    """Test the push channel."""

    def test_attaches_once_and_fans_out(self, service, sdk):
        """Test that the SDK callback is attached once and pushes canonical snapshots."""
        received = []
        service.add_subscription_update_listener(received.append)
        service.add_subscription_update_listener(received.append)

        sdk.add_customer_info_update_listener.assert_called_once()
        callback = sdk.add_customer_info_update_listener.call_args.args[0]
        callback(ACTIVE_CUSTOMER)

        assert len(received) == 2
        assert all(info.is_active for info in received)

    def test_unsubscribe(self, service, sdk):
        """Test that an unsubscribed listener stops receiving updates."""
        received = []
        subscription = service.add_subscription_update_listener(received.append)
        callback = sdk.add_customer_info_update_listener.call_args.args[0]

        subscription.unsubscribe()
        callback(ACTIVE_CUSTOMER)

        assert received == []

    def test_close_detaches(self, service, sdk):
        """Test that close removes the SDK callback."""
        service.add_subscription_update_listener(lambda info: None)
        service.close()

        sdk.remove_customer_info_update_listener.assert_called_once()
