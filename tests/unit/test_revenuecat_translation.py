"""Tests for SDK payload translation into canonical models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from entitlement_engine.adapters.revenuecat import (
    current_packages,
    mobile_package_to_pricing,
    parse_iso8601,
    to_subscription_info,
    web_package_to_pricing,
)
from entitlement_engine.models import (
    BillingPeriod,
    SubscriptionInfo,
    SubscriptionPlatform,
    SubscriptionStatus,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _entitlement(product_id="pro_monthly", expires=None, will_renew=True, period_type="NORMAL"):
    return {
        "identifier": "pro",
        "isActive": True,
        "willRenew": will_renew,
        "periodType": period_type,
        "expirationDate": expires,
        "productIdentifier": product_id,
    }


def _customer(active=None, historical=None):
    return {
        "entitlements": {
            "active": {"pro": active} if active else {},
            "all": {"pro": historical or active} if (historical or active) else {},
        },
        "latestExpirationDate": None,
        "managementURL": "https://example.test/manage",
    }


@pytest.fixture
def package_payload():
    """Offering package carrying both product shapes."""
    return {
        "identifier": "annual",
        "packageType": "ANNUAL",
        "product": {
            "identifier": "pro_annual",
            "title": "Pro Annual",
            "description": "Save 20%",
            "price": 99.99,
            "priceString": "$99.99",
            "currencyCode": "USD",
        },
        "rcBillingProduct": {
            "identifier": "pro_annual_web",
            "displayName": "Pro Annual (Web)",
            "description": "Billed yearly",
            "currentPrice": {"amountMicros": 89990000, "formattedPrice": "$89.99", "currency": "EUR"},
        },
    }


class TestToSubscriptionInfo:
    """Test customer info translation."""

    def test_empty_payload(self):
        """Test that a missing payload gives the empty snapshot."""
        info = to_subscription_info(None, SubscriptionPlatform.MOBILE)

        assert info == SubscriptionInfo.empty(SubscriptionPlatform.MOBILE)
        assert info.status == SubscriptionStatus.NONE
        assert not info.is_active

    def test_active_entitlement(self):
        """Test that an active entitlement is reported as active."""
        expires = (NOW + timedelta(days=30)).isoformat()
        info = to_subscription_info(_customer(active=_entitlement(expires=expires)), SubscriptionPlatform.MOBILE)

        assert info.status == SubscriptionStatus.ACTIVE
        assert info.is_active
        assert info.product_id == "pro_monthly"
        assert info.expiration_date == expires
        assert info.will_renew
        assert not info.is_trial

    def test_trial_entitlement_is_active(self):
        """Test that a trialing entitlement grants access and is flagged as trial."""
        payload = _customer(active=_entitlement(product_id="pro_annual", period_type="trial"))
        info = to_subscription_info(payload, SubscriptionPlatform.WEB)

        assert info.status == SubscriptionStatus.ACTIVE
        assert info.is_active
        assert info.is_trial
        assert info.platform == SubscriptionPlatform.WEB

    def test_other_entitlement_is_ignored(self):
        """Test that only the configured entitlement counts."""
        payload = _customer(active=_entitlement())
        info = to_subscription_info(payload, SubscriptionPlatform.MOBILE, entitlement_id="premium")

        assert info.status == SubscriptionStatus.NONE

    def test_lapsed_entitlement_is_expired(self):
        """Test that a historical entitlement past its expiry is expired."""
        expired_at = (NOW - timedelta(days=1)).isoformat()
        payload = _customer(historical=_entitlement(expires=expired_at))
        info = to_subscription_info(payload, SubscriptionPlatform.MOBILE, now=NOW)

        assert info.status == SubscriptionStatus.EXPIRED
        assert not info.is_active
        assert not info.will_renew
        assert info.expiration_date == expired_at

    def test_revoked_entitlement_is_cancelled(self):
        """Test that access ending before the expiry reads as cancelled."""
        expires = (NOW + timedelta(days=10)).isoformat()
        payload = _customer(historical=_entitlement(expires=expires))
        info = to_subscription_info(payload, SubscriptionPlatform.MOBILE, now=NOW)

        assert info.status == SubscriptionStatus.CANCELLED
        assert not info.is_active

    def test_reference_time_decides_expiry(self):
        """Test that the supplied reference time, not the wall clock, is used."""
        expires = (NOW + timedelta(days=10)).isoformat()
        payload = _customer(historical=_entitlement(expires=expires))
        info = to_subscription_info(payload, SubscriptionPlatform.MOBILE, now=NOW + timedelta(days=11))

        assert info.status == SubscriptionStatus.EXPIRED

    def test_payload_uses_camel_case(self):
        """Test that the persisted shape uses camelCase keys."""
        payload = to_subscription_info(_customer(active=_entitlement()), SubscriptionPlatform.MOBILE).to_payload()

        assert payload["isActive"] is True
        assert payload["productId"] == "pro_monthly"
        assert payload["platform"] == "mobile-billing"


class TestActiveFlagInvariant:
    """Test that contradictory snapshots are rejected."""

    def test_active_flag_must_match_status(self):
        """Test that is_active without status active is rejected."""
        with pytest.raises(ValidationError):
            SubscriptionInfo(
                platform=SubscriptionPlatform.MOBILE,
                status=SubscriptionStatus.EXPIRED,
                is_active=True,
            )

    def test_active_status_requires_flag(self):
        """Test that status active without is_active is rejected."""
        with pytest.raises(ValidationError):
            SubscriptionInfo(platform=SubscriptionPlatform.MOBILE, status=SubscriptionStatus.ACTIVE)


class TestParseIso8601:
    """Test timestamp parsing."""

    def test_zulu_suffix(self):
        """Test that a Z suffix is parsed as UTC."""
        assert parse_iso8601("2026-10-01T12:00:00Z") == NOW

    def test_naive_is_utc(self):
        """Test that naive timestamps are taken as UTC."""
        assert parse_iso8601("2026-10-01T12:00:00") == NOW

    def test_invalid(self):
        """Test that unparseable or missing values give None."""
        assert parse_iso8601("yesterday") is None
        assert parse_iso8601(None) is None


class TestPackageTranslation:
    """Test package translation."""

    def test_mobile_package(self, package_payload):
        """Test that the mobile product shape is used."""
        package = mobile_package_to_pricing(package_payload, SubscriptionPlatform.MOBILE)

        assert package.identifier == "annual"
        assert package.title == "Pro Annual"
        assert package.price == 99.99
        assert package.price_string == "$99.99"
        assert package.billing_period == BillingPeriod.ANNUAL
        assert package.product_id == "pro_annual"
        assert package.platform_data is package_payload

    def test_web_package(self, package_payload):
        """Test that the web billing product shape is used."""
        package = web_package_to_pricing(package_payload, SubscriptionPlatform.WEB)

        assert package.title == "Pro Annual (Web)"
        assert package.price == pytest.approx(89.99)
        assert package.currency_code == "EUR"
        assert package.product_id == "pro_annual_web"
        assert package.platform == SubscriptionPlatform.WEB

    def test_platform_data_is_not_serialized(self, package_payload):
        """Test that the SDK handle never leaks into JSON."""
        package = mobile_package_to_pricing(package_payload, SubscriptionPlatform.MOBILE)
        dumped = package.model_dump(by_alias=True)

        assert "platform_data" not in dumped
        assert "platformData" not in dumped
        assert dumped["priceString"] == "$99.99"

    def test_current_packages(self, package_payload):
        """Test extraction of the current offering's packages."""
        offerings = {"current": {"identifier": "default", "availablePackages": [package_payload]}}

        assert current_packages(offerings) == [package_payload]
        assert current_packages({"current": None}) == []
        assert current_packages(None) == []
