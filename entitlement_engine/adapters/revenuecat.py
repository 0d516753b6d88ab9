"""Translation of RevenueCat SDK payloads into the canonical models.

Both the mobile and the web SDK report customers in the same
``CustomerInfo`` shape; they differ in how packages describe their product.
Nothing outside this module reads SDK field names.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from entitlement_engine.models import (
    PricingPackage,
    SubscriptionInfo,
    SubscriptionPlatform,
    SubscriptionStatus,
)
from entitlement_engine.utils.billing_period import billing_period_from_package_type

DEFAULT_ENTITLEMENT_ID = "pro"


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    """Parse an SDK timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_subscription_info(
    customer_info: Optional[Mapping[str, Any]],
    platform: SubscriptionPlatform,
    entitlement_id: str = DEFAULT_ENTITLEMENT_ID,
    now: Optional[datetime] = None,
) -> SubscriptionInfo:
    """Convert an SDK customer payload into a ``SubscriptionInfo``.

    An active entitlement yields ``active`` (with ``is_trial`` for trial
    periods). An entitlement that only appears in the history yields
    ``expired`` once its expiration date has passed and ``cancelled`` when
    access ended early (refund, revocation). Anything else is ``none``.
    """
    if not customer_info:
        return SubscriptionInfo.empty(platform)

    entitlements = customer_info.get("entitlements") or {}
    active = (entitlements.get("active") or {}).get(entitlement_id)

    if active:
        period_type = str(active.get("periodType") or "").upper()
        return SubscriptionInfo(
            platform=platform,
            status=SubscriptionStatus.ACTIVE,
            product_id=active.get("productIdentifier"),
            expiration_date=active.get("expirationDate") or customer_info.get("latestExpirationDate"),
            will_renew=bool(active.get("willRenew", False)),
            is_active=True,
            is_trial=period_type == "TRIAL",
        )

    historical = (entitlements.get("all") or {}).get(entitlement_id)
    if not historical:
        return SubscriptionInfo.empty(platform)

    expiration_date = historical.get("expirationDate")
    expires_at = parse_iso8601(expiration_date)
    now = now or datetime.now(timezone.utc)
    status = (
        SubscriptionStatus.EXPIRED
        if expires_at is not None and expires_at <= now
        else SubscriptionStatus.CANCELLED
    )
    return SubscriptionInfo(
        platform=platform,
        status=status,
        product_id=historical.get("productIdentifier"),
        expiration_date=expiration_date,
        will_renew=False,
        is_active=False,
        is_trial=False,
    )


def current_packages(offerings: Optional[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Packages of the current offering, or [] when there is none."""
    if not offerings:
        return []
    current = offerings.get("current")
    if not current:
        return []
    return list(current.get("availablePackages") or [])


def mobile_package_to_pricing(package: Mapping[str, Any], platform: SubscriptionPlatform) -> PricingPackage:
    """Convert a mobile SDK package (``product`` shape)."""
    product = package.get("product") or {}
    return PricingPackage(
        identifier=package["identifier"],
        title=product.get("title") or package["identifier"],
        description=product.get("description") or "",
        price=float(product.get("price") or 0),
        price_string=product.get("priceString") or "",
        currency_code=product.get("currencyCode") or "USD",
        billing_period=billing_period_from_package_type(package.get("packageType")),
        platform=platform,
        product_id=product.get("identifier"),
        platform_data=package,
    )


def web_package_to_pricing(package: Mapping[str, Any], platform: SubscriptionPlatform) -> PricingPackage:
    """Convert a web billing package (``rcBillingProduct`` shape)."""
    product = package.get("rcBillingProduct") or {}
    price = product.get("currentPrice") or {}
    return PricingPackage(
        identifier=package["identifier"],
        title=product.get("displayName") or package["identifier"],
        description=product.get("description") or "",
        price=(price.get("amountMicros") or 0) / 1_000_000,
        price_string=price.get("formattedPrice") or "",
        currency_code=price.get("currency") or "USD",
        billing_period=billing_period_from_package_type(package.get("packageType")),
        platform=platform,
        product_id=product.get("identifier"),
        platform_data=package,
    )
