"""Canonical subscription models.

Every billing backend is translated into these shapes at the adapter
boundary. Field aliases match the camelCase JSON the app persists.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class SubscriptionPlatform(str, Enum):
    """Billing backend a snapshot or package originates from."""

    MOBILE = "mobile-billing"
    WEB = "web-billing"
    MOCK = "mock"


class SubscriptionStatus(str, Enum):
    """Canonical subscription status."""

    ACTIVE = "active"  # Entitlement currently grants access (paid or trialing)
    CANCELLED = "cancelled"  # User unsubscribed and access has ended
    EXPIRED = "expired"  # Entitlement ran out
    TRIAL = "trial"  # Known trial that does not grant access
    NONE = "none"  # Never subscribed


class BillingPeriod(str, Enum):
    """Billing period of a purchasable package."""

    MONTHLY = "monthly"
    ANNUAL = "annual"
    LIFETIME = "lifetime"


class SubscriptionInfo(BaseModel):
    """Immutable point-in-time entitlement snapshot.

    ``is_active`` is the flag the UI gates on. It always mirrors
    ``status == active``; snapshots that disagree are rejected.
    """

    platform: SubscriptionPlatform = Field(..., description="Backend the snapshot came from")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.NONE, description="Canonical status")
    product_id: Optional[str] = Field(None, alias="productId", description="Entitling product identifier")
    expiration_date: Optional[str] = Field(None, alias="expirationDate", description="ISO-8601 expiry")
    will_renew: bool = Field(default=False, alias="willRenew", description="Whether auto-renew is on")
    is_active: bool = Field(default=False, alias="isActive", description="Authoritative entitlement flag")
    is_trial: bool = Field(default=False, alias="isTrial", description="Whether in a trial period")

    @model_validator(mode="after")
    def _check_active_flag(self) -> "SubscriptionInfo":
        if self.is_active != (self.status == SubscriptionStatus.ACTIVE):
            raise ValueError(
                f"is_active={self.is_active} contradicts status '{self.status.value}'"
            )
        return self

    @classmethod
    def empty(cls, platform: SubscriptionPlatform) -> "SubscriptionInfo":
        """Inactive snapshot used when nothing is known about the user."""
        return cls(platform=platform)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape used for persistence."""
        return self.model_dump(by_alias=True, mode="json")

    class Config:
        frozen = True
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "platform": "mobile-billing",
                "status": "active",
                "productId": "pro_monthly",
                "expirationDate": "2026-11-18T10:00:00+00:00",
                "willRenew": True,
                "isActive": True,
                "isTrial": False,
            }
        }


class PricingPackage(BaseModel):
    """A purchasable offer.

    ``platform_data`` is the SDK's own package object. It is handed back to
    the adapter on purchase and is never serialized or inspected elsewhere.
    """

    identifier: str = Field(..., description="Package identifier (e.g. monthly)")
    title: str = Field(..., description="Display title")
    description: str = Field(default="", description="Display description")
    price: float = Field(..., description="Numeric price in major units")
    price_string: str = Field(..., alias="priceString", description="Localized price")
    currency_code: str = Field(default="USD", alias="currencyCode", description="ISO 4217 code")
    billing_period: BillingPeriod = Field(..., alias="billingPeriod", description="Billing period")
    platform: SubscriptionPlatform = Field(..., description="Backend offering this package")
    product_id: Optional[str] = Field(None, alias="productId", description="Store product behind the package")
    platform_data: Any = Field(default=None, exclude=True, description="Opaque SDK package handle")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "identifier": "annual",
                "title": "Pro Annual",
                "description": "Pro Annual Subscription - Save 20%",
                "price": 99.99,
                "priceString": "$99.99",
                "currencyCode": "USD",
                "billingPeriod": "annual",
                "platform": "mobile-billing",
                "productId": "pro_annual",
            }
        }
